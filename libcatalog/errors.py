"""Exceptions raised by the catalog.

Presentation layers catch ``LibraryError`` subclasses at the failing operation
and turn them into status messages; none of them is fatal.
"""


class LibraryError(Exception):
    """Base class for every catalog error."""


class NotFoundError(LibraryError, LookupError):
    pass


class BookNotFoundError(NotFoundError):
    def __init__(self, title: str) -> None:
        super().__init__(f"Book '{title}' not found.")
        self.title = title


class UserNotFoundError(NotFoundError):
    def __init__(self, name: str) -> None:
        super().__init__(f"User '{name}' not found.")
        self.name = name


class LoanNotFoundError(NotFoundError):
    def __init__(self, name: str, title: str) -> None:
        super().__init__(f"User '{name}' has not borrowed '{title}'.")
        self.name = name
        self.title = title


class BookUnavailableError(LibraryError):
    def __init__(self, title: str) -> None:
        super().__init__(f"Book '{title}' is currently borrowed.")
        self.title = title


class InvalidStateError(LibraryError):
    pass


class BookOnLoanError(InvalidStateError):
    def __init__(self, title: str) -> None:
        super().__init__(f"Book '{title}' is on loan and cannot be removed.")
        self.title = title


class UserHasLoansError(InvalidStateError):
    def __init__(self, name: str, count: int) -> None:
        super().__init__(f"User '{name}' still has {count} borrowed book(s).")
        self.name = name
        self.count = count


class MalformedInputError(LibraryError, ValueError):
    pass


class StorageError(LibraryError):
    """A snapshot or CSV file could not be read or written."""
