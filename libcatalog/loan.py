"""Loan records tying a borrowed book to its due and return dates."""

from __future__ import annotations

from datetime import date
from typing import Optional

from libcatalog.book import Book
from libcatalog.errors import InvalidStateError

BORROWED = "Borrowed"
OVERDUE = "Overdue"
RETURNED = "Returned"


class Loan:
    """A single borrowing of ``book``.

    The loan only points at the book; the catalog owns it. A loan is closed
    exactly once, after which it lives in its user's history unchanged.
    """

    def __init__(self, book: Book, due_date: date, returned_on: Optional[date] = None) -> None:
        self.book = book
        self.due_date = due_date
        self.returned_on = returned_on

    @property
    def is_active(self) -> bool:
        return self.returned_on is None

    def close(self, now: Optional[date] = None) -> None:
        if self.returned_on is not None:
            raise InvalidStateError(f"Loan of '{self.book.title}' was already returned on {self.returned_on}.")
        self.returned_on = now or date.today()

    def is_overdue(self, now: Optional[date] = None) -> bool:
        """Return True if the loan is still open and ``now`` is past the due date."""
        if self.returned_on is not None:
            return False
        return (now or date.today()) > self.due_date

    def status(self, now: Optional[date] = None) -> str:
        if self.returned_on is not None:
            return RETURNED
        return OVERDUE if self.is_overdue(now) else BORROWED

    def __repr__(self) -> str:
        return f"Loan(book={self.book.title!r}, due_date={self.due_date}, returned_on={self.returned_on})"

    def to_dict(self, now: Optional[date] = None) -> dict:
        return {
            "title": self.book.title,
            "author": self.book.author,
            "due_date": self.due_date.isoformat(),
            "returned_on": self.returned_on.isoformat() if self.returned_on else None,
            "status": self.status(now),
        }
