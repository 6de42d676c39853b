import csv
import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from config import settings
from libcatalog.book import Book
from libcatalog.csv_io import ImportResult, read_books_csv, write_books_csv
from libcatalog.errors import (
    BookNotFoundError,
    BookOnLoanError,
    BookUnavailableError,
    LoanNotFoundError,
    StorageError,
    UserHasLoansError,
    UserNotFoundError,
)
from libcatalog.loan import Loan
from libcatalog.storage import read_snapshot, write_snapshot
from libcatalog.user import User

logger = logging.getLogger(__name__)


class Library:
    """Owns every book and user and is the only place their state changes."""

    def __init__(self, data_file: Optional[str] = None) -> None:
        self.data_file = data_file or settings.data_file
        self.books: List[Book] = []
        self.users: List[User] = []

    # ------------------------- Core operations ------------------------- #
    def add_book(self, book: Book) -> Book:
        """Append a book. Titles are not checked for duplicates."""
        self.books.append(book)
        logger.info(f"Added book '{book.title}' by {book.author}")
        return book

    def add_user(self, user: User) -> User:
        self.users.append(user)
        logger.info(f"Registered user '{user.name}'")
        return user

    def find_book(self, title: str) -> Optional[Book]:
        for book in self.books:
            if book.matches_title(title):
                return book
        return None

    def find_user(self, name: str) -> Optional[User]:
        for user in self.users:
            if user.matches_name(name):
                return user
        return None

    def borrow_book(self, user_name: str, title: str, due_date: Optional[date] = None) -> Loan:
        """Lend ``title`` to ``user_name`` until ``due_date``.

        Without a due date the loan runs for ``settings.loan_days`` days.
        Raises UserNotFoundError, BookNotFoundError or BookUnavailableError,
        leaving the catalog untouched.
        """
        user = self.find_user(user_name)
        if user is None:
            logger.warning(f"Borrow rejected: user '{user_name}' not found")
            raise UserNotFoundError(user_name)
        book = self.find_book(title)
        if book is None:
            logger.warning(f"Borrow rejected: book '{title}' not found")
            raise BookNotFoundError(title)
        if not book.available:
            logger.warning(f"Borrow rejected: book '{book.title}' is already borrowed")
            raise BookUnavailableError(book.title)

        due = due_date or date.today() + timedelta(days=settings.loan_days)
        loan = user.borrow(book, due)
        logger.info(f"{user.name} borrowed '{book.title}' until {due.isoformat()}")
        return loan

    def return_book(self, user_name: str, title: str, now: Optional[date] = None) -> Loan:
        """Close ``user_name``'s open loan of ``title`` and return it."""
        user = self.find_user(user_name)
        if user is None:
            logger.warning(f"Return rejected: user '{user_name}' not found")
            raise UserNotFoundError(user_name)
        if not user.return_by_title(title, now):
            logger.warning(f"Return rejected: '{user.name}' has no open loan for '{title}'")
            raise LoanNotFoundError(user.name, title)
        loan = user.history[-1]
        logger.info(f"{user.name} returned '{loan.book.title}'")
        return loan

    def remove_book(self, title: str) -> Book:
        book = self.find_book(title)
        if book is None:
            raise BookNotFoundError(title)
        if not book.available:
            logger.warning(f"Remove rejected: book '{book.title}' is on loan")
            raise BookOnLoanError(book.title)
        # Remove by identity; titles may repeat.
        self.books = [b for b in self.books if b is not book]
        logger.info(f"Removed book '{book.title}'")
        return book

    def remove_user(self, name: str) -> User:
        user = self.find_user(name)
        if user is None:
            raise UserNotFoundError(name)
        if user.has_active_loans:
            logger.warning(f"Remove rejected: user '{user.name}' has open loans")
            raise UserHasLoansError(user.name, len(user.active_loans))
        self.users = [u for u in self.users if u is not user]
        logger.info(f"Removed user '{user.name}'")
        return user

    # ------------------------- Queries ------------------------- #
    def list_books(self) -> List[Book]:
        return list(self.books)

    def list_users(self) -> List[User]:
        return list(self.users)

    def search_by_title(self, query: str) -> List[Book]:
        term = (query or "").lower()
        return [b for b in self.books if term in b.title.lower()]

    def search_by_author(self, query: str) -> List[Book]:
        term = (query or "").lower()
        return [b for b in self.books if term in b.author.lower()]

    def filter_by_availability(self, available: bool = True) -> List[Book]:
        return [b for b in self.books if b.available == available]

    def filter_by_genre(self, genre: str) -> List[Book]:
        wanted = (genre or "").strip().lower()
        return [b for b in self.books if b.genre.lower() == wanted]

    def sort_by_title(self) -> List[Book]:
        """Books ordered by title (case-sensitive); equal titles keep insertion order."""
        return sorted(self.books, key=lambda b: b.title)

    def count_books(self) -> int:
        return len(self.books)

    def count_users(self) -> int:
        return len(self.users)

    def overdue_loans(self, now: Optional[date] = None) -> List[Tuple[User, Loan]]:
        now = now or date.today()
        return [(user, loan) for user in self.users for loan in user.active_loans if loan.is_overdue(now)]

    def get_statistics(self) -> Dict[str, Any]:
        """Get library statistics."""
        available = sum(1 for b in self.books if b.available)
        return {
            "total_books": len(self.books),
            "available_books": available,
            "borrowed_books": len(self.books) - available,
            "unique_authors": len({b.author.lower() for b in self.books}),
            "total_users": len(self.users),
            "active_loans": sum(len(u.active_loans) for u in self.users),
        }

    # ------------------------- CSV exchange ------------------------- #
    def export_csv(self, path: Optional[str] = None) -> int:
        path = path or settings.export_file
        try:
            count = write_books_csv(path, self.books)
        except OSError as exc:
            logger.error(f"CSV export to {path} failed: {exc}")
            raise StorageError(f"Could not write {path}: {exc}") from exc
        logger.info(f"Exported {count} books to {path}")
        return count

    def import_csv(self, path: str) -> ImportResult:
        """Append every well-formed row of ``path`` as an available book."""
        try:
            books, skipped = read_books_csv(path)
        except (OSError, UnicodeDecodeError, csv.Error) as exc:
            logger.error(f"CSV import from {path} failed: {exc}")
            raise StorageError(f"Could not read {path}: {exc}") from exc
        for book in books:
            self.add_book(book)
        logger.info(f"Imported {len(books)} books from {path} ({skipped} skipped)")
        return ImportResult(imported=len(books), skipped=skipped)

    # ------------------------- Persistence ------------------------- #
    def save_data(self, path: Optional[str] = None) -> None:
        path = path or self.data_file
        try:
            write_snapshot(path, self.books, self.users)
        except OSError as exc:
            logger.error(f"Error saving data to {path}: {exc}")
            raise StorageError(f"Could not save data to {path}: {exc}") from exc
        logger.info(f"Data saved to {path}")

    def load_data(self, path: Optional[str] = None) -> bool:
        """Replace the catalog with the snapshot at ``path``.

        A missing or unreadable snapshot is the normal first-run case: the
        catalog is left as it was and False is returned.
        """
        path = path or self.data_file
        if not Path(path).exists():
            logger.info(f"No previous data found at {path}")
            return False
        try:
            books, users = read_snapshot(path)
        except (OSError, ValueError, KeyError, TypeError, IndexError, AttributeError) as exc:
            logger.warning(f"No previous data loaded; {path} is unreadable: {exc}")
            return False
        self.books = books
        self.users = users
        logger.info(f"Loaded {len(books)} books and {len(users)} users from {path}")
        return True
