from __future__ import annotations

from datetime import date
from typing import List, Optional

from libcatalog.book import Book
from libcatalog.loan import Loan


class User:
    """A borrower with open loans and a history of returned ones."""

    def __init__(self, name: str) -> None:
        self.name = name.strip()
        self.active_loans: List[Loan] = []
        self.history: List[Loan] = []

    @property
    def has_active_loans(self) -> bool:
        return bool(self.active_loans)

    @property
    def borrowed_books(self) -> List[Book]:
        return [loan.book for loan in self.active_loans]

    def matches_name(self, name: str) -> bool:
        return self.name.lower() == (name or "").strip().lower()

    def borrow(self, book: Book, due_date: date) -> Loan:
        """Open a loan for ``book``. The catalog has already checked availability."""
        loan = Loan(book, due_date)
        self.active_loans.append(loan)
        book.mark_borrowed()
        return loan

    def return_by_title(self, title: str, now: Optional[date] = None) -> bool:
        for loan in self.active_loans:
            if loan.book.matches_title(title):
                loan.close(now)
                self.history.append(loan)
                self.active_loans.remove(loan)
                loan.book.mark_returned()
                return True
        return False

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"User: {self.name} | Borrowed Books: {len(self.active_loans)}"

    def __repr__(self) -> str:
        return f"User(name={self.name!r}, active={len(self.active_loans)}, history={len(self.history)})"
