"""Whole-catalog snapshot persistence.

The catalog is written as a single JSON document holding the book list
followed by the user list. Loans point at books by their index in the
snapshot's book table so that, once read back, an open loan and the catalog
share the same ``Book`` object. Books that only survive in loan history
(removed from the catalog after being returned) are appended to the table
after the catalog's own books.

The format is only meant to be read back by this package.
"""

from __future__ import annotations

import json
import os
from datetime import date
from pathlib import Path
from typing import Dict, List, Tuple

from libcatalog.book import Book
from libcatalog.loan import Loan
from libcatalog.user import User

SNAPSHOT_VERSION = 1


def encode_snapshot(books: List[Book], users: List[User]) -> dict:
    table: List[Book] = list(books)
    index: Dict[int, int] = {id(book): i for i, book in enumerate(table)}

    def book_ref(book: Book) -> int:
        if id(book) not in index:
            index[id(book)] = len(table)
            table.append(book)
        return index[id(book)]

    def loan_entry(loan: Loan) -> dict:
        return {
            "book": book_ref(loan.book),
            "due_date": loan.due_date.isoformat(),
            "returned_on": loan.returned_on.isoformat() if loan.returned_on else None,
        }

    raw_users = [
        {
            "name": user.name,
            "active": [loan_entry(loan) for loan in user.active_loans],
            "history": [loan_entry(loan) for loan in user.history],
        }
        for user in users
    ]
    return {
        "version": SNAPSHOT_VERSION,
        "catalog_size": len(books),
        "books": [book.to_dict() for book in table],
        "users": raw_users,
    }


def decode_snapshot(data: dict) -> Tuple[List[Book], List[User]]:
    """Rebuild books and users from ``encode_snapshot`` output.

    Raises ValueError, KeyError, TypeError, IndexError or AttributeError on
    a document that was not produced by ``encode_snapshot``.
    """
    if not isinstance(data, dict) or data.get("version") != SNAPSHOT_VERSION:
        raise ValueError("Unsupported snapshot format.")

    table = [Book.from_dict(item) for item in data["books"]]
    catalog_size = int(data["catalog_size"])
    if not 0 <= catalog_size <= len(table):
        raise ValueError("Snapshot catalog size is out of range.")

    def loan_from(entry: dict) -> Loan:
        returned_on = entry.get("returned_on")
        return Loan(
            book=table[int(entry["book"])],
            due_date=date.fromisoformat(entry["due_date"]),
            returned_on=date.fromisoformat(returned_on) if returned_on else None,
        )

    users: List[User] = []
    for raw in data["users"]:
        user = User(raw["name"])
        user.active_loans = [loan_from(entry) for entry in raw.get("active", [])]
        user.history = [loan_from(entry) for entry in raw.get("history", [])]
        users.append(user)
    return table[:catalog_size], users


def write_snapshot(path: str | Path, books: List[Book], users: List[User]) -> None:
    """Write the snapshot atomically (temporary file, then replace)."""
    path = Path(path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(encode_snapshot(books, users), f, ensure_ascii=False, indent=2)
    os.replace(tmp_path, path)


def read_snapshot(path: str | Path) -> Tuple[List[Book], List[User]]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return decode_snapshot(data)
