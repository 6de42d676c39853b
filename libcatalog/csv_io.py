"""CSV export and import of the book list."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterable, List

from libcatalog.book import Book

logger = logging.getLogger(__name__)

CSV_HEADER = ["Title", "Author", "Genre", "Status"]


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0


def dump_books_csv(stream: IO[str], books: Iterable[Book]) -> int:
    """Write the header and one row per book. Returns the number of book rows."""
    writer = csv.writer(stream)
    writer.writerow(CSV_HEADER)
    count = 0
    for book in books:
        writer.writerow([book.title, book.author, book.genre, book.status])
        count += 1
    return count


def write_books_csv(path: str | Path, books: Iterable[Book]) -> int:
    with open(path, "w", newline="", encoding="utf-8") as csvfile:
        return dump_books_csv(csvfile, books)


def read_books_csv(path: str | Path) -> tuple[List[Book], int]:
    """Parse books from a CSV written by ``write_books_csv``.

    The first line is always treated as the header. Rows with fewer than three
    fields are skipped and counted; the Status column is ignored and every
    book comes back available.
    """
    books: List[Book] = []
    skipped = 0
    with open(path, "r", newline="", encoding="utf-8") as csvfile:
        reader = csv.reader(csvfile)
        next(reader, None)
        for row in reader:
            if not row:
                continue
            if len(row) < 3:
                skipped += 1
                logger.warning(f"Skipping malformed CSV line {reader.line_num} in {path}: {row!r}")
                continue
            books.append(Book(row[0], row[1], row[2]))
    return books, skipped
