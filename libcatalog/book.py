from __future__ import annotations


class Book:
    """Represents a single catalog entry and its availability."""

    def __init__(self, title: str, author: str, genre: str | None = None, available: bool = True) -> None:
        self.title = title.strip()
        self.author = author.strip()
        self.genre = (genre or "").strip()
        self._available = bool(available)

    @property
    def available(self) -> bool:
        return self._available

    @property
    def status(self) -> str:
        return "Available" if self._available else "Borrowed"

    def mark_borrowed(self) -> None:
        # Callers check availability first; borrowing twice is not an error here.
        self._available = False

    def mark_returned(self) -> None:
        self._available = True

    def matches_title(self, title: str) -> bool:
        return self.title.lower() == (title or "").strip().lower()

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} ({self.status})"

    def __repr__(self) -> str:
        return f"Book(title={self.title!r}, author={self.author!r}, genre={self.genre!r}, available={self._available})"

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "available": self._available,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            title=data["title"],
            author=data["author"],
            genre=data.get("genre"),
            available=data.get("available", True),
        )
