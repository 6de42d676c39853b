from datetime import date
from typing import Optional

from libcatalog.errors import MalformedInputError


class TextValidator:
    """Emptiness checks for titles, authors and user names."""

    @staticmethod
    def _is_non_empty(text: Optional[str]) -> bool:
        return text is not None and bool(text.strip())

    @staticmethod
    def validate_title(title: Optional[str]) -> bool:
        return TextValidator._is_non_empty(title)

    @staticmethod
    def validate_author(author: Optional[str]) -> bool:
        return TextValidator._is_non_empty(author)

    @staticmethod
    def validate_name(name: Optional[str]) -> bool:
        return TextValidator._is_non_empty(name)

    @staticmethod
    def require(value: Optional[str], field: str) -> str:
        if not TextValidator._is_non_empty(value):
            raise MalformedInputError(f"{field} cannot be empty.")
        return value.strip()


class DateValidator:
    """Parses the YYYY-MM-DD dates typed at the prompt."""

    @staticmethod
    def parse(raw: Optional[str]) -> Optional[date]:
        """Return None for blank input, a date for a valid one."""
        if raw is None or not raw.strip():
            return None
        try:
            return date.fromisoformat(raw.strip())
        except ValueError as exc:
            raise MalformedInputError(f"Invalid date '{raw.strip()}'. Use YYYY-MM-DD.") from exc
