"""
Cleaning utilities for externally-parsed data.

The resume parser and the question/scoring API mix "not found" style
placeholders into otherwise typed payloads. Everything that enters the
interview core passes through FieldCleaner first so that missing values
are represented as None (or an empty list) instead of magic strings.
"""
import re
from typing import Any, Iterable, List, Optional


# Placeholders the external services use for "no value"
NOT_FOUND_SENTINELS = {"not found", "n/a", "na", "none", "null", "unknown", "-"}

# What the question generator expects for a missing personal field
WIRE_NOT_FOUND = "not found"


class FieldCleaner:
    """
    Normalizes loosely-typed external fields at the boundary.
    """

    @classmethod
    def is_sentinel(cls, value: Any) -> bool:
        """Check whether a value is an absent-value placeholder."""
        if value is None:
            return True
        if isinstance(value, str):
            stripped = value.strip()
            return not stripped or stripped.lower() in NOT_FOUND_SENTINELS
        return False

    @classmethod
    def absent_if_sentinel(cls, value: Any) -> Optional[str]:
        """
        Convert a placeholder string into None.

        Args:
            value: Raw field value from an external payload

        Returns:
            The stripped string, or None if the value means "missing"
        """
        if cls.is_sentinel(value):
            return None
        return str(value).strip()

    @classmethod
    def clean_list(cls, values: Optional[Iterable[Any]]) -> List[str]:
        """
        Clean a list of strings: strip, drop placeholders, deduplicate.
        Order of first occurrence is preserved.
        Anything other than a list, tuple or string cleans to an empty list.
        """
        if isinstance(values, str):
            values = [values]
        if not values or not isinstance(values, (list, tuple)):
            return []

        cleaned: List[str] = []
        seen = set()
        for value in values:
            text = cls.absent_if_sentinel(value)
            if text is None:
                continue
            key = text.lower()
            if key in seen:
                continue
            seen.add(key)
            cleaned.append(text)
        return cleaned

    @classmethod
    def to_wire(cls, value: Optional[str]) -> str:
        """Re-encode an absent value the way the question generator expects it."""
        return value if value else WIRE_NOT_FOUND

    @staticmethod
    def clamp(value: Any, min_val: float, max_val: float, default: float) -> float:
        """Clamp a numeric value, falling back to default for junk input."""
        try:
            number = float(value)
        except (TypeError, ValueError):
            return default
        if number != number:  # NaN
            return default
        return max(min_val, min(max_val, number))

    @staticmethod
    def clean_answer_text(text: Optional[str]) -> str:
        """Collapse runs of whitespace inside an answer and trim the ends."""
        if not text:
            return ""
        return re.sub(r"[ \t]+", " ", text).strip()
