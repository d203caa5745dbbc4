"""Canonical identity document numbers."""
from __future__ import annotations

import re

_SEPARATORS = re.compile(r"[\s.\-]+")


class DocumentId(str):
    """Document number normalised for comparisons.

    Rolls are imported from spreadsheets where ``"1.020.304"``, ``" 1020304 "``
    and ``"1020304"`` all name the same person, so every lookup goes through
    this type instead of comparing raw strings.
    """

    def __new__(cls, raw: object) -> "DocumentId":
        if raw is None:
            raise ValueError("document number is required")
        value = _SEPARATORS.sub("", str(raw)).upper()
        if not value:
            raise ValueError("document number is required")
        return super().__new__(cls, value)

    @classmethod
    def parse(cls, raw: object) -> "DocumentId | None":
        """Return ``None`` instead of raising for blank input."""
        try:
            return cls(raw)
        except ValueError:
            return None


__all__ = ["DocumentId"]
