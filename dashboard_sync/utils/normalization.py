"""
String normalization for collection name matching.

Remote and local collection names are compared after normalization so
that "Mes Tâches", "mes taches" and " MES  TÂCHES " refer to the same
collection.
"""

from __future__ import annotations

import re
import unicodedata


def normalize_name(value: str | None, strip_punctuation: bool = False) -> str:
    """
    Normalize a display name for comparison.

    Args:
        value: Name to normalize
        strip_punctuation: If True, remove non-alphanumeric characters.
                          If False, only normalize unicode, case and whitespace.

    Returns:
        Lowercase name without accents and with collapsed whitespace
    """
    if not value:
        return ""

    # Decompose accents and drop the combining marks
    normalized = unicodedata.normalize("NFKD", value)
    normalized = "".join(c for c in normalized if not unicodedata.combining(c))

    normalized = normalized.casefold()

    if strip_punctuation:
        normalized = re.sub(r"[^\w\s]", "", normalized)

    return re.sub(r"\s+", " ", normalized).strip()


def names_match(first: str | None, second: str | None) -> bool:
    """Check whether two display names refer to the same collection."""
    left = normalize_name(first)
    return bool(left) and left == normalize_name(second)
