"""
shared/utils/search.py
Free-text search across nested backend records.
"""

from typing import Any, Iterable


def _contains(value: Any, needle: str) -> bool:
    if value is None:
        return False
    if isinstance(value, dict):
        return any(_contains(v, needle) for v in value.values())
    if isinstance(value, (list, tuple)):
        return any(_contains(v, needle) for v in value)
    return needle in str(value).lower()


def deep_search(rows: Iterable[dict], text: str | None) -> list[dict]:
    """Rows where any nested value contains text, case-insensitively."""
    rows = list(rows)
    needle = (text or "").strip().lower()
    if not needle:
        return rows
    return [row for row in rows if _contains(row, needle)]
