"""Typed sort keys for table cells."""

import re
from typing import Any, Tuple

from .formatting import parse_bytes, parse_duration

_NUMERIC_RE = re.compile(r"^[+-]?\d+(?:\.\d+)?%?$")
_PLACEHOLDERS = {"", "-", "--", "n/a", "<none>"}

RANK_PLACEHOLDER = -1
RANK_NUMERIC = 0
RANK_BYTES = 1
RANK_DURATION = 2
RANK_TEXT = 3


def cell_sort_key(text: str) -> Tuple[int, Any]:
    """
    Build a sort key for one cell.

    Numeric values are tried first, then byte sizes, then durations; anything
    else falls back to case-insensitive lexicographic order. The rank keeps
    values of different types from being compared directly.
    """
    value = text.strip()
    if value.lower() in _PLACEHOLDERS:
        return (RANK_PLACEHOLDER, 0.0)
    if _NUMERIC_RE.match(value):
        return (RANK_NUMERIC, float(value.rstrip("%")))
    size = parse_bytes(value)
    if size is not None:
        return (RANK_BYTES, size)
    seconds = parse_duration(value)
    if seconds is not None:
        return (RANK_DURATION, seconds)
    return (RANK_TEXT, value.lower())


def row_sort_key(cells, column: int) -> Tuple[int, Any]:
    # Rows too short for the column sort last in ascending order.
    if column >= len(cells):
        return (RANK_TEXT + 1, "")
    return cell_sort_key(cells[column])
