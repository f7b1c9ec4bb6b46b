from __future__ import annotations

from typing import Any


def as_int(v: Any) -> int:
    """Lenient int: missing or unparsable values become 0."""
    try:
        return int(float(v or 0))
    except (TypeError, ValueError, OverflowError):
        return 0


def as_float(v: Any) -> float:
    try:
        return float(v or 0)
    except (TypeError, ValueError):
        return 0.0
