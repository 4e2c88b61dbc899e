"""Shared utility functions for blueprints and services.

is_blank:         None / empty / whitespace-only test for submitted values
parse_bool_flag:  form-style truthiness ("1", "true", True)
parse_int:        lenient int parsing for ids arriving as JSON keys or headers
as_utc:           normalise naive datetimes read back from SQLite
"""
from datetime import datetime, timezone

_TRUE_FLAGS = frozenset({"1", "true"})


def is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def parse_bool_flag(value) -> bool:
    """True for ``True`` and the form strings "1" / "true" (case-insensitive)."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_FLAGS


def parse_int(value):
    """Int or None; never raises."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def as_utc(value):
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
