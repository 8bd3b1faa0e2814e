"""Common utility functions."""

from typing import Any


def get_value(obj: Any, key: str, default: Any = None) -> Any:
    """Get value from dict or object attribute."""
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def truncate(text: str | None, char_limit: int | None) -> str:
    """Trim text to at most char_limit characters (None for no limit)."""
    if not text:
        return ""
    if char_limit and len(text) > char_limit:
        return text[:char_limit]
    return text


class DuplicateKeyError(KeyError):
    """An insert-only index was asked to insert a key it already holds."""
