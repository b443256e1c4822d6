"""Helpers for reading protocol payloads into models."""

import math
from typing import Any, cast

from snapcast_control.errors import PayloadError


def require_dict(value: Any, what: str) -> dict[str, Any]:
    """Return ``value`` as a dict or raise PayloadError."""
    if not isinstance(value, dict):
        raise PayloadError(f"{what} must be an object, got {type(value).__name__}")
    return cast(dict[str, Any], value)


def require_str(data: dict[str, Any], key: str, what: str) -> str:
    """Return the string at ``data[key]`` or raise PayloadError."""
    value = data.get(key)
    if not isinstance(value, str):
        raise PayloadError(f"{what} has no string '{key}'")
    return value


def require_list(data: dict[str, Any], key: str, what: str) -> list[Any]:
    """Return the list at ``data[key]`` (empty if absent) or raise PayloadError."""
    value = data.get(key, [])
    if not isinstance(value, list):
        raise PayloadError(f"{what} '{key}' must be a list")
    return cast(list[Any], value)


def finite_int(value: float, what: str) -> int:
    """Return a JSON number as int or raise PayloadError for NaN and infinity."""
    if isinstance(value, float) and not math.isfinite(value):
        raise PayloadError(f"{what} is not a finite number: {value}")
    return int(value)


def as_int(value: Any, default: int = 0) -> int:
    """Coerce a JSON number to int, falling back to ``default``.

    Raises:
        PayloadError: If ``value`` is NaN or infinite.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return finite_int(value, "number")
    return default
