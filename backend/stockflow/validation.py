from __future__ import annotations

from typing import Any

from .errors import ValidationError
from stockflow.time_utils import parse_iso_datetime


def coerce_int(key: str, value: Any) -> int:
    """Strict integer parsing: rejects bools, floats, decimals and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def get_int(payload: dict, key: str, *, required: bool = True, default: int | None = None) -> int | None:
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return default
    return coerce_int(key, value)


def get_bool(payload: dict, key: str, *, default: bool = False) -> bool:
    value = payload.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no"):
        return False
    raise ValidationError(f"{key} must be a boolean")


def get_str(payload: dict, key: str, *, required: bool = False, max_length: int = 255) -> str | None:
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    value = value.strip()
    if required and not value:
        raise ValidationError(f"{key} is required")
    if len(value) > max_length:
        raise ValidationError(f"{key} must be at most {max_length} characters")
    return value


def get_datetime(payload: dict, key: str):
    value = payload.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")


def get_items(payload: dict, key: str, fields: tuple[str, ...]) -> list[dict]:
    """Parse a list of line objects, coercing the named integer fields."""
    raw = payload.get(key)
    if raw is None:
        raise ValidationError(f"{key} are required")
    if not isinstance(raw, list):
        raise ValidationError(f"{key} must be a list")
    items = []
    for i, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"{key}[{i}] must be an object")
        items.append({f: get_int(entry, f) for f in fields})
    return items
