from __future__ import annotations

from datetime import datetime
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum money value: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT_CENTS = 999_999_999


def require_object(payload: Any) -> dict:
    if payload is None:
        raise ValidationError("Request body must be a JSON object")
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def coerce_int(key: str, value: Any) -> int:
    """
    Strict integer coercion: ints and plain digit strings only.

    Rejects bools, floats, decimals and scientific notation.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def get_int(
    payload: dict,
    key: str,
    *,
    required: bool = False,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int | None:
    raw = payload.get(key)
    if raw is None:
        if required:
            raise ValidationError(f"Missing required field: {key}")
        return None
    value = coerce_int(key, raw)
    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{key} cannot exceed {maximum}")
    return value


def get_amount_cents(payload: dict, key: str, *, required: bool = False, minimum: int | None = 0) -> int | None:
    return get_int(payload, key, required=required, minimum=minimum, maximum=MAX_AMOUNT_CENTS)


def get_str(payload: dict, key: str, *, required: bool = False, max_length: int | None = None) -> str | None:
    raw = payload.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        if required:
            raise ValidationError(f"Missing required field: {key}")
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{key} must be a string")
    value = raw.strip()
    if max_length and len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value


def get_datetime(payload: dict, key: str) -> datetime | None:
    raw = payload.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{key} must be an ISO-8601 string")
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 date or datetime")


def get_bool(payload: dict, key: str, default: bool = False) -> bool:
    raw = payload.get(key)
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(raw, str) and raw.strip().lower() in ("false", "0", "no"):
        return False
    raise ValidationError(f"{key} must be a boolean")
