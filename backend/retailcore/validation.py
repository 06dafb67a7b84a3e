# Overview: Strict coercion of request and service inputs.
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Iterable

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum price: 9,999,999.99 in major units (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


def coerce_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Strict integer coercion.

    Accepts ints and plain digit strings. Rejects bools, floats, decimals and
    scientific notation so that "1.5" or 1e3 never silently become a quantity.
    """
    if value is None:
        raise ValidationError(f"{field} is required")

    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} cannot exceed {maximum}")
    return result


def coerce_positive_int(value: Any, field: str) -> int:
    return coerce_int(value, field, minimum=1)


def coerce_optional_int(value: Any, field: str, *, minimum: int | None = None) -> int | None:
    if value is None:
        return None
    return coerce_int(value, field, minimum=minimum)


def coerce_price_cents(value: Any, field: str) -> int:
    return coerce_int(value, field, minimum=0, maximum=MAX_PRICE_CENTS)


def coerce_choice(value: Any, field: str, allowed: Iterable[str]) -> str:
    allowed = tuple(allowed)
    if not isinstance(value, str) or value.strip().upper() not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(allowed)}")
    return value.strip().upper()


def coerce_date_range(start: Any, end: Any) -> tuple[datetime | None, datetime | None]:
    """
    Turn start_date/end_date query values into a half-open [from, before) window.

    A date-only end ("2026-10-18") covers that whole day.
    """
    bounds = []
    for value, field in ((start, "start_date"), (end, "end_date")):
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{field} must be an ISO-8601 date or datetime")
        try:
            bounds.append(parse_iso_datetime(value))
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 date or datetime")

    created_from, created_before = bounds
    if created_before is not None and len(end.strip()) == 10:
        created_before += timedelta(days=1)
    if created_from and created_before and created_from >= created_before:
        raise ValidationError("start_date must be before end_date")
    return created_from, created_before


def optional_text(value: Any, field: str, *, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def require_json_object(payload: Any) -> dict:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def require_fields(payload: dict, *fields: str) -> None:
    missing = [f for f in fields if payload.get(f) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
