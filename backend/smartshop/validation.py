"""
Request payload checks.

Product writes are validated against the model's own column metadata: the
column type decides how a raw JSON value is coerced, `nullable` decides
whether null is accepted, and String lengths are enforced before the row
ever reaches the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text

from smartshop.time_utils import parse_iso_datetime


# Largest accepted price: 9,999,999.99
MAX_PRICE_CENTS = 999_999_999


class ValidationError(ValueError):
    """Bad input (400)."""


class ConflictError(ValueError):
    """Write conflicts with existing data (409), e.g. a duplicate barcode."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """Which fields a client may write, and which a create must include."""
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _to_int(key: str, value: Any) -> int:
    # bool is an int subclass; floats and "1.0"/"1e3" strings are refused
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text and (text.isdigit() or (text[0] in "+-" and text[1:].isdigit())):
            return int(text)
    raise ValidationError(f"{key} must be an integer")


def _to_float(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{key} must be a number")


def _to_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0"}:
        return value.strip().lower() in {"true", "1"}
    raise ValidationError(f"{key} must be true or false")


def _to_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f"{key} must be an ISO-8601 datetime")


def _to_string_list(key: str, value: Any) -> list[str]:
    if not isinstance(value, list):
        raise ValidationError(f"{key} must be a list")
    return [str(v).strip() for v in value if str(v).strip()]


def _to_text(key: str, value: Any) -> str:
    return str(value).strip()


# Order matters: checked with isinstance against the column type.
_COERCERS: list[tuple[type, Callable[[str, Any], Any]]] = [
    (Boolean, _to_bool),
    (Integer, _to_int),
    (Float, _to_float),
    (DateTime, _to_datetime),
    (JSON, _to_string_list),
    (String, _to_text),
    (Text, _to_text),
]


def _coerce(column, value: Any) -> Any:
    for coltype, coercer in _COERCERS:
        if isinstance(column.type, coltype):
            return coercer(column.key, value)
    return value


def validate_payload(*, model, payload: dict | None, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Return a cleaned patch containing only writable, coerced fields.

    partial=False is create semantics and enforces `required_on_create`;
    partial=True validates just the keys present.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(policy.required_on_create - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}

    for key, raw in payload.items():
        if key not in policy.writable_fields or key not in columns:
            raise ValidationError(f"Field not allowed: {key}")
        column = columns[key]

        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue

        value = _coerce(column, raw)
        if isinstance(value, str):
            if value == "" and not column.nullable:
                raise ValidationError(f"{key} cannot be blank")
            length = getattr(column.type, "length", None)
            if length and len(value) > length:
                raise ValidationError(f"{key} exceeds max length {length}")
        patch[key] = value

    return patch


def require_positive_int(payload: dict, key: str, *, default: int | None = None, allow_zero: bool = False) -> int:
    """Read an integer quantity from a JSON body."""
    raw = payload.get(key, default)
    if raw is None:
        raise ValidationError(f"{key} is required")
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValidationError(f"{key} must be an integer")
    if raw < 0 or (raw == 0 and not allow_zero):
        raise ValidationError(f"{key} must be {'>= 0' if allow_zero else '> 0'}")
    return raw
