# Overview: Input coercion and the shared 4xx error taxonomy.

from __future__ import annotations
from datetime import date, datetime

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, Date
from sqlalchemy.orm import DeclarativeMeta

from .money import round_money
from .time_utils import parse_iso_date


# Largest amount a single money field accepts (Numeric(12, 2))
MAX_AMOUNT = Decimal("9999999999.99")


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.details = details or []


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., receipt already collected)."""


class NotFoundError(LookupError):
    """404-level missing receipt, order, customer or summary row."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def coerce_money(value: Any, field_name: str, *, allow_zero: bool = True) -> Decimal:
    """
    Strict money coercion for JSON input.

    Accepts ints, floats and numeric strings; rejects booleans, blanks,
    NaN/infinity and more than two decimal places.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValidationError(f"{field_name} must be a number")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    if amount != round_money(amount):
        raise ValidationError(f"{field_name} cannot have more than 2 decimal places")
    if amount < 0:
        raise ValidationError(f"{field_name} cannot be negative")
    if not allow_zero and amount == 0:
        raise ValidationError(f"{field_name} must be greater than 0")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field_name} cannot exceed {MAX_AMOUNT}")
    return round_money(amount)


def coerce_int(value: Any, field_name: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field_name} must be an integer")


def coerce_date(value: Any, field_name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f"{field_name} must be a date (YYYY-MM-DD)")


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Numeric):
        return coerce_money(value, col.key)

    if isinstance(coltype, Date):
        return coerce_date(value, col.key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch
