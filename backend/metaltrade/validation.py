from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Guard against UZS typed into USD fields and similar slips
MAX_AMOUNT = 1_000_000_000_000.0


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate product id)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_number(value: Any, name: str, *, minimum: float | None = None, positive: bool = False) -> float:
    """
    Coerce JSON input to a finite float.

    Accepts ints, floats and numeric strings ("12,5" is read as 12.5).
    Booleans are rejected even though bool is an int subclass.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{name} must be a number")
    if isinstance(value, str):
        stripped = value.strip().replace(",", ".")
        if not stripped:
            raise ValidationError(f"{name} must be a number")
        try:
            value = float(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be a number")
    if not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number")

    number = float(value)
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be finite")
    if abs(number) > MAX_AMOUNT:
        raise ValidationError(f"{name} is out of range")
    if positive and number <= 0:
        raise ValidationError(f"{name} must be positive")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{name} must be >= {minimum:g}")
    return number


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Floats: quantities and money
    if isinstance(coltype, Float):
        return coerce_number(value, col.key)

    # Integers - reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.lstrip("-").isdigit():
                return int(stripped)
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

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

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
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


def enforce_rules_product(patch: dict, *, units: set[str], warehouses: set[str]) -> None:
    """Product rules not captured by column metadata."""
    for key in ("quantity", "price_per_unit", "cost_price", "min_stock_level"):
        if key in patch and patch[key] is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")

    if "unit" in patch and patch["unit"] not in units:
        raise ValidationError(f"unit must be one of: {', '.join(sorted(units))}")

    if patch.get("warehouse") is not None and patch["warehouse"] not in warehouses:
        raise ValidationError(f"warehouse must be one of: {', '.join(sorted(warehouses))}")
