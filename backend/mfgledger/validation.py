from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import parse_iso_datetime, normalize_datetime


# Numeric(15, 4): 11 integer digits, 4 fractional
QUANTITY_PLACES = 4
MAX_QUANTITY = Decimal("99999999999.9999")

SKU_ALLOWED = set("ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - aliases: payload key -> column key, for columns whose attribute name
      differs from the public field name
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    aliases: dict[str, str] | None = None


def parse_decimal(value: Any, field: str) -> Decimal:
    """
    Strictly parse a quantity/cost into a Decimal with at most 4 places.

    Accepts int, Decimal, numeric strings and floats (via their repr, so
    2.5 stays 2.5). Rejects bools, NaN/Infinity and excess precision.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        if isinstance(value, float):
            dec = Decimal(repr(value))
        elif isinstance(value, (int, Decimal)):
            dec = Decimal(value)
        elif isinstance(value, str) and value.strip():
            dec = Decimal(value.strip())
        else:
            raise ValidationError(f"{field} must be a number")
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")

    if not dec.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if dec.as_tuple().exponent < -QUANTITY_PLACES:
        raise ValidationError(f"{field} allows at most {QUANTITY_PLACES} decimal places")
    if abs(dec) > MAX_QUANTITY:
        raise ValidationError(f"{field} exceeds {MAX_QUANTITY}")
    return dec


def parse_non_negative(value: Any, field: str) -> Decimal | None:
    if value is None:
        return None
    dec = parse_decimal(value, field)
    if dec < 0:
        raise ValidationError(f"{field} must be >= 0")
    return dec


def parse_datetime(value: Any, field: str) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return normalize_datetime(value)
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 datetime")
        return dt
    raise ValidationError(f"{field} must be an ISO-8601 datetime")


def optional_text(value: Any, field: str, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise ValidationError(f"{field} must be a string")
    text = str(value).strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def normalize_sku(value: Any) -> str:
    """SKUs are uppercase letters, digits and hyphens; input is uppercased."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("sku is required")
    sku = value.strip().upper()
    if len(sku) > 100:
        raise ValidationError("sku exceeds max length 100")
    if not set(sku) <= SKU_ALLOWED:
        raise ValidationError("sku may only contain letters, numbers and hyphens")
    return sku


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    # Keyed by mapped attribute name (Item.attributes -> "metadata" column)
    return {attr.key: attr.columns[0] for attr in model.__mapper__.column_attrs}


def _coerce_value(key: str, col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Numeric):
        return parse_decimal(value, key)

    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value.strip())
        raise ValidationError(f"{key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{key} must be a boolean")

    if isinstance(coltype, DateTime):
        return parse_datetime(value, key)

    if isinstance(coltype, JSON):
        if not isinstance(value, dict):
            raise ValidationError(f"{key} must be an object")
        return value

    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{key} must be a string")
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
    Returns a cleaned patch dict keyed by the public field names.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
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

    aliases = policy.aliases or {}
    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if aliases.get(k, k) not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[aliases.get(k, k)]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(k, col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch
