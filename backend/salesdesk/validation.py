from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Quantities on one sale, restock or opening balance: 1,000,000 boxes and 1,000 t
MAX_QUANTITY_BOXES = 1_000_000
MAX_QUANTITY_GRAMS = 1_000_000_000

# Stock counters and money totals must fit a 32-bit INTEGER column on every backend
MAX_COLUMN_INT = 2_147_483_647

# Reasons on proposals and decisions are free text, bounded like the old UI form
MAX_REASON_LENGTH = 500

GRAMS_PER_KG = 1000

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def coerce_int(value: Any, field: str) -> int:
    """Strict integer parsing: rejects floats, decimals and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_non_negative_int(value: Any, field: str) -> int:
    number = coerce_int(value, field)
    if number < 0:
        raise ValidationError(f"{field} must be >= 0")
    return number


def coerce_price_cents(value: Any, field: str) -> int:
    cents = coerce_non_negative_int(value, field)
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")
    return cents


def parse_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        # str() first so floats like 0.1 keep their printed value
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return number


def kg_to_grams(value: Any, field: str, *, allow_negative: bool = False) -> int:
    """
    Convert a kilogram amount (number or decimal string) to whole grams.

    Kilograms are accepted with at most three fractional digits; anything
    finer cannot be stored and is rejected rather than rounded.
    """
    kg = parse_decimal(value, field)
    if kg < 0 and not allow_negative:
        raise ValidationError(f"{field} must be >= 0")
    grams = kg * GRAMS_PER_KG
    if grams != grams.to_integral_value():
        raise ValidationError(f"{field} supports at most 3 decimal places")
    return int(grams)


def coerce_box_quantity(value: Any, field: str) -> int:
    """Whole boxes, 0 <= n <= MAX_QUANTITY_BOXES."""
    boxes = coerce_non_negative_int(value, field)
    if boxes > MAX_QUANTITY_BOXES:
        raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY_BOXES}")
    return boxes


def coerce_kg_quantity(value: Any, field: str) -> int:
    """Kilograms in, whole grams out, bounded by MAX_QUANTITY_GRAMS."""
    kg = parse_decimal(value, field)
    if kg > Decimal(MAX_QUANTITY_GRAMS) / GRAMS_PER_KG:
        raise ValidationError(f"{field} cannot exceed {grams_to_kg(MAX_QUANTITY_GRAMS)} kg")
    return kg_to_grams(kg, field)


def grams_to_kg(grams: int | None) -> str | None:
    """Serialize grams as a kilogram decimal string, e.g. 2500 -> "2.500"."""
    if grams is None:
        return None
    return str((Decimal(grams) / GRAMS_PER_KG).quantize(Decimal("0.001")))


def line_total_cents(boxes: int, box_price_cents: int, grams: int, kg_price_cents: int) -> int:
    """boxes x box price + kg x kg price, rounded half-up to the cent."""
    kg_part = (Decimal(grams) * Decimal(kg_price_cents) / GRAMS_PER_KG).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    total = boxes * box_price_cents + int(kg_part)
    if total > MAX_COLUMN_INT:
        raise ValidationError(f"Sale total cannot exceed {MAX_COLUMN_INT} cents")
    return total


def require_reason(value: Any, field: str = "reason") -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    reason = value.strip()
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError(f"{field} exceeds max length {MAX_REASON_LENGTH}")
    return reason


def optional_string(value: Any, field: str, max_length: int) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    cleaned = value.strip()
    if not cleaned:
        return None
    if len(cleaned) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return cleaned


def optional_email(value: Any, field: str = "client_email") -> str | None:
    email = optional_string(value, field, 150)
    if email is not None and not _EMAIL_RE.match(email):
        raise ValidationError(f"{field} must be a valid email address")
    return email


def require_choice(value: Any, allowed: set[str] | frozenset[str], field: str) -> str:
    if value not in allowed:
        raise ValidationError(
            f"{field} must be one of: {', '.join(sorted(allowed))}",
        )
    return value


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Numeric):
        return parse_decimal(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

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


def parse_pagination(args, *, default_limit: int, max_limit: int) -> tuple[int, int]:
    """Read page/limit query args (1-based page)."""
    page = coerce_int(args.get("page", 1), "page")
    limit = coerce_int(args.get("limit", default_limit), "limit")
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1 or limit > max_limit:
        raise ValidationError(f"limit must be between 1 and {max_limit}")
    return page, limit
