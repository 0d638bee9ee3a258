from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from sqlalchemy import Boolean, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Upper bound for any single quantity or money value accepted from clients
MAX_DECIMAL_VALUE = Decimal("999999999.999")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def parse_int(value: Any, field: str, *, minimum: int | None = None, default: int | None = None) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if value is None:
        if default is not None:
            return default
        raise ValidationError(f"{field} is required", {"field": field})

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", {"field": field})
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer", {"field": field})
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", {"field": field})
    else:
        raise ValidationError(f"{field} must be an integer", {"field": field})

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", {"field": field})
    return result


def parse_decimal(
    value: Any,
    field: str,
    *,
    minimum: Decimal | None = None,
    positive: bool = False,
    default: Decimal | None = None,
) -> Decimal:
    """
    Coerce JSON numbers/strings into Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its binary expansion.
    """
    if value is None:
        if default is not None:
            return default
        raise ValidationError(f"{field} is required", {"field": field})

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", {"field": field})
    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, (int, float)):
            result = Decimal(str(value))
        elif isinstance(value, str) and value.strip():
            result = Decimal(value.strip())
        else:
            raise ValidationError(f"{field} must be a number", {"field": field})
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number", {"field": field})

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", {"field": field})
    if abs(result) > MAX_DECIMAL_VALUE:
        raise ValidationError(f"{field} is out of range", {"field": field})
    if positive and result <= 0:
        raise ValidationError(f"{field} must be > 0", {"field": field})
    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", {"field": field})
    return result


def parse_choice(value: Any, field: str, choices: Iterable[str], *, default: str | None = None) -> str:
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError(f"{field} is required", {"field": field})
    allowed = sorted(choices)
    if not isinstance(value, str) or value not in allowed:
        raise ValidationError(
            f"{field} must be one of: {', '.join(allowed)}",
            {"field": field, "allowed": allowed},
        )
    return value


def require_text(value: Any, field: str, *, max_length: int = 500) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", {"field": field})
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", {"field": field})
    return text


def optional_text(value: Any, field: str, *, max_length: int = 255) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", {"field": field})
    return text


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None
    if isinstance(coltype, Integer):
        return parse_int(value, col.key)
    if isinstance(coltype, Numeric):
        return parse_decimal(value, col.key)
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean", {"field": col.key})
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
    Validate + normalize incoming JSON against column metadata and a policy allowlist.

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
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", {"fields": missing})

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", {"field": k})
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", {"field": k})

    patch: dict = {}
    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", {"field": k})
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            raise ValidationError(f"{k} cannot be blank", {"field": k})
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", {"field": k})

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """Catalog rules not captured by column metadata alone."""
    for field in ("unit_cost_per_box", "unit_cost_per_kg", "unit_price_per_box", "unit_price_per_kg"):
        if patch.get(field) is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0", {"field": field})

    if "box_to_kg_ratio" in patch and (patch["box_to_kg_ratio"] is None or patch["box_to_kg_ratio"] <= 0):
        raise ValidationError("box_to_kg_ratio must be > 0", {"field": "box_to_kg_ratio"})

    if patch.get("boxes") is not None and patch["boxes"] < 0:
        raise ValidationError("boxes must be >= 0", {"field": "boxes"})
    if patch.get("loose_kg") is not None and patch["loose_kg"] < 0:
        raise ValidationError("loose_kg must be >= 0", {"field": "loose_kg"})
    if patch.get("low_stock_threshold") is not None and patch["low_stock_threshold"] < 0:
        raise ValidationError("low_stock_threshold must be >= 0", {"field": "low_stock_threshold"})


def parse_limit(value: Any, *, default: int, maximum: int) -> int:
    """List endpoint ?limit= handling; clamps to maximum."""
    if value is None or value == "":
        return default
    return min(parse_int(value, "limit", minimum=1), maximum)
