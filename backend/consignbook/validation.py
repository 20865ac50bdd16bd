# Overview: Payload checks for catalog writes (products and partners).

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Float, Integer, String, Text

from .domain import MAX_PRICE_CENTS, MAX_QUANTITY, validate_commission_rate
from .errors import ValidationError


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns a client may write, and which a create must supply.
    Keys outside writable_fields are rejected.
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)


def _as_integer(key: str, value: Any) -> int:
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{key} must be a whole number")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
    raise ValidationError(f"{key} must be a whole number")


def _as_number(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")


def _as_text(col, value: Any) -> str:
    text = str(value).strip()
    if not text and not col.nullable:
        raise ValidationError(f"{col.key} cannot be blank")
    length = getattr(col.type, "length", None)
    if length and len(text) > length:
        raise ValidationError(f"{col.key} exceeds max length {length}")
    return text


def _clean(col, value: Any):
    if isinstance(col.type, Integer):
        return _as_integer(col.key, value)
    if isinstance(col.type, Float):
        return _as_number(col.key, value)
    if isinstance(col.type, (String, Text)):
        return _as_text(col, value)
    return value


def validate_payload(
    *,
    model,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Turn a client JSON object into a column patch for ``model``.

    - keys must be in policy.writable_fields and be real columns
    - values are coerced by column type (integers stay strict: no floats,
      no "1e3"), strings are stripped and length-checked
    - null is accepted only for nullable columns
    - with partial=False every required_on_create key must be present
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
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        col = columns.get(key)
        if col is None:
            raise ValidationError(f"Unknown field: {key}")
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue
        patch[key] = _clean(col, raw)
    return patch


def enforce_rules_product(patch: dict) -> None:
    """Price and counter ranges."""
    for key in ("cost_price_cents", "retail_price_cents"):
        value = patch.get(key)
        if value is None:
            continue
        if value < 0:
            raise ValidationError(f"{key} must be >= 0")
        if value > MAX_PRICE_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}")

    for key in ("stock", "min_stock_alert"):
        value = patch.get(key)
        if value is None:
            continue
        if value < 0:
            raise ValidationError(f"{key} must be >= 0")
        if value > MAX_QUANTITY:
            raise ValidationError(f"{key} cannot exceed {MAX_QUANTITY}")


def enforce_rules_partner(patch: dict) -> None:
    if patch.get("default_commission_rate") is not None:
        patch["default_commission_rate"] = validate_commission_rate(
            patch["default_commission_rate"], "default_commission_rate"
        )
