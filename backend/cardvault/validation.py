# Overview: Payload validation against SQLAlchemy column metadata and per-resource write policies.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .models.vouchers import VOUCHER_TYPES, USAGE_LIMIT_TYPES
from .time_utils import parse_iso_datetime


# 9,999,999.99 in cents; keeps balances and thresholds in a sane range
MAX_AMOUNT_CENTS = 999_999_999

BARCODE_TYPES = {"CODE128", "CODE39", "EAN13", "EAN8", "UPCA", "QR", "PDF417", "AZTEC", "DATAMATRIX"}
RESOURCE_STATUSES = {"active", "archived", "used", "expired"}


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(key: str, value: Any) -> int:
    # bool is a subclass of int
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or 'e' in stripped.lower() or '.' in stripped:
            raise ValidationError(f"{key} must be a plain integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    if isinstance(coltype, Numeric):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        try:
            # str() keeps floats like 0.1 from turning into binary noise
            dec = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{col.key} must be a number")
        if not dec.is_finite():
            raise ValidationError(f"{col.key} must be a finite number")
        return dec

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        if not isinstance(value, (str, int)) or isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a string")
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

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
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
            if not col.nullable and col.default is None:
                raise ValidationError(f"{k} cannot be null")
            if not col.nullable:
                # Non-nullable column with a default: null means "use the default"
                continue
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and col.default is None:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_cents(patch: dict, key: str) -> None:
    if key in patch and patch[key] is not None:
        if patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")
        if patch[key] > MAX_AMOUNT_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}")


def _check_common(patch: dict) -> None:
    if "barcode_type" in patch and patch["barcode_type"] not in BARCODE_TYPES:
        raise ValidationError(f"barcode_type must be one of: {', '.join(sorted(BARCODE_TYPES))}")
    if "status" in patch and patch["status"] not in RESOURCE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(sorted(RESOURCE_STATUSES))}")


def enforce_rules_card(patch: dict) -> None:
    _check_common(patch)


def enforce_rules_voucher(patch: dict, existing=None) -> None:
    """
    Voucher business rules. existing is the stored voucher on update, so
    cross-field checks see the merged state.
    """
    _check_common(patch)
    _check_cents(patch, "min_purchase_amount_cents")

    def merged(key):
        if key in patch:
            return patch[key]
        return getattr(existing, key, None) if existing is not None else None

    voucher_type = merged("voucher_type")
    if "voucher_type" in patch and voucher_type not in VOUCHER_TYPES:
        raise ValidationError(f"voucher_type must be one of: {', '.join(sorted(VOUCHER_TYPES))}")
    if "usage_limit_type" in patch and patch["usage_limit_type"] not in USAGE_LIMIT_TYPES:
        raise ValidationError(
            f"usage_limit_type must be one of: {', '.join(sorted(USAGE_LIMIT_TYPES))}"
        )

    value = merged("value")
    if value is not None:
        if value <= 0:
            raise ValidationError("value must be positive")
        if voucher_type == "percentage" and value > 100:
            raise ValidationError("Percentage vouchers cannot exceed 100")

    valid_from, valid_until = merged("valid_from"), merged("valid_until")
    if valid_from is not None and valid_until is not None and valid_until < valid_from:
        raise ValidationError("valid_until must not be before valid_from")


def enforce_rules_gift_card(patch: dict) -> None:
    _check_common(patch)
    _check_cents(patch, "initial_balance_cents")
    if "currency" in patch:
        currency = (patch["currency"] or "").upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError("currency must be a 3-letter ISO code")
        patch["currency"] = currency
