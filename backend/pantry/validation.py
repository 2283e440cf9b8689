# Overview: Request parsing and field validation for API payloads.

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .models.coupons import VALID_COUPON_TYPES, COUPON_TYPE_PERCENTAGE
from .models.orders import ORDER_STATUSES
from .time_utils import parse_iso_datetime, as_naive_utc


# Maximum price: 9,999,999.99 in major units (999,999,999 minor units)
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT_CENTS = 999_999_999

SESSION_TTL_MIN_MINUTES = 15
SESSION_TTL_MAX_MINUTES = 480

ORDER_MAX_LINES = 50
LINE_MAX_QUANTITY = 20
LINE_NOTES_MAX_LENGTH = 200
ORDER_NOTES_MAX_LENGTH = 500

LIST_DEFAULT_LIMIT = 50
LIST_MAX_LIMIT = 100


class FieldErrors:
    """Collects field-level messages; raises one ValidationError at the end."""

    def __init__(self):
        self.errors: dict[str, list[str]] = {}

    def add(self, field: str, message: str) -> None:
        self.errors.setdefault(field, []).append(message)

    def raise_if_any(self) -> None:
        if self.errors:
            raise ValidationError("Validation failed", details=self.errors)


def _strict_int(value: Any) -> int:
    """
    Integers only: rejects floats, booleans, scientific notation and decimals.
    Raises ValueError with a user-facing reason.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValueError("must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValueError("must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValueError("must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValueError("must be an integer")
    if isinstance(value, float):
        raise ValueError("must be an integer, not a decimal")
    raise ValueError("must be an integer")


def int_field(
    data: dict,
    field: str,
    errors: FieldErrors,
    *,
    required: bool = False,
    default: int | None = None,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int | None:
    raw = data.get(field)
    if raw is None:
        if required:
            errors.add(field, "is required")
        return default

    try:
        value = _strict_int(raw)
    except ValueError as exc:
        errors.add(field, str(exc))
        return None

    if min_value is not None and value < min_value:
        errors.add(field, f"must be >= {min_value}")
        return None
    if max_value is not None and value > max_value:
        errors.add(field, f"must be <= {max_value}")
        return None
    return value


def str_field(
    data: dict,
    field: str,
    errors: FieldErrors,
    *,
    required: bool = False,
    max_length: int | None = None,
    choices: tuple[str, ...] | None = None,
) -> str | None:
    raw = data.get(field)
    if raw is None:
        if required:
            errors.add(field, "is required")
        return None

    if not isinstance(raw, str):
        errors.add(field, "must be a string")
        return None

    value = raw.strip()
    if not value:
        if required:
            errors.add(field, "cannot be blank")
        return None

    if max_length is not None and len(value) > max_length:
        errors.add(field, f"exceeds max length {max_length}")
        return None

    if choices is not None and value not in choices:
        errors.add(field, f"must be one of {', '.join(choices)}")
        return None
    return value


def uuid_field(data: dict, field: str, errors: FieldErrors, *, required: bool = True) -> str | None:
    value = str_field(data, field, errors, required=required, max_length=36)
    if value is None:
        return None
    try:
        return str(uuid.UUID(value))
    except ValueError:
        errors.add(field, "must be a UUID")
        return None


def _require_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload", details={"body": ["must be a JSON object"]})
    return payload


# =============================================================================
# REQUEST BODIES
# =============================================================================

def parse_open_session(payload: Any, default_ttl: int) -> dict:
    data = _require_object(payload)
    errors = FieldErrors()
    parsed = {
        "space_code": str_field(data, "qr_code", errors, required=True, max_length=64),
        "ttl_minutes": int_field(
            data, "ttl_minutes", errors,
            default=default_ttl,
            min_value=SESSION_TTL_MIN_MINUTES,
            max_value=SESSION_TTL_MAX_MINUTES,
        ),
        "guest_name": str_field(data, "guest_name", errors, max_length=120),
        "chair_number": int_field(data, "chair_number", errors, min_value=1),
    }
    errors.raise_if_any()
    return parsed


def _parse_order_line(index: int, raw: Any, errors: FieldErrors) -> dict | None:
    prefix = f"items[{index}]"
    if not isinstance(raw, dict):
        errors.add(prefix, "must be an object")
        return None

    line_errors = FieldErrors()
    item_id = int_field(raw, "item_id", line_errors, required=True, min_value=1)
    quantity = int_field(raw, "quantity", line_errors, required=True, min_value=1, max_value=LINE_MAX_QUANTITY)
    notes = str_field(raw, "notes", line_errors, max_length=LINE_NOTES_MAX_LENGTH)

    options = raw.get("options")
    if options is not None:
        if not isinstance(options, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in options.items()
        ):
            line_errors.add("options", "must be an object of string values")
            options = None

    for field, messages in line_errors.errors.items():
        for message in messages:
            errors.add(f"{prefix}.{field}", message)
    if line_errors.errors:
        return None

    return {"item_id": item_id, "quantity": quantity, "options": options, "notes": notes}


def parse_create_order(payload: Any) -> dict:
    data = _require_object(payload)
    errors = FieldErrors()

    session_id = uuid_field(data, "session_id", errors)

    raw_items = data.get("items")
    items: list[dict] = []
    if not isinstance(raw_items, list) or not raw_items:
        errors.add("items", "must be a non-empty list")
    elif len(raw_items) > ORDER_MAX_LINES:
        errors.add("items", f"cannot contain more than {ORDER_MAX_LINES} lines")
    else:
        for index, raw in enumerate(raw_items):
            line = _parse_order_line(index, raw, errors)
            if line:
                items.append(line)

    parsed = {
        "session_id": session_id,
        "items": items,
        "coupon_code": str_field(data, "coupon_code", errors, max_length=20),
        "chair_number": int_field(data, "chair_number", errors, min_value=1),
        "notes": str_field(data, "notes", errors, max_length=ORDER_NOTES_MAX_LENGTH),
    }
    errors.raise_if_any()
    return parsed


def parse_status_update(payload: Any) -> str:
    data = _require_object(payload)
    errors = FieldErrors()
    status = str_field(data, "status", errors, required=True, choices=ORDER_STATUSES)
    errors.raise_if_any()
    return status


def parse_order_list_query(args) -> dict:
    errors = FieldErrors()
    data = args.to_dict()
    parsed = {
        "status": str_field(data, "status", errors, choices=ORDER_STATUSES),
        "limit": int_field(data, "limit", errors, default=LIST_DEFAULT_LIMIT, min_value=1, max_value=LIST_MAX_LIMIT),
        "offset": int_field(data, "offset", errors, default=0, min_value=0),
    }
    errors.raise_if_any()
    return parsed


def parse_initiate_payment(payload: Any) -> str:
    data = _require_object(payload)
    errors = FieldErrors()
    order_id = uuid_field(data, "order_id", errors)
    errors.raise_if_any()
    return order_id


def parse_verify_payment(payload: Any) -> dict:
    data = _require_object(payload)
    errors = FieldErrors()
    parsed = {
        "order_id": uuid_field(data, "order_id", errors),
        "payment_id": str_field(data, "payment_id", errors, required=True, max_length=64),
        "provider_order_id": str_field(data, "provider_order_id", errors, required=True, max_length=64),
        "signature": str_field(data, "signature", errors, required=True, max_length=256),
    }
    errors.raise_if_any()
    return parsed


def parse_refund(payload: Any) -> int | None:
    data = _require_object(payload)
    errors = FieldErrors()
    amount = int_field(data, "amount_cents", errors, min_value=1, max_value=MAX_AMOUNT_CENTS)
    errors.raise_if_any()
    return amount


def parse_coupon_validation(payload: Any) -> dict:
    data = _require_object(payload)
    errors = FieldErrors()
    parsed = {
        "code": str_field(data, "code", errors, required=True, max_length=20),
        "order_amount_cents": int_field(
            data, "order_amount_cents", errors, required=True, min_value=1, max_value=MAX_AMOUNT_CENTS,
        ),
    }
    errors.raise_if_any()
    return parsed


# =============================================================================
# MODEL-DRIVEN PAYLOADS (admin edits)
# =============================================================================

@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(key: str, col, value: Any):
    coltype = col.type

    if isinstance(coltype, Integer):
        try:
            return _strict_int(value)
        except ValueError as exc:
            raise ValidationError(f"{key} {exc}", details={key: [str(exc)]})

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{key} must be a boolean", details={key: ["must be a boolean"]})

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        dt = None
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                dt = None
        if dt is None:
            raise ValidationError(f"{key} must be an ISO-8601 datetime", details={key: ["must be an ISO-8601 datetime"]})
        return dt

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: Any,
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
    payload = _require_object(payload)

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={f: ["is required"] for f in missing},
            )

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields or k not in cols:
            raise ValidationError(f"Field not allowed: {k}", details={k: ["is not writable"]})

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", details={k: ["cannot be null"]})
            patch[k] = None
            continue

        val = _coerce_value(k, col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", details={k: ["cannot be blank"]})

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(
                    f"{k} exceeds max length {col.type.length}",
                    details={k: [f"exceeds max length {col.type.length}"]},
                )

        patch[k] = val

    return patch


COUPON_POLICY = ModelValidationPolicy(
    writable_fields={
        "code", "description", "discount_type", "value",
        "min_order_amount_cents", "max_discount_cents",
        "usage_limit", "per_user_limit",
        "valid_from", "valid_until", "is_active",
    },
    required_on_create={"code", "discount_type", "value"},
)


def enforce_rules_coupon(patch: dict, current: dict | None = None) -> None:
    """
    Coupon business rules that are not captured by SQLAlchemy metadata alone.
    `current` holds the stored values for patch semantics.
    """
    merged = dict(current or {})
    merged.update(patch)
    errors = FieldErrors()

    if "code" in patch:
        code = patch["code"]
        if len(code) < 3:
            errors.add("code", "must be at least 3 characters")
        patch["code"] = code.upper()

    discount_type = merged.get("discount_type")
    if "discount_type" in patch and discount_type not in VALID_COUPON_TYPES:
        errors.add("discount_type", f"must be one of {', '.join(VALID_COUPON_TYPES)}")

    value = merged.get("value")
    if value is not None:
        if value <= 0:
            errors.add("value", "must be > 0")
        elif discount_type == COUPON_TYPE_PERCENTAGE and value > 100:
            errors.add("value", "must be <= 100 for PERCENTAGE coupons")
        elif value > MAX_AMOUNT_CENTS:
            errors.add("value", f"cannot exceed {MAX_AMOUNT_CENTS}")

    for key in ("min_order_amount_cents", "max_discount_cents", "usage_limit", "per_user_limit"):
        if patch.get(key) is not None and patch[key] <= 0:
            errors.add(key, "must be > 0")

    if merged.get("max_discount_cents") is not None and discount_type != COUPON_TYPE_PERCENTAGE:
        errors.add("max_discount_cents", "only applies to PERCENTAGE coupons")

    valid_from = merged.get("valid_from")
    valid_until = merged.get("valid_until")
    if valid_from and valid_until and as_naive_utc(valid_until) <= as_naive_utc(valid_from):
        errors.add("valid_until", "must be after valid_from")

    errors.raise_if_any()


def request_json(req) -> Any:
    """Body of a Flask request as parsed JSON; None for an empty body."""
    if not req.get_data(cache=True):
        return None
    payload = req.get_json(silent=True)
    if payload is None:
        raise ValidationError("Malformed JSON body", details={"body": ["must be valid JSON"]})
    return payload
