from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from pharmstock.money import MAX_PRICE_CENTS, format_price, parse_price_to_cents


MAX_CODE_LENGTH = 50
MAX_NOTES_LENGTH = 1000


class ValidationError(ValueError):
    """400-level input problem, addressable per field."""

    def __init__(self, message: str | None = None, fields: dict[str, str] | None = None):
        self.fields = dict(fields or {})
        if message is None:
            message = "; ".join(f"{k}: {v}" for k, v in sorted(self.fields.items())) or "Invalid input"
        super().__init__(message)


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate code + price)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - virtual_fields: accepted keys that are not model columns (validated by rule functions)
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    virtual_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects floats, bools, decimals and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string")
        text = str(value).strip()
        # Optional text fields treat blank as "not provided"
        if text == "" and col.nullable:
            return None
        return text

    # Default: leave as-is
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

    Collects every problem before raising, so the caller gets one
    ValidationError whose .fields maps each offending key to its message.
    Virtual fields are passed through untouched for rule functions.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: dict[str, str] = {}
    virtual = policy.virtual_fields or set()

    required = policy.required_on_create or set()
    if not partial:
        for f in sorted(required):
            if f not in payload or payload[f] is None:
                errors[f] = "is required"

    cols = _columns_by_key(model)

    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields and k not in virtual:
            errors[k] = "field not allowed"
            continue
        if k in virtual:
            patch[k] = raw
            continue
        if k not in cols:
            errors[k] = "unknown field"
            continue
        if k in errors:
            continue

        col = cols[k]

        try:
            val = _coerce_value(col, raw)
        except ValidationError as e:
            errors[k] = str(e)
            continue

        if val is None:
            if not col.nullable:
                errors[k] = "cannot be blank" if raw is not None else "cannot be null"
                continue
            patch[k] = None
            continue

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                errors[k] = "cannot be blank"
                continue

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                errors[k] = f"exceeds max length {col.type.length}"
                continue

        patch[k] = val

    if errors:
        raise ValidationError(fields=errors)

    return patch


def validate_drug_code(code: Any, field: str = "code") -> str:
    """A hospital drug code is a string of 1..50 characters after trimming."""
    if not isinstance(code, str):
        raise ValidationError(fields={field: "must be a string"})
    code = code.strip()
    if not code:
        raise ValidationError(fields={field: "is required"})
    if len(code) > MAX_CODE_LENGTH:
        raise ValidationError(fields={field: f"exceeds max length {MAX_CODE_LENGTH}"})
    return code


def validate_code_list(codes: Any) -> list[str]:
    """
    Validate a bulk list of codes.

    One bad entry fails the batch; the error enumerates every offending index.
    """
    if not isinstance(codes, list):
        raise ValidationError(fields={"codes": "must be an array"})

    errors: dict[str, str] = {}
    cleaned: list[str] = []
    for i, raw in enumerate(codes):
        key = f"codes[{i}]"
        try:
            cleaned.append(validate_drug_code(raw, field=key))
        except ValidationError as e:
            errors.update(e.fields)
    if errors:
        raise ValidationError(fields=errors)
    return cleaned


def validate_price(value: Any, field: str = "price_per_box") -> int:
    """Parse and range-check a price; returns cents."""
    try:
        cents = parse_price_to_cents(value)
    except ValueError as e:
        raise ValidationError(fields={field: str(e)})
    if cents < 0:
        raise ValidationError(fields={field: "must be >= 0"})
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(fields={field: f"cannot exceed {format_price(MAX_PRICE_CENTS)}"})
    return cents


def enforce_rules_drug(patch: dict, *, creating: bool) -> dict:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.

    Turns the virtual price_per_box into price_per_box_cents, checks enum
    membership, notes length and stock quantities. Returns the normalized
    patch; raises one ValidationError listing every failed field.
    """
    from .models import DEPARTMENTS, DOSAGE_FORMS, DRUG_CATEGORIES

    errors: dict[str, str] = {}
    out = dict(patch)

    if "price_per_box" in out:
        raw = out.pop("price_per_box")
        try:
            out["price_per_box_cents"] = validate_price(raw)
        except ValidationError as e:
            errors.update(e.fields)

    if "dosage_form" in out and out["dosage_form"] is not None:
        out["dosage_form"] = out["dosage_form"].upper()
        if out["dosage_form"] not in DOSAGE_FORMS:
            errors["dosage_form"] = "is not a recognised dosage form"

    if "category" in out and out["category"] is not None:
        out["category"] = out["category"].upper()
        if out["category"] not in DRUG_CATEGORIES:
            errors["category"] = "is not a recognised drug category"

    if out.get("notes") is not None and len(out["notes"]) > MAX_NOTES_LENGTH:
        errors["notes"] = f"exceeds max length {MAX_NOTES_LENGTH}"

    if creating:
        department = out.get("department")
        if not isinstance(department, str) or department.strip().upper() not in DEPARTMENTS:
            errors["department"] = f"must be one of {', '.join(DEPARTMENTS)}"
        else:
            out["department"] = department.strip().upper()

        for key, default in (("initial_quantity", 0), ("minimum_stock", 10)):
            raw = out.get(key)
            if raw is None:
                out[key] = default
                continue
            try:
                value = coerce_int(key, raw)
            except ValidationError as e:
                errors[key] = str(e)
                continue
            if value < 0:
                errors[key] = "must be >= 0"
                continue
            out[key] = value

    if errors:
        raise ValidationError(fields=errors)
    return out


def enforce_rules_stock_adjust(patch: dict) -> dict:
    """Validate a manual stock movement request."""
    from .models import DEPARTMENTS, TRANSACTION_TYPES

    errors: dict[str, str] = {}
    out = dict(patch)

    for key in ("drug_id", "quantity"):
        if out.get(key) is None:
            errors[key] = "is required"
            continue
        try:
            out[key] = coerce_int(key, out[key])
        except ValidationError as e:
            errors[key] = str(e)

    department = out.get("department")
    if not isinstance(department, str) or department.strip().upper() not in DEPARTMENTS:
        errors["department"] = f"must be one of {', '.join(DEPARTMENTS)}"
    else:
        out["department"] = department.strip().upper()

    tx_type = out.get("type")
    if not isinstance(tx_type, str) or tx_type.strip().upper() not in TRANSACTION_TYPES:
        errors["type"] = f"must be one of {', '.join(TRANSACTION_TYPES)}"
    else:
        out["type"] = tx_type.strip().upper()

    if "quantity" not in errors and "type" not in errors:
        if out["type"] == "ADJUSTMENT":
            if out["quantity"] == 0:
                errors["quantity"] = "must be non-zero for ADJUSTMENT"
        elif out["quantity"] <= 0:
            errors["quantity"] = f"must be > 0 for {out['type']}"

    for key, limit in (("note", 500), ("reference", 128)):
        value = out.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            errors[key] = "must be a string"
        elif len(value.strip()) > limit:
            errors[key] = f"exceeds max length {limit}"
        else:
            out[key] = value.strip() or None

    if errors:
        raise ValidationError(fields=errors)
    return out
