# Overview: Drug variant storage and lookup; enforces (code, price) uniqueness among active rows.

"""
Drug Registry

A hospital drug code names a family of Drug rows distinguished by price.
(code, price) is unique among active rows of an organization; code alone
may repeat. All reads here are scoped by org_id and ignore inactive rows.

The partial unique index uq_drugs_org_code_price_active is the final
arbiter. find_by_code_and_price() is a fast pre-check; create_variant()
translates an index violation at flush time into ConflictError.
"""
from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Drug
from ..money import MAX_PRICE_CENTS, cents_to_amount, format_price
from ..validation import ConflictError, ValidationError

SIMILAR_CODE_LIMIT = 5
SIMILAR_CODE_FRAGMENT = 3

VARIANT_FIELDS = {
    "hospital_drug_code",
    "name",
    "generic_name",
    "dosage_form",
    "strength",
    "unit",
    "package_size",
    "price_per_box_cents",
    "category",
    "notes",
}
REQUIRED_VARIANT_FIELDS = ("hospital_drug_code", "name", "unit", "dosage_form", "category")


def conflict_message(code: str, price_cents: int) -> str:
    return f'Drug code "{code}" with price {format_price(price_cents)} already exists.'


def _active(org_id: int):
    return db.session.query(Drug).filter(Drug.org_id == org_id, Drug.is_active.is_(True))


def find_variants_by_code(org_id: int, code: str) -> list[Drug]:
    """
    All active variants for an exact code, cheapest first.

    Ties on price (only possible across history, never among active rows)
    fall back to creation time, then id. An unknown code yields [].
    """
    return (
        _active(org_id)
        .filter(Drug.hospital_drug_code == code)
        .order_by(Drug.price_per_box_cents.asc(), Drug.created_at.asc(), Drug.id.asc())
        .all()
    )


def find_variants_by_codes(org_id: int, codes: list[str]) -> dict[str, list[Drug]]:
    """Bulk form of find_variants_by_code: one query, grouped by code."""
    grouped: dict[str, list[Drug]] = {code: [] for code in codes}
    if not codes:
        return grouped
    rows = (
        _active(org_id)
        .filter(Drug.hospital_drug_code.in_(set(codes)))
        .order_by(
            Drug.hospital_drug_code.asc(),
            Drug.price_per_box_cents.asc(),
            Drug.created_at.asc(),
            Drug.id.asc(),
        )
        .all()
    )
    for drug in rows:
        grouped.setdefault(drug.hospital_drug_code, []).append(drug)
    return grouped


def find_similar_codes(
    org_id: int,
    code: str,
    *,
    exclude_code: str | None = None,
    limit: int = SIMILAR_CODE_LIMIT,
) -> list[dict]:
    """
    Advisory suggestions: active rows whose code contains the first three
    characters of `code` (case-insensitive), excluding the exact code.
    """
    fragment = code[:SIMILAR_CODE_FRAGMENT].lower()
    if not fragment:
        return []
    exclude_code = code if exclude_code is None else exclude_code

    rows = (
        _active(org_id)
        .filter(
            func.lower(Drug.hospital_drug_code).contains(fragment, autoescape=True),
            Drug.hospital_drug_code != exclude_code,
        )
        .order_by(Drug.hospital_drug_code.asc(), Drug.price_per_box_cents.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "hospital_drug_code": d.hospital_drug_code,
            "name": d.name,
            "price_per_box": cents_to_amount(d.price_per_box_cents),
        }
        for d in rows
    ]


def find_by_code_and_price(
    org_id: int,
    code: str,
    price_cents: int,
    *,
    exclude_id: int | None = None,
) -> Drug | None:
    """Active row holding exactly (code, price), optionally ignoring one id."""
    query = _active(org_id).filter(
        Drug.hospital_drug_code == code,
        Drug.price_per_box_cents == price_cents,
    )
    if exclude_id is not None:
        query = query.filter(Drug.id != exclude_id)
    return query.first()


def count_variants(org_id: int, code: str) -> int:
    return _active(org_id).filter(Drug.hospital_drug_code == code).count()


def _check_variant_fields(fields: dict) -> None:
    errors: dict[str, str] = {}
    for key in REQUIRED_VARIANT_FIELDS:
        value = fields.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors[key] = "is required"
    price = fields.get("price_per_box_cents")
    if not isinstance(price, int) or isinstance(price, bool):
        errors["price_per_box"] = "is required"
    elif price < 0 or price > MAX_PRICE_CENTS:
        errors["price_per_box"] = f"must be between 0 and {format_price(MAX_PRICE_CENTS)}"
    unknown = set(fields) - VARIANT_FIELDS
    for key in sorted(unknown):
        errors[key] = "field not allowed"
    if errors:
        raise ValidationError(fields=errors)


def flush_guarded(org_id: int, code: str, price_cents: int, *, exclude_id: int | None = None) -> None:
    """
    Flush pending writes, mapping a uniqueness violation to ConflictError.

    An IntegrityError whose (code, price) is now held by another active row
    is the race described in the module docstring; anything else is
    re-raised unchanged for the caller to report as a storage failure.
    """
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        if find_by_code_and_price(org_id, code, price_cents, exclude_id=exclude_id) is not None:
            raise ConflictError(conflict_message(code, price_cents))
        raise


def create_variant(org_id: int, fields: dict) -> Drug:
    """
    Insert one active variant. Does not commit.

    Raises:
        ValidationError: required fields missing or price out of range
        ConflictError: an active row already holds (code, price)
    """
    _check_variant_fields(fields)

    code = fields["hospital_drug_code"]
    price_cents = fields["price_per_box_cents"]

    if find_by_code_and_price(org_id, code, price_cents) is not None:
        raise ConflictError(conflict_message(code, price_cents))

    drug = Drug(org_id=org_id, is_active=True)
    for key, value in fields.items():
        setattr(drug, key, value)

    db.session.add(drug)
    flush_guarded(org_id, code, price_cents)
    return drug
