# Overview: Drug creation transaction plus edit, deactivate and list operations.

"""
Drug Service

create_drug() is the one place a drug variant comes into existence. In a
single transaction it writes:

1. the Drug row (via drug_registry.create_variant)
2. the primary Stock row for the requested department
3. the secondary Stock row for the complementary department, at zero
4. a TRANSFER_IN StockTransaction when initial_quantity > 0

The (code, price) check is repeated here even when the caller has just
resolved the code: resolution and creation are separate reads of shared
storage. If anything fails, the whole unit rolls back.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Drug, Stock, StockTransaction, User, complementary_department
from ..money import cents_to_amount, format_price
from ..validation import ConflictError
from . import drug_registry
from .code_resolver import check_exact_conflict
from .concurrency import atomic, run_with_retry
from .tenant_service import require_drug_in_org
from pharmstock.time_utils import utcnow

DRUG_MUTABLE_FIELDS = {
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


class StorageError(Exception):
    """Unexpected persistence failure; reported to clients generically."""

    code = "STORAGE_ERROR"


class MissingActorError(StorageError):
    """The acting user referenced by a write does not exist in this organization."""

    code = "MISSING_ACTOR"


def _require_actor(actor_id: int, org_id: int) -> User:
    actor = db.session.get(User, actor_id)
    if actor is None or actor.org_id != org_id:
        raise MissingActorError(f"Actor {actor_id} not found in organization {org_id}")
    return actor


def _create_stock_records(
    drug: Drug,
    *,
    department: str,
    initial_quantity: int,
    minimum_stock: int,
) -> tuple[Stock, Stock]:
    """Primary stock for the requested department, zeroed secondary for the other one."""
    now = utcnow()
    primary = Stock(
        drug_id=drug.id,
        department=department,
        total_quantity=initial_quantity,
        reserved_qty=0,
        minimum_stock=minimum_stock,
        total_value_cents=initial_quantity * drug.price_per_box_cents,
        last_updated=now,
    )
    secondary = Stock(
        drug_id=drug.id,
        department=complementary_department(department),
        total_quantity=0,
        reserved_qty=0,
        minimum_stock=0,
        total_value_cents=0,
        last_updated=now,
    )
    db.session.add_all([primary, secondary])
    db.session.flush()
    return primary, secondary


def _initial_stock_note(drug: Drug, actor: User, variant_number: int) -> str:
    if variant_number > 1:
        return (
            f"Initial stock - {drug.name} (price {format_price(drug.price_per_box_cents)}, "
            f"variant {variant_number} of code {drug.hospital_drug_code}) by {actor.username}"
        )
    return f"Initial stock - {drug.name} (by {actor.username})"


def _record_initial_transaction(stock: Stock, drug: Drug, actor: User, variant_number: int) -> StockTransaction:
    tx = StockTransaction(
        stock_id=stock.id,
        user_id=actor.id,
        type="TRANSFER_IN",
        quantity=stock.total_quantity,
        before_qty=0,
        after_qty=stock.total_quantity,
        reference=f"INITIAL_{drug.hospital_drug_code}_{drug.id}",
        note=_initial_stock_note(drug, actor, variant_number),
    )
    db.session.add(tx)
    db.session.flush()
    return tx


def create_drug(*, org_id: int, actor_id: int, patch: dict) -> dict:
    """
    Create a drug variant with both stock rows and optional initial stock.

    `patch` is the output of validate_payload + enforce_rules_drug(creating=True):
    drug fields plus department, initial_quantity and minimum_stock.

    Returns the primary stock joined with its drug, plus is_variant and
    variant_count (existing active variants of the code + this one).

    Raises:
        ValidationError: required drug fields missing or malformed
        ConflictError: an active row already holds (code, price)
        MissingActorError: actor_id does not exist in org_id
        StorageError: any other persistence failure (nothing is written)
    """
    fields = {k: v for k, v in patch.items() if k in DRUG_MUTABLE_FIELDS}
    department = patch["department"]
    initial_quantity = patch.get("initial_quantity", 0)
    minimum_stock = patch.get("minimum_stock", 10)
    code = fields.get("hospital_drug_code")
    price_cents = fields.get("price_per_box_cents")

    def _op() -> dict:
        with atomic():
            if code is not None and price_cents is not None:
                if drug_registry.find_by_code_and_price(org_id, code, price_cents) is not None:
                    current_app.logger.warning(
                        "Rejected duplicate drug variant org=%s code=%s price_cents=%s",
                        org_id, code, price_cents,
                    )
                    raise ConflictError(drug_registry.conflict_message(code, price_cents))

            existing_count = drug_registry.count_variants(org_id, code) if code else 0
            actor = _require_actor(actor_id, org_id)

            drug = drug_registry.create_variant(org_id, fields)
            primary, _secondary = _create_stock_records(
                drug,
                department=department,
                initial_quantity=initial_quantity,
                minimum_stock=minimum_stock,
            )
            if initial_quantity > 0:
                _record_initial_transaction(primary, drug, actor, existing_count + 1)

            result = primary.to_dict()
            result["drug"] = drug.to_dict()
            result["is_variant"] = existing_count > 0
            result["variant_count"] = existing_count + 1

        current_app.logger.info(
            "Created drug variant id=%s org=%s code=%s price_cents=%s variant_count=%s",
            result["drug_id"], org_id, code, price_cents, result["variant_count"],
        )
        return result

    try:
        return run_with_retry(_op)
    except StorageError:
        raise
    except SQLAlchemyError as e:
        raise StorageError("Failed to create drug") from e


def creation_message(result: dict) -> str:
    drug = result["drug"]
    if result["is_variant"]:
        return (
            f'Added "{drug["name"]}" at price {format_price(drug["price_per_box_cents"])} '
            f'(variant {result["variant_count"]} of code {drug["hospital_drug_code"]})'
        )
    return f'Added "{drug["name"]}"'


def update_drug(*, org_id: int, drug_id: int, patch: dict) -> dict:
    """
    Edit an existing variant in place.

    When the code or price changes, (new code, new price) is checked
    against the other active rows only; a row never collides with itself.

    Raises:
        TenantAccessError: drug missing or in another organization
        ConflictError: another active row already holds (new code, new price)
    """
    def _op() -> dict:
        with atomic():
            drug = require_drug_in_org(drug_id, org_id, lock=True)
            old_price_cents = drug.price_per_box_cents

            new_code = patch.get("hospital_drug_code", drug.hospital_drug_code)
            new_price_cents = patch.get("price_per_box_cents", drug.price_per_box_cents)

            if (new_code, new_price_cents) != (drug.hospital_drug_code, drug.price_per_box_cents):
                if check_exact_conflict(org_id, new_code, new_price_cents, exclude_id=drug.id):
                    raise ConflictError(drug_registry.conflict_message(new_code, new_price_cents))

            for key, value in patch.items():
                if key in DRUG_MUTABLE_FIELDS:
                    setattr(drug, key, value)

            drug_registry.flush_guarded(org_id, new_code, new_price_cents, exclude_id=drug_id)

            price_changed = drug.price_per_box_cents != old_price_cents
            return {
                "data": drug.to_dict(),
                "price_changed": price_changed,
                "old_price": cents_to_amount(old_price_cents) if price_changed else None,
                "new_price": cents_to_amount(drug.price_per_box_cents) if price_changed else None,
            }

    return run_with_retry(_op)


def deactivate_drug(*, org_id: int, drug_id: int) -> dict:
    """
    Soft-delete a variant. Its (code, price) pair becomes reusable.

    Stock rows are kept for history; stock listings hide rows of inactive drugs.
    """
    def _op() -> dict:
        with atomic():
            drug = require_drug_in_org(drug_id, org_id)
            if drug.is_active:
                drug.is_active = False
                current_app.logger.info(
                    "Deactivated drug variant id=%s code=%s price_cents=%s",
                    drug.id, drug.hospital_drug_code, drug.price_per_box_cents,
                )
            return drug.to_dict()

    return run_with_retry(_op)


def list_drugs(
    *,
    org_id: int,
    search: str | None = None,
    category: str | None = None,
    department: str | None = None,
) -> list[dict]:
    """
    Active drugs of the organization ordered by (code, price).

    search matches name, generic name or code (case-insensitive substring);
    department restricts the embedded stock rows.
    """
    query = db.session.query(Drug).filter(Drug.org_id == org_id, Drug.is_active.is_(True))

    if search:
        term = search.strip().lower()
        query = query.filter(
            db.or_(
                db.func.lower(Drug.name).contains(term, autoescape=True),
                db.func.lower(Drug.generic_name).contains(term, autoescape=True),
                db.func.lower(Drug.hospital_drug_code).contains(term, autoescape=True),
            )
        )
    if category:
        query = query.filter(Drug.category == category.upper())

    drugs = query.order_by(Drug.hospital_drug_code.asc(), Drug.price_per_box_cents.asc()).all()

    items = []
    for drug in drugs:
        data = drug.to_dict()
        stocks = [s for s in drug.stocks if department is None or s.department == department]
        data["stocks"] = [s.to_dict() for s in sorted(stocks, key=lambda s: s.department)]
        items.append(data)
    return items
