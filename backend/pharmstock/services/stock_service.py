# Overview: Service-layer operations for stock; listings and manual stock movements.

"""
Stock Service

Every quantity change goes through adjust_stock(), which writes exactly one
StockTransaction whose after_qty - before_qty equals the signed delta of its
type. A movement that would take quantity below zero is rejected, never
clamped, so the audit trail always adds up.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Drug, Stock, StockTransaction, TRANSACTION_TYPES
from ..validation import ValidationError
from .concurrency import atomic, run_with_retry
from .drug_service import _require_actor
from .tenant_service import require_drug_in_org
from pharmstock.time_utils import reference_stamp, utcnow


def signed_delta(tx_type: str, quantity: int) -> int:
    """TRANSFER_IN adds, TRANSFER_OUT removes, ADJUSTMENT carries its own sign."""
    direction = TRANSACTION_TYPES[tx_type]
    if direction is None:
        return quantity
    return direction * abs(quantity)


def list_stock(*, org_id: int, department: str | None = None) -> list[dict]:
    """Stock rows of active drugs, lowest quantity first, then by drug name."""
    query = (
        db.session.query(Stock)
        .join(Drug, Stock.drug_id == Drug.id)
        .filter(Drug.org_id == org_id, Drug.is_active.is_(True))
    )
    if department:
        query = query.filter(Stock.department == department)

    stocks = query.order_by(Stock.total_quantity.asc(), Drug.name.asc(), Stock.id.asc()).all()
    return [s.to_dict(include_drug=True) for s in stocks]


def _get_or_create_stock(drug: Drug, department: str) -> Stock:
    stock = (
        db.session.query(Stock)
        .filter(Stock.drug_id == drug.id, Stock.department == department)
        .with_for_update()
        .first()
    )
    if stock is None:
        # Repairs rows created before both departments were provisioned together
        stock = Stock(
            drug_id=drug.id,
            department=department,
            total_quantity=0,
            reserved_qty=0,
            minimum_stock=0,
            total_value_cents=0,
        )
        db.session.add(stock)
        db.session.flush()
    return stock


def adjust_stock(
    *,
    org_id: int,
    actor_id: int,
    drug_id: int,
    department: str,
    tx_type: str,
    quantity: int,
    note: str | None = None,
    reference: str | None = None,
) -> dict:
    """
    Apply one manual stock movement and record it.

    Raises:
        TenantAccessError: drug missing or in another organization
        ValidationError: the movement would make quantity negative
        MissingActorError: actor not found in the organization
    """
    def _op() -> dict:
        with atomic():
            drug = require_drug_in_org(drug_id, org_id)
            actor = _require_actor(actor_id, org_id)
            stock = _get_or_create_stock(drug, department)

            delta = signed_delta(tx_type, quantity)
            before = stock.total_quantity
            after = before + delta
            if after < 0:
                raise ValidationError(
                    fields={"quantity": f"would reduce stock below zero (on hand {before})"}
                )

            stock.total_quantity = after
            stock.total_value_cents = after * drug.price_per_box_cents
            stock.last_updated = utcnow()

            tx = StockTransaction(
                stock_id=stock.id,
                user_id=actor.id,
                type=tx_type,
                quantity=abs(delta),
                before_qty=before,
                after_qty=after,
                reference=reference or f"ADJ_{reference_stamp()}",
                note=note or "Manual adjustment",
            )
            db.session.add(tx)
            db.session.flush()

            result = {"stock": stock.to_dict(include_drug=True), "transaction": tx.to_dict()}

        current_app.logger.info(
            "Stock %s drug=%s dept=%s %s -> %s by user=%s",
            tx_type, drug_id, department, before, after, actor_id,
        )
        return result

    return run_with_retry(_op)


def list_stock_transactions(*, org_id: int, drug_id: int, limit: int = 200) -> list[dict]:
    """Most recent transactions across both departments of one drug."""
    require_drug_in_org(drug_id, org_id)
    rows = (
        db.session.query(StockTransaction)
        .join(Stock, StockTransaction.stock_id == Stock.id)
        .filter(Stock.drug_id == drug_id)
        .order_by(StockTransaction.created_at.desc(), StockTransaction.id.desc())
        .limit(limit)
        .all()
    )
    return [tx.to_dict() for tx in rows]
