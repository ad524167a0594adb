from __future__ import annotations

from ..extensions import db
from pharmstock.money import cents_to_amount
from pharmstock.time_utils import to_utc_z


DEPARTMENTS = ("PHARMACY", "OPD")

DOSAGE_FORMS = (
    "APP", "BAG", "CAP", "CR", "DOP", "ENE", "GEL", "HAN", "IMP",
    "INJ", "LIQ", "LOT", "LVP", "MDI", "MIX", "NAS", "NB", "OIN",
    "PAT", "POW", "PWD", "SAC", "SOL", "SPR", "SUP", "SUS", "SYR",
    "TAB", "TUR",
)

DRUG_CATEGORIES = (
    "REFER", "HAD", "NARCOTIC", "REFRIGERATED", "PSYCHIATRIC",
    "FLUID", "GENERAL", "TABLET", "SYRUP", "INJECTION", "EXTEMP",
    "ALERT", "CANCELLED",
)

# Signed direction of each stock transaction type; ADJUSTMENT carries its own sign.
TRANSACTION_TYPES = {
    "TRANSFER_IN": 1,
    "TRANSFER_OUT": -1,
    "ADJUSTMENT": None,
}


def complementary_department(department: str) -> str:
    """The one department that was not requested."""
    others = [d for d in DEPARTMENTS if d != department]
    if len(others) != 1:
        raise ValueError(f"Unknown department: {department}")
    return others[0]


class Drug(db.Model):
    """
    One priced variant of a drug under a hospital drug code.

    CODE/PRICE DESIGN DECISION:
    hospital_drug_code alone is NOT unique. A code names a family of rows that
    differ by price_per_box_cents. The pair (code, price) is unique among
    active rows of an organization, enforced by a partial unique index so the
    database stays the final arbiter when two creations race.

    Rows are never hard-deleted; is_active=False releases the (code, price)
    pair for reuse.
    """
    __tablename__ = "drugs"
    __table_args__ = (
        db.Index(
            "uq_drugs_org_code_price_active",
            "org_id",
            "hospital_drug_code",
            "price_per_box_cents",
            unique=True,
            sqlite_where=db.text("is_active = 1"),
            postgresql_where=db.text("is_active"),
        ),
        db.Index("ix_drugs_org_code", "org_id", "hospital_drug_code"),
        db.Index("ix_drugs_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    hospital_drug_code = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    generic_name = db.Column(db.String(255), nullable=True)
    dosage_form = db.Column(db.String(8), nullable=False)
    strength = db.Column(db.String(50), nullable=True)
    unit = db.Column(db.String(20), nullable=False)
    package_size = db.Column(db.String(50), nullable=True)

    # Authoritative storage in cents
    price_per_box_cents = db.Column(db.Integer, nullable=False)

    category = db.Column(db.String(32), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("drugs", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Drug id={self.id} code={self.hospital_drug_code!r} "
            f"price_cents={self.price_per_box_cents} org_id={self.org_id}>"
        )

    def to_dict(self, include_stocks: bool = False) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "hospital_drug_code": self.hospital_drug_code,
            "name": self.name,
            "generic_name": self.generic_name,
            "dosage_form": self.dosage_form,
            "strength": self.strength,
            "unit": self.unit,
            "package_size": self.package_size,
            "price_per_box": cents_to_amount(self.price_per_box_cents),
            "price_per_box_cents": self.price_per_box_cents,
            "category": self.category,
            "notes": self.notes,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_stocks:
            data["stocks"] = [
                {"department": s.department, "total_quantity": s.total_quantity}
                for s in sorted(self.stocks, key=lambda s: s.department)
            ]
        return data


class Stock(db.Model):
    """
    Quantity of one drug variant held in one department.

    Exactly one row per (drug_id, department). Both departments are created
    together with the drug; the non-requested one starts at zero.

    total_value_cents is a snapshot (quantity x price at write time), not a
    computed column.
    """
    __tablename__ = "stocks"
    __table_args__ = (
        db.UniqueConstraint("drug_id", "department", name="uq_stocks_drug_department"),
        db.Index("ix_stocks_department_qty", "department", "total_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    drug_id = db.Column(db.Integer, db.ForeignKey("drugs.id"), nullable=False, index=True)
    department = db.Column(db.String(16), nullable=False)

    total_quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_qty = db.Column(db.Integer, nullable=False, default=0)
    minimum_stock = db.Column(db.Integer, nullable=False, default=0)
    total_value_cents = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    drug = db.relationship("Drug", backref=db.backref("stocks", lazy=True))

    def __repr__(self) -> str:
        return f"<Stock id={self.id} drug_id={self.drug_id} department={self.department} qty={self.total_quantity}>"

    def to_dict(self, include_drug: bool = False) -> dict:
        data = {
            "id": self.id,
            "drug_id": self.drug_id,
            "department": self.department,
            "total_quantity": self.total_quantity,
            "reserved_qty": self.reserved_qty,
            "minimum_stock": self.minimum_stock,
            "total_value": cents_to_amount(self.total_value_cents),
            "total_value_cents": self.total_value_cents,
            "last_updated": to_utc_z(self.last_updated),
        }
        if include_drug:
            data["drug"] = self.drug.to_dict()
        return data


class StockTransaction(db.Model):
    """
    Append-only record of a stock quantity change.

    INVARIANT: after_qty - before_qty equals the signed delta implied by
    type (TRANSFER_IN: +quantity, TRANSFER_OUT: -quantity, ADJUSTMENT:
    signed quantity). Rows are never updated or deleted.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        db.Index("ix_stock_tx_stock_created", "stock_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_id = db.Column(db.Integer, db.ForeignKey("stocks.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    before_qty = db.Column(db.Integer, nullable=False)
    after_qty = db.Column(db.Integer, nullable=False)

    reference = db.Column(db.String(128), nullable=True, index=True)
    note = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    stock = db.relationship("Stock", backref=db.backref("transactions", lazy=True))
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_id": self.stock_id,
            "user_id": self.user_id,
            "type": self.type,
            "quantity": self.quantity,
            "before_qty": self.before_qty,
            "after_qty": self.after_qty,
            "reference": self.reference,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
