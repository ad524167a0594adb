# Overview: Pytest coverage for stock listings and manual stock movements.

import pytest

from pharmstock.extensions import db
from pharmstock.models import Stock, StockTransaction
from pharmstock.services import stock_service
from pharmstock.services.drug_service import MissingActorError
from pharmstock.services.tenant_service import TenantAccessError
from pharmstock.validation import ValidationError, enforce_rules_stock_adjust


class TestSignedDelta:

    def test_directions(self):
        assert stock_service.signed_delta("TRANSFER_IN", 5) == 5
        assert stock_service.signed_delta("TRANSFER_OUT", 5) == -5
        assert stock_service.signed_delta("ADJUSTMENT", -3) == -3
        assert stock_service.signed_delta("ADJUSTMENT", 4) == 4


class TestAdjustStock:

    def test_transfer_in_and_out(self, db_session, org_a, user_a, make_drug):
        created = make_drug(initial_quantity=10, price_per_box_cents=250)

        result = stock_service.adjust_stock(
            org_id=org_a.id, actor_id=user_a.id, drug_id=created["drug_id"],
            department="PHARMACY", tx_type="TRANSFER_OUT", quantity=4,
        )

        assert result["stock"]["total_quantity"] == 6
        assert result["stock"]["total_value_cents"] == 1500
        tx = result["transaction"]
        assert (tx["before_qty"], tx["after_qty"], tx["quantity"]) == (10, 6, 4)
        assert tx["reference"].startswith("ADJ_")
        assert tx["note"] == "Manual adjustment"

    def test_secondary_department_starts_at_zero(self, db_session, org_a, user_a, make_drug):
        created = make_drug(department="PHARMACY", initial_quantity=10)

        result = stock_service.adjust_stock(
            org_id=org_a.id, actor_id=user_a.id, drug_id=created["drug_id"],
            department="OPD", tx_type="TRANSFER_IN", quantity=3, reference="REQ-17", note="From store",
        )

        assert result["stock"]["department"] == "OPD"
        assert result["stock"]["total_quantity"] == 3
        assert result["transaction"]["reference"] == "REQ-17"

    def test_negative_result_rejected_not_clamped(self, db_session, org_a, user_a, make_drug):
        created = make_drug(initial_quantity=2)

        with pytest.raises(ValidationError) as exc:
            stock_service.adjust_stock(
                org_id=org_a.id, actor_id=user_a.id, drug_id=created["drug_id"],
                department="PHARMACY", tx_type="ADJUSTMENT", quantity=-3,
            )

        assert "quantity" in exc.value.fields
        stock = db.session.query(Stock).filter_by(drug_id=created["drug_id"], department="PHARMACY").one()
        assert stock.total_quantity == 2
        assert db.session.query(StockTransaction).count() == 1

    def test_every_transaction_adds_up(self, db_session, org_a, user_a, make_drug):
        created = make_drug(initial_quantity=10)
        for tx_type, qty in (("TRANSFER_IN", 5), ("ADJUSTMENT", -7), ("TRANSFER_OUT", 1)):
            stock_service.adjust_stock(
                org_id=org_a.id, actor_id=user_a.id, drug_id=created["drug_id"],
                department="PHARMACY", tx_type=tx_type, quantity=qty,
            )

        txs = stock_service.list_stock_transactions(org_id=org_a.id, drug_id=created["drug_id"])
        assert len(txs) == 4
        for tx in txs:
            delta = tx["after_qty"] - tx["before_qty"]
            assert abs(delta) == tx["quantity"]
            if tx["type"] != "ADJUSTMENT":
                assert delta == stock_service.signed_delta(tx["type"], tx["quantity"])
        assert txs[0]["after_qty"] == 7

    def test_other_org_drug_not_found(self, db_session, org_b, user_b, make_drug):
        created = make_drug()
        with pytest.raises(TenantAccessError):
            stock_service.adjust_stock(
                org_id=org_b.id, actor_id=user_b.id, drug_id=created["drug_id"],
                department="PHARMACY", tx_type="TRANSFER_IN", quantity=1,
            )

    def test_missing_actor(self, db_session, org_a, make_drug):
        created = make_drug()
        with pytest.raises(MissingActorError):
            stock_service.adjust_stock(
                org_id=org_a.id, actor_id=424242, drug_id=created["drug_id"],
                department="PHARMACY", tx_type="TRANSFER_IN", quantity=1,
            )


class TestListStock:

    def test_lowest_quantity_first_and_department_filter(self, db_session, org_a, make_drug):
        make_drug(hospital_drug_code="A1", name="Beta", initial_quantity=20)
        make_drug(hospital_drug_code="B1", name="Alpha", initial_quantity=5)

        rows = stock_service.list_stock(org_id=org_a.id, department="PHARMACY")
        assert [(r["drug"]["name"], r["total_quantity"]) for r in rows] == [("Alpha", 5), ("Beta", 20)]

        opd = stock_service.list_stock(org_id=org_a.id, department="OPD")
        assert [r["drug"]["name"] for r in opd] == ["Alpha", "Beta"]


class TestAdjustRules:

    def test_valid_payload_normalized(self):
        out = enforce_rules_stock_adjust({
            "drug_id": "3", "department": "opd", "type": "transfer_in", "quantity": 2, "note": "  ",
        })
        assert out["drug_id"] == 3
        assert out["department"] == "OPD"
        assert out["type"] == "TRANSFER_IN"
        assert out["note"] is None

    def test_errors_collected(self):
        with pytest.raises(ValidationError) as exc:
            enforce_rules_stock_adjust({"department": "ER", "type": "ADJUSTMENT", "quantity": 0})
        assert set(exc.value.fields) == {"drug_id", "department", "quantity"}

    def test_transfer_requires_positive_quantity(self):
        with pytest.raises(ValidationError) as exc:
            enforce_rules_stock_adjust({"drug_id": 1, "department": "OPD", "type": "TRANSFER_OUT", "quantity": -1})
        assert "quantity" in exc.value.fields
