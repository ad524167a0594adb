# Overview: Pytest coverage for drug registry lookups and (code, price) uniqueness.

import pytest

from pharmstock.extensions import db
from pharmstock.models import Drug
from pharmstock.services import drug_registry
from pharmstock.validation import ConflictError, ValidationError


def _variant_fields(**overrides) -> dict:
    fields = {
        "hospital_drug_code": "INJ100",
        "name": "Ceftriaxone 1g",
        "dosage_form": "INJ",
        "unit": "vial",
        "category": "INJECTION",
        "price_per_box_cents": 4500,
    }
    fields.update(overrides)
    return fields


class TestFindVariantsByCode:

    def test_unknown_code_returns_empty(self, db_session, org_a):
        assert drug_registry.find_variants_by_code(org_a.id, "NOPE") == []

    def test_same_code_different_prices_both_listed(self, db_session, org_a, make_drug):
        """Code alone is not unique: two prices make two variants."""
        make_drug(price_per_box_cents=1000)
        make_drug(price_per_box_cents=1200)

        variants = drug_registry.find_variants_by_code(org_a.id, "TAB001")
        assert [d.price_per_box_cents for d in variants] == [1000, 1200]

    def test_ordered_by_ascending_price(self, db_session, org_a, make_drug):
        for cents in (1200, 1000, 1100):
            make_drug(price_per_box_cents=cents)

        variants = drug_registry.find_variants_by_code(org_a.id, "TAB001")
        assert [d.price_per_box_cents for d in variants] == [1000, 1100, 1200]

    def test_inactive_rows_are_ignored(self, db_session, org_a, make_drug):
        created = make_drug(price_per_box_cents=1000)
        make_drug(price_per_box_cents=1200)

        drug = db.session.get(Drug, created["drug_id"])
        drug.is_active = False
        db.session.commit()

        variants = drug_registry.find_variants_by_code(org_a.id, "TAB001")
        assert [d.price_per_box_cents for d in variants] == [1200]

    def test_scoped_to_organization(self, db_session, org_a, org_b, user_b, make_drug):
        make_drug(price_per_box_cents=1000)
        make_drug(org_id=org_b.id, actor_id=user_b.id, price_per_box_cents=2000)

        assert [d.price_per_box_cents for d in drug_registry.find_variants_by_code(org_a.id, "TAB001")] == [1000]
        assert [d.price_per_box_cents for d in drug_registry.find_variants_by_code(org_b.id, "TAB001")] == [2000]

    def test_bulk_lookup_groups_by_code(self, db_session, org_a, make_drug):
        make_drug(price_per_box_cents=1000)
        make_drug(price_per_box_cents=900)
        make_drug(hospital_drug_code="SYR002", price_per_box_cents=500)

        grouped = drug_registry.find_variants_by_codes(org_a.id, ["TAB001", "SYR002", "NEW9"])
        assert [d.price_per_box_cents for d in grouped["TAB001"]] == [900, 1000]
        assert len(grouped["SYR002"]) == 1
        assert grouped["NEW9"] == []


class TestFindSimilarCodes:

    def test_matches_first_three_characters_case_insensitive(self, db_session, org_a, make_drug):
        make_drug(hospital_drug_code="TAB001")
        make_drug(hospital_drug_code="tab002")
        make_drug(hospital_drug_code="SYR001")

        suggestions = drug_registry.find_similar_codes(org_a.id, "TAB999")
        assert [s["hospital_drug_code"] for s in suggestions] == ["TAB001", "tab002"]
        assert suggestions[0]["price_per_box"] == 10.0

    def test_excludes_the_exact_code(self, db_session, org_a, make_drug):
        make_drug(hospital_drug_code="TAB001")
        make_drug(hospital_drug_code="TAB002")

        suggestions = drug_registry.find_similar_codes(org_a.id, "TAB001")
        assert [s["hospital_drug_code"] for s in suggestions] == ["TAB002"]

    def test_limited_to_five(self, db_session, org_a, make_drug):
        for i in range(7):
            make_drug(hospital_drug_code=f"CAP{i:03d}")

        assert len(drug_registry.find_similar_codes(org_a.id, "CAPXYZ")) == 5

    def test_like_wildcards_are_literal(self, db_session, org_a, make_drug):
        make_drug(hospital_drug_code="ABC123")

        assert drug_registry.find_similar_codes(org_a.id, "%_%") == []


class TestCreateVariant:

    def test_duplicate_code_and_price_raises_conflict(self, db_session, org_a):
        drug_registry.create_variant(org_a.id, _variant_fields())
        db.session.commit()

        with pytest.raises(ConflictError) as exc:
            drug_registry.create_variant(org_a.id, _variant_fields(name="Other name"))
        db.session.rollback()

        assert "INJ100" in str(exc.value)
        assert "45.00" in str(exc.value)
        assert drug_registry.count_variants(org_a.id, "INJ100") == 1

    def test_missing_fields_reported_together(self, db_session, org_a):
        with pytest.raises(ValidationError) as exc:
            drug_registry.create_variant(org_a.id, {"hospital_drug_code": "X1"})

        assert {"name", "unit", "dosage_form", "category", "price_per_box"} <= set(exc.value.fields)

    def test_unique_index_is_final_arbiter(self, db_session, org_a, monkeypatch):
        """When the pre-check misses a concurrent insert, the index violation becomes a conflict."""
        drug_registry.create_variant(org_a.id, _variant_fields())
        db.session.commit()

        real_lookup = drug_registry.find_by_code_and_price
        calls = []

        def blind_first_lookup(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                return None
            return real_lookup(*args, **kwargs)

        monkeypatch.setattr(drug_registry, "find_by_code_and_price", blind_first_lookup)

        with pytest.raises(ConflictError):
            drug_registry.create_variant(org_a.id, _variant_fields())
        db.session.rollback()

        assert drug_registry.count_variants(org_a.id, "INJ100") == 1

    def test_deactivated_pair_can_be_reused(self, db_session, org_a):
        drug = drug_registry.create_variant(org_a.id, _variant_fields())
        db.session.commit()
        drug.is_active = False
        db.session.commit()

        again = drug_registry.create_variant(org_a.id, _variant_fields())
        db.session.commit()

        assert again.id != drug.id
        assert drug_registry.count_variants(org_a.id, "INJ100") == 1
