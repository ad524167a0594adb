# Overview: Pytest coverage for code/variant resolution (single, bulk and edit-path conflicts).

import pytest

from pharmstock.services import code_resolver
from pharmstock.validation import ValidationError


class TestResolve:

    def test_new_code(self, db_session, org_a):
        result = code_resolver.resolve(org_a.id, "  NEW001 ")
        data = result.to_dict()

        assert result.code == "NEW001"
        assert data["available"] is True
        assert data["exists"] is False
        assert data["can_create_variant"] is False
        assert data["drugs"] == []
        assert data["template_drug"] is None
        assert data["price_range"] is None
        assert "available" in data["message"]

    def test_existing_code_is_still_available(self, db_session, org_a, make_drug):
        """Reusing a code with a new price is how variants are made."""
        make_drug(price_per_box_cents=1200)
        make_drug(price_per_box_cents=1000)

        data = code_resolver.resolve(org_a.id, "TAB001").to_dict()

        assert data["available"] is True
        assert data["exists"] is True
        assert data["can_create_variant"] is True
        assert [d["price_per_box"] for d in data["drugs"]] == [10.0, 12.0]
        assert data["template_drug"]["price_per_box_cents"] == 1000
        assert data["price_range"] == {"min": 10.0, "max": 12.0, "count": 2}
        assert {s["department"] for s in data["drugs"][0]["stocks"]} == {"PHARMACY", "OPD"}

    def test_variant_summary(self, db_session, org_a, make_drug):
        make_drug(price_per_box_cents=1000)
        make_drug(price_per_box_cents=2000)

        summary = code_resolver.resolve(org_a.id, "TAB001").to_dict()["variant_summary"]

        assert summary["count"] == 2
        assert summary["average_price"] == 15.0
        assert summary["suggested_next_price"] == 21.0

    @pytest.mark.parametrize("bad", ["", "   ", "X" * 51, None, 123])
    def test_invalid_code_rejected(self, db_session, org_a, bad):
        with pytest.raises(ValidationError) as exc:
            code_resolver.resolve(org_a.id, bad)
        assert "code" in exc.value.fields

    def test_fifty_characters_allowed(self, db_session, org_a):
        assert code_resolver.resolve(org_a.id, "X" * 50).exists is False

    def test_reads_fresh_every_time(self, db_session, org_a, make_drug):
        assert code_resolver.resolve(org_a.id, "TAB001").exists is False
        make_drug()
        assert code_resolver.resolve(org_a.id, "TAB001").exists is True

    def test_exclude_id_drops_own_row_before_summarizing(self, db_session, org_a, make_drug):
        own = make_drug(price_per_box_cents=1000)

        data = code_resolver.resolve(org_a.id, "TAB001", exclude_id=own["drug_id"]).to_dict()

        assert data["exists"] is False
        assert data["drugs"] == []
        assert data["template_drug"] is None
        assert data["price_range"] is None

    def test_exclude_id_keeps_siblings(self, db_session, org_a, make_drug):
        own = make_drug(price_per_box_cents=1000)
        make_drug(price_per_box_cents=1500)

        data = code_resolver.resolve(org_a.id, "TAB001", exclude_id=own["drug_id"]).to_dict()

        assert [d["price_per_box_cents"] for d in data["drugs"]] == [1500]
        assert data["template_drug"]["price_per_box_cents"] == 1500
        assert data["price_range"] == {"min": 15.0, "max": 15.0, "count": 1}


class TestResolveBulk:

    def test_summary_counts(self, db_session, org_a, make_drug):
        make_drug(price_per_box_cents=1000)
        make_drug(price_per_box_cents=1200)
        make_drug(hospital_drug_code="SYR002", price_per_box_cents=500)

        data = code_resolver.resolve_bulk(org_a.id, ["TAB001", "SYR002", "NEW003"]).to_dict()

        assert data["success"] is True
        assert data["summary"] == {
            "total": 3,
            "new_codes": 1,
            "existing_codes": 2,
            "total_variants": 3,
        }
        assert [r["variant_count"] for r in data["results"]] == [2, 1, 0]

    def test_not_a_list(self, db_session, org_a):
        with pytest.raises(ValidationError) as exc:
            code_resolver.resolve_bulk(org_a.id, "TAB001")
        assert exc.value.fields == {"codes": "must be an array"}

    def test_one_bad_entry_fails_the_batch(self, db_session, org_a):
        with pytest.raises(ValidationError) as exc:
            code_resolver.resolve_bulk(org_a.id, ["OK1", "", "Y" * 51])
        assert set(exc.value.fields) == {"codes[1]", "codes[2]"}

    def test_empty_list(self, db_session, org_a):
        data = code_resolver.resolve_bulk(org_a.id, []).to_dict()
        assert data["summary"]["total"] == 0


class TestCheckExactConflict:

    def test_own_row_never_conflicts(self, db_session, org_a, make_drug):
        created = make_drug(price_per_box_cents=1000)

        assert code_resolver.check_exact_conflict(
            org_a.id, "TAB001", 1000, exclude_id=created["drug_id"]
        ) is False

    def test_other_row_at_same_price_conflicts(self, db_session, org_a, make_drug):
        make_drug(price_per_box_cents=1000)
        other = make_drug(hospital_drug_code="TAB002", price_per_box_cents=1000)

        assert code_resolver.check_exact_conflict(
            org_a.id, "TAB001", 1000, exclude_id=other["drug_id"]
        ) is True

    def test_other_row_at_different_price_is_fine(self, db_session, org_a, make_drug):
        make_drug(price_per_box_cents=1000)
        other = make_drug(hospital_drug_code="TAB002", price_per_box_cents=1100)

        assert code_resolver.check_exact_conflict(
            org_a.id, "TAB001", 1100, exclude_id=other["drug_id"]
        ) is False
