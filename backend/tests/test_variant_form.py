# Overview: Pytest coverage for the add-drug form transitions and presubmit checks.

import pytest

from pharmstock.client import variant_form as vf
from pharmstock.client.variant_form import (
    CodeCleared,
    FieldEdited,
    FieldLockedError,
    NoVariants,
    Reset,
    VariantsFound,
    initial_state,
    presubmit_errors,
    transition,
)

TEMPLATE = {
    "hospital_drug_code": "TAB001",
    "name": "Paracetamol 500mg",
    "generic_name": "Paracetamol",
    "dosage_form": "TAB",
    "strength": "500mg",
    "unit": "box",
    "package_size": None,
    "category": "TABLET",
    "price_per_box_cents": 1000,
    "notes": "template notes",
}


def found(code="TAB001", prices=(1000, 1200)):
    return VariantsFound(code=code, template=TEMPLATE, sibling_prices_cents=tuple(prices))


def typed_state():
    state = initial_state()
    for name, value in (
        ("hospital_drug_code", "TAB001"),
        ("name", "My own name"),
        ("dosage_form", "CAP"),
        ("unit", "strip"),
        ("category", "GENERAL"),
        ("price_per_box", "3.00"),
        ("notes", "typed notes"),
    ):
        state = transition(state, FieldEdited(name, value))
    return state


class TestEnterVariantMode:

    def test_template_applied_and_backup_taken(self):
        state = transition(typed_state(), found())

        assert state.mode == vf.VARIANT_TEMPLATE_APPLIED
        assert state.fields["name"] == "Paracetamol 500mg"
        assert state.fields["dosage_form"] == "TAB"
        assert state.fields["package_size"] == ""
        assert state.fields["price_per_box"] == "10.50"
        assert state.fields["notes"] == ""
        assert state.backup["name"] == "My own name"
        assert "hospital_drug_code" not in state.backup
        assert state.sibling_prices_cents == (1000, 1200)

    def test_suggested_price_rounds_to_cents(self):
        template = dict(TEMPLATE, price_per_box_cents=333)
        state = transition(initial_state(), VariantsFound("X1", template, (333,)))
        assert state.fields["price_per_box"] == "3.50"

    def test_input_is_not_mutated(self):
        before = typed_state()
        transition(before, found())
        assert before.mode == vf.NEW_ENTRY
        assert before.fields["name"] == "My own name"


class TestLeaveVariantMode:

    def test_no_variants_restores_backup_with_new_code(self):
        state = transition(typed_state(), found())
        state = transition(state, NoVariants("NEW9"))

        assert state.mode == vf.NEW_ENTRY
        assert state.fields["name"] == "My own name"
        assert state.fields["notes"] == "typed notes"
        assert state.fields["price_per_box"] == "3.00"
        assert state.fields["hospital_drug_code"] == "NEW9"
        assert state.backup is None
        assert state.sibling_prices_cents == ()

    def test_code_cleared_restores_backup(self):
        state = transition(transition(typed_state(), found()), CodeCleared())
        assert state.mode == vf.NEW_ENTRY
        assert state.fields["hospital_drug_code"] == ""
        assert state.fields["unit"] == "strip"


class TestLockingAndOverride:

    def test_descriptive_fields_locked(self):
        state = transition(initial_state(), found())
        assert state.is_locked("name")
        with pytest.raises(FieldLockedError):
            transition(state, FieldEdited("name", "Changed"))

    def test_price_edit_moves_to_manual_override(self):
        state = transition(initial_state(), found())
        state = transition(state, FieldEdited("price_per_box", "11.00"))
        assert state.mode == vf.MANUAL_OVERRIDE
        assert state.is_locked("category")

    def test_same_code_re_resolved_keeps_user_edits(self):
        state = transition(initial_state(), found())
        state = transition(state, FieldEdited("price_per_box", "11.00"))
        state = transition(state, found(prices=(1000, 1200, 1300)))

        assert state.mode == vf.MANUAL_OVERRIDE
        assert state.fields["price_per_box"] == "11.00"
        assert state.sibling_prices_cents == (1000, 1200, 1300)

    def test_other_family_reapplies_template_but_keeps_original_backup(self):
        state = transition(typed_state(), found())
        state = transition(state, FieldEdited("price_per_box", "11.00"))
        other = dict(TEMPLATE, name="Ibuprofen", price_per_box_cents=2000)
        state = transition(state, VariantsFound("TAB777", other, (2000,)))

        assert state.mode == vf.VARIANT_TEMPLATE_APPLIED
        assert state.fields["name"] == "Ibuprofen"
        assert state.fields["price_per_box"] == "21.00"
        assert state.backup["name"] == "My own name"

    def test_unknown_field(self):
        with pytest.raises(KeyError):
            transition(initial_state(), FieldEdited("is_active", False))

    def test_reset(self):
        state = transition(transition(typed_state(), found()), Reset())
        assert state.mode == vf.NEW_ENTRY
        assert dict(state.fields) == dict(initial_state().fields)
        assert state.backup is None


class TestPresubmit:

    def test_valid_new_entry(self):
        assert presubmit_errors(typed_state()) == {}

    def test_required_fields(self):
        errors = presubmit_errors(initial_state())
        assert {"hospital_drug_code", "name", "dosage_form", "unit", "category", "price_per_box"} <= set(errors)
        assert "department" not in errors

    def test_sibling_price_blocks_submit(self):
        state = transition(initial_state(), found())
        state = transition(state, FieldEdited("price_per_box", "12"))

        errors = presubmit_errors(state)
        assert "already exists" in errors["price_per_box"]

    def test_suggested_price_passes(self):
        assert presubmit_errors(transition(initial_state(), found())) == {}

    def test_field_rules(self):
        state = typed_state()
        for name, value in (
            ("price_per_box", "1.234"),
            ("dosage_form", "ZZZ"),
            ("department", "ER"),
            ("minimum_stock", -1),
        ):
            state = transition(state, FieldEdited(name, value))

        assert set(presubmit_errors(state)) == {"price_per_box", "dosage_form", "department", "minimum_stock"}

    def test_payload_drops_blank_optionals(self):
        payload = typed_state().payload()
        assert "generic_name" not in payload
        assert payload["hospital_drug_code"] == "TAB001"
        assert payload["department"] == "PHARMACY"
