# Overview: Add-drug form state as a pure transition table (new entry vs. price variant of an existing code).

"""
Variant form

Modes:
- NEW_ENTRY                 the code is new (or unknown yet); every field is editable
- VARIANT_TEMPLATE_APPLIED  the code already has variants; descriptive fields
                            were copied from the cheapest one and are locked
- MANUAL_OVERRIDE           as above, but the user has since changed price,
                            stock or notes; re-resolving the same code keeps
                            those edits

transition(state, event) never mutates its input. The user's own typing is
snapshotted into `backup` when a template is first applied and restored
when the code moves away from an existing family.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ..models import DEPARTMENTS, DOSAGE_FORMS, DRUG_CATEGORIES
from ..money import MAX_PRICE_CENTS, cents_to_input, format_price, parse_price_to_cents, suggest_price_cents
from ..validation import MAX_CODE_LENGTH, MAX_NOTES_LENGTH

NEW_ENTRY = "NEW_ENTRY"
VARIANT_TEMPLATE_APPLIED = "VARIANT_TEMPLATE_APPLIED"
MANUAL_OVERRIDE = "MANUAL_OVERRIDE"

CODE_FIELD = "hospital_drug_code"

# Shared by every variant of a code; copied from the template and locked.
DESCRIPTIVE_FIELDS = (
    "name",
    "generic_name",
    "dosage_form",
    "strength",
    "unit",
    "package_size",
    "category",
)

# Per price point.
VARIANT_FIELDS = ("price_per_box", "initial_quantity", "minimum_stock", "notes", "department")

FORM_FIELDS = (CODE_FIELD,) + DESCRIPTIVE_FIELDS + VARIANT_FIELDS

REQUIRED_FIELDS = (CODE_FIELD, "name", "dosage_form", "unit", "category", "price_per_box", "department")

DEFAULT_FIELDS = {
    CODE_FIELD: "",
    "name": "",
    "generic_name": "",
    "dosage_form": "",
    "strength": "",
    "unit": "",
    "package_size": "",
    "category": "",
    "price_per_box": "",
    "initial_quantity": 0,
    "minimum_stock": 10,
    "notes": "",
    "department": "PHARMACY",
}


class FieldLockedError(ValueError):
    """A descriptive field was edited while the form is in variant mode."""


@dataclass(frozen=True)
class FormState:
    mode: str = NEW_ENTRY
    fields: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType(dict(DEFAULT_FIELDS)))
    backup: Optional[Mapping[str, Any]] = None
    template_code: Optional[str] = None
    sibling_prices_cents: Tuple[int, ...] = ()

    @property
    def variant_mode(self) -> bool:
        return self.mode != NEW_ENTRY

    def is_locked(self, name: str) -> bool:
        return self.variant_mode and name in DESCRIPTIVE_FIELDS

    def payload(self) -> dict:
        """Request body for POST /api/drugs."""
        return {k: v for k, v in self.fields.items() if v not in ("", None) or k in REQUIRED_FIELDS}


def initial_state(**overrides) -> FormState:
    fields = dict(DEFAULT_FIELDS)
    fields.update(overrides)
    return FormState(fields=MappingProxyType(fields))


# ------------------------------------------------------------------ events

@dataclass(frozen=True)
class VariantsFound:
    """Resolution says `code` has active variants; `template` is the cheapest one."""
    code: str
    template: Mapping[str, Any]
    sibling_prices_cents: Tuple[int, ...]

    @classmethod
    def from_result(cls, result: dict) -> "VariantsFound":
        return cls(
            code=result["code"],
            template=result["template_drug"],
            sibling_prices_cents=tuple(d["price_per_box_cents"] for d in result.get("drugs", [])),
        )


@dataclass(frozen=True)
class NoVariants:
    code: str


@dataclass(frozen=True)
class CodeCleared:
    pass


@dataclass(frozen=True)
class FieldEdited:
    name: str
    value: Any


@dataclass(frozen=True)
class Reset:
    pass


# ------------------------------------------------------------- transitions

def _freeze(fields: Dict[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(fields))


def _apply_template(state: FormState, event: VariantsFound, backup) -> FormState:
    fields = dict(state.fields)
    for name in DESCRIPTIVE_FIELDS:
        value = event.template.get(name)
        fields[name] = "" if value is None else value
    fields[CODE_FIELD] = event.code
    fields["price_per_box"] = cents_to_input(suggest_price_cents(event.template["price_per_box_cents"]))
    fields["notes"] = ""
    return FormState(
        mode=VARIANT_TEMPLATE_APPLIED,
        fields=_freeze(fields),
        backup=backup,
        template_code=event.code,
        sibling_prices_cents=event.sibling_prices_cents,
    )


def _restore(state: FormState, code: str) -> FormState:
    fields = dict(state.backup if state.backup is not None else state.fields)
    fields[CODE_FIELD] = code
    return FormState(mode=NEW_ENTRY, fields=_freeze(fields))


def _enter_variant_mode(state: FormState, event: VariantsFound) -> FormState:
    backup = {k: v for k, v in state.fields.items() if k != CODE_FIELD}
    return _apply_template(state, event, _freeze(backup))


def _variants_found_in_variant_mode(state: FormState, event: VariantsFound) -> FormState:
    if event.code == state.template_code:
        # Same family re-resolved: keep whatever the user has typed since
        return replace(state, sibling_prices_cents=event.sibling_prices_cents)
    return _apply_template(state, event, state.backup)


def _no_variants_in_new_entry(state: FormState, event: NoVariants) -> FormState:
    fields = dict(state.fields)
    fields[CODE_FIELD] = event.code
    return replace(state, fields=_freeze(fields), sibling_prices_cents=())


def _leave_variant_mode(state: FormState, event) -> FormState:
    return _restore(state, getattr(event, "code", ""))


def _clear_code(state: FormState, event: CodeCleared) -> FormState:
    fields = dict(state.fields)
    fields[CODE_FIELD] = ""
    return replace(state, fields=_freeze(fields), sibling_prices_cents=())


def _edit(state: FormState, event: FieldEdited) -> FormState:
    if event.name not in FORM_FIELDS:
        raise KeyError(f"Unknown form field: {event.name}")
    if state.is_locked(event.name):
        raise FieldLockedError(f"{event.name} is shared by all variants of {state.template_code}")
    fields = dict(state.fields)
    fields[event.name] = event.value
    mode = state.mode
    if mode == VARIANT_TEMPLATE_APPLIED and event.name in VARIANT_FIELDS:
        mode = MANUAL_OVERRIDE
    return replace(state, mode=mode, fields=_freeze(fields))


def _reset(state: FormState, event: Reset) -> FormState:
    return initial_state()


Handler = Callable[[FormState, Any], FormState]

TRANSITIONS: Dict[Tuple[str, type], Handler] = {
    (NEW_ENTRY, VariantsFound): _enter_variant_mode,
    (NEW_ENTRY, NoVariants): _no_variants_in_new_entry,
    (NEW_ENTRY, CodeCleared): _clear_code,
    (NEW_ENTRY, FieldEdited): _edit,
    (NEW_ENTRY, Reset): _reset,

    (VARIANT_TEMPLATE_APPLIED, VariantsFound): _variants_found_in_variant_mode,
    (VARIANT_TEMPLATE_APPLIED, NoVariants): _leave_variant_mode,
    (VARIANT_TEMPLATE_APPLIED, CodeCleared): _leave_variant_mode,
    (VARIANT_TEMPLATE_APPLIED, FieldEdited): _edit,
    (VARIANT_TEMPLATE_APPLIED, Reset): _reset,

    (MANUAL_OVERRIDE, VariantsFound): _variants_found_in_variant_mode,
    (MANUAL_OVERRIDE, NoVariants): _leave_variant_mode,
    (MANUAL_OVERRIDE, CodeCleared): _leave_variant_mode,
    (MANUAL_OVERRIDE, FieldEdited): _edit,
    (MANUAL_OVERRIDE, Reset): _reset,
}


def transition(state: FormState, event) -> FormState:
    handler = TRANSITIONS.get((state.mode, type(event)))
    if handler is None:
        raise ValueError(f"No transition from {state.mode} on {type(event).__name__}")
    return handler(state, event)


# --------------------------------------------------------------- presubmit

def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _non_negative_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def presubmit_errors(state: FormState) -> Dict[str, str]:
    """
    Client-side checks mirroring the server's field rules, plus the
    sibling-price collision: a variant may not repeat a price its code
    already has. The server re-checks everything; this only saves a round trip.
    """
    f = state.fields
    errors: Dict[str, str] = {}

    for name in REQUIRED_FIELDS:
        if _blank(f.get(name)):
            errors[name] = "is required"

    code = str(f.get(CODE_FIELD) or "").strip()
    if len(code) > MAX_CODE_LENGTH:
        errors[CODE_FIELD] = f"exceeds max length {MAX_CODE_LENGTH}"

    if "price_per_box" not in errors:
        try:
            cents = parse_price_to_cents(f["price_per_box"])
        except ValueError as e:
            errors["price_per_box"] = str(e)
        else:
            if cents < 0 or cents > MAX_PRICE_CENTS:
                errors["price_per_box"] = f"must be between 0 and {format_price(MAX_PRICE_CENTS)}"
            elif cents in state.sibling_prices_cents:
                errors["price_per_box"] = (
                    f"Price {format_price(cents)} already exists for code {code}; choose a different price"
                )

    dosage_form = str(f.get("dosage_form") or "").upper()
    if dosage_form and dosage_form not in DOSAGE_FORMS:
        errors["dosage_form"] = "is not a recognised dosage form"

    category = str(f.get("category") or "").upper()
    if category and category not in DRUG_CATEGORIES:
        errors["category"] = "is not a recognised drug category"

    department = str(f.get("department") or "").upper()
    if department and department not in DEPARTMENTS:
        errors["department"] = f"must be one of {', '.join(DEPARTMENTS)}"

    for name in ("initial_quantity", "minimum_stock"):
        if not _blank(f.get(name)) and _non_negative_int(f.get(name)) is None:
            errors[name] = "must be a whole number >= 0"

    if len(str(f.get("notes") or "")) > MAX_NOTES_LENGTH:
        errors["notes"] = f"exceeds max length {MAX_NOTES_LENGTH}"

    return errors
