# Overview: Code/variant resolution; turns registry lookups into decisions the UI or bulk tooling can act on.

"""
Code/Variant Resolver

resolve(code) answers "is this code new, or does it already name one or
more price variants?". A well-formed code is always `available`: reusing a
code with a new price is how variants are made. The only disqualifying
case is an exact (code, price) collision, which is checked at write time by
the creation transaction and, for edits, by check_exact_conflict().

Nothing here is cached; every call reads the registry again.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from ..models import Drug
from ..money import cents_to_amount, format_price, suggest_price_cents
from ..validation import validate_code_list, validate_drug_code
from . import drug_registry


@dataclass(frozen=True)
class PriceRange:
    min_cents: int
    max_cents: int
    count: int

    def to_dict(self) -> dict:
        return {
            "min": cents_to_amount(self.min_cents),
            "max": cents_to_amount(self.max_cents),
            "count": self.count,
        }


@dataclass(frozen=True)
class VariantSummary:
    """Derived view over the active variants sharing one code."""
    count: int
    price_range: PriceRange
    template: Drug
    latest_price_cents: int
    average_price_cents: int
    suggested_next_price_cents: int

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "price_range": self.price_range.to_dict(),
            "template_drug_id": self.template.id,
            "latest_price": cents_to_amount(self.latest_price_cents),
            "average_price": cents_to_amount(self.average_price_cents),
            "suggested_next_price": cents_to_amount(self.suggested_next_price_cents),
        }


def summarize_variants(drugs: list[Drug]) -> VariantSummary | None:
    """
    Summary over variants ordered cheapest first (as the registry returns them).

    template is the cheapest row; latest is the most recently created row's
    price; the suggested next price is 5% above the current maximum.
    """
    if not drugs:
        return None
    prices = [d.price_per_box_cents for d in drugs]
    latest = max(drugs, key=lambda d: (d.created_at, d.id))
    return VariantSummary(
        count=len(drugs),
        price_range=PriceRange(min_cents=min(prices), max_cents=max(prices), count=len(drugs)),
        template=drugs[0],
        latest_price_cents=latest.price_per_box_cents,
        average_price_cents=(sum(prices) + len(prices) // 2) // len(prices),
        suggested_next_price_cents=suggest_price_cents(max(prices)),
    )


@dataclass(frozen=True)
class NewCode:
    """No active variant uses this code."""
    code: str
    suggestions: list[dict] = field(default_factory=list)

    available = True
    exists = False
    can_create_variant = False

    @property
    def variant_count(self) -> int:
        return 0

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "available": self.available,
            "exists": self.exists,
            "can_create_variant": self.can_create_variant,
            "drugs": [],
            "template_drug": None,
            "price_range": None,
            "suggestions": list(self.suggestions),
            "message": f'Code "{self.code}" is available (new code)',
        }


@dataclass(frozen=True)
class ExistingVariants:
    """One or more active variants use this code; another price may still be added."""
    code: str
    drugs: list[Drug]
    summary: VariantSummary
    suggestions: list[dict] = field(default_factory=list)

    available = True
    exists = True
    can_create_variant = True

    @property
    def variant_count(self) -> int:
        return len(self.drugs)

    @property
    def template_drug(self) -> Drug:
        return self.summary.template

    def to_dict(self) -> dict:
        price_range = self.summary.price_range
        return {
            "code": self.code,
            "available": self.available,
            "exists": self.exists,
            "can_create_variant": self.can_create_variant,
            "drugs": [d.to_dict(include_stocks=True) for d in self.drugs],
            "template_drug": self.template_drug.to_dict(),
            "price_range": price_range.to_dict(),
            "variant_summary": self.summary.to_dict(),
            "suggestions": list(self.suggestions),
            "message": (
                f'Code "{self.code}" has {price_range.count} variant(s) '
                f"(price {format_price(price_range.min_cents)}-{format_price(price_range.max_cents)})"
            ),
        }


def _build(code: str, drugs: list[Drug], suggestions: list[dict]):
    if not drugs:
        return NewCode(code=code, suggestions=suggestions)
    return ExistingVariants(
        code=code,
        drugs=drugs,
        summary=summarize_variants(drugs),
        suggestions=suggestions,
    )


def resolve(org_id: int, code: str, *, exclude_id: int | None = None) -> NewCode | ExistingVariants:
    """
    Resolve one code.

    The edit path passes the edited row's id as `exclude_id`; that row is
    dropped before anything is derived, so a code held only by the row
    itself resolves as new.

    Raises ValidationError if the code is not a 1..50 character string.
    """
    code = validate_drug_code(code)
    drugs = drug_registry.find_variants_by_code(org_id, code)
    if exclude_id is not None:
        drugs = [d for d in drugs if d.id != exclude_id]
    suggestions = drug_registry.find_similar_codes(org_id, code)
    return _build(code, drugs, suggestions)


@dataclass(frozen=True)
class BulkResolution:
    results: list
    total: int
    new_codes: int
    existing_codes: int
    total_variants: int

    def to_dict(self) -> dict:
        results = []
        for r in self.results:
            data = r.to_dict()
            data["variant_count"] = r.variant_count
            results.append(data)
        return {
            "success": True,
            "results": results,
            "summary": {
                "total": self.total,
                "new_codes": self.new_codes,
                "existing_codes": self.existing_codes,
                "total_variants": self.total_variants,
            },
        }


def resolve_bulk(org_id: int, codes) -> BulkResolution:
    """
    Resolve many codes for import tooling.

    Every code is validated first; a single invalid entry fails the batch
    with a ValidationError naming each offending index.
    """
    validated = validate_code_list(codes)
    grouped = drug_registry.find_variants_by_codes(org_id, validated)

    results = [
        _build(code, grouped.get(code, []), drug_registry.find_similar_codes(org_id, code))
        for code in validated
    ]
    return BulkResolution(
        results=results,
        total=len(results),
        new_codes=sum(1 for r in results if not r.exists),
        existing_codes=sum(1 for r in results if r.exists),
        total_variants=sum(r.variant_count for r in results),
    )


def check_exact_conflict(
    org_id: int,
    code: str,
    price_cents: int,
    *,
    exclude_id: int | None = None,
) -> bool:
    """
    True if an active row other than `exclude_id` already holds (code, price).

    The edit path passes the edited row's own id so a row never collides
    with itself.
    """
    code = validate_drug_code(code)
    return drug_registry.find_by_code_and_price(
        org_id, code, price_cents, exclude_id=exclude_id
    ) is not None
