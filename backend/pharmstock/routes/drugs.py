# Overview: Flask API routes for drug variants; parses input and returns JSON responses.

"""
Drug routes.

MULTI-TENANT: Every route is scoped to the caller's organization
(g.org_id, set by @require_auth).

- GET    /api/drugs/check-code    resolve one code (edit path: exclude_id + price)
- POST   /api/drugs/check-codes   resolve many codes (bulk import tooling)
- POST   /api/drugs               create a variant with its stock rows
- GET    /api/drugs               list active drugs
- PATCH  /api/drugs/<id>          edit a variant
- DELETE /api/drugs/<id>          soft-delete a variant
- GET    /api/drugs/<id>/transactions
"""
from flask import Blueprint, request, g, current_app

from ..models import Drug, DEPARTMENTS
from ..services import code_resolver, drug_service, stock_service
from ..services.drug_service import StorageError
from ..services.tenant_service import TenantAccessError
from ..validation import (
    ModelValidationPolicy,
    coerce_int,
    validate_payload,
    validate_price,
    enforce_rules_drug,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth

DRUG_COLUMNS = {
    "hospital_drug_code",
    "name",
    "generic_name",
    "dosage_form",
    "strength",
    "unit",
    "package_size",
    "category",
    "notes",
}

DRUG_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=DRUG_COLUMNS,
    required_on_create={
        "hospital_drug_code",
        "name",
        "dosage_form",
        "unit",
        "category",
        "price_per_box",
        "department",
    },
    virtual_fields={"price_per_box", "department", "initial_quantity", "minimum_stock"},
)

DRUG_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=DRUG_COLUMNS,
    virtual_fields={"price_per_box"},
)

drugs_bp = Blueprint("drugs", __name__, url_prefix="/api/drugs")


def _validation_response(e: ValidationError, message: str = "Invalid drug data"):
    return {"error": message, "details": str(e), "fields": e.fields}, 400


def _storage_response(e: StorageError, message: str):
    current_app.logger.error("%s: %s", message, e, exc_info=e.__cause__ or e)
    return {"error": message, "code": e.code}, 500


@drugs_bp.get("/check-code")
@require_auth
def check_code_route():
    """
    Resolve one hospital drug code.

    Query params:
    - code: str (required, 1..50 chars)
    - exclude_id + price (optional, together): edit path. Adds `conflict`,
      true only if a *different* active row holds (code, price); `available`
      is then `not conflict`.
    """
    code = request.args.get("code")
    if code is None or not code.strip():
        return {"error": "code is required"}, 400

    raw_exclude_id = request.args.get("exclude_id")
    raw_price = request.args.get("price")

    try:
        exclude_id = None
        if raw_exclude_id is not None or raw_price is not None:
            if raw_exclude_id is None or raw_price is None:
                raise ValidationError(fields={"price": "exclude_id and price must be given together"})
            try:
                exclude_id = coerce_int("exclude_id", raw_exclude_id)
            except ValidationError:
                raise ValidationError(fields={"exclude_id": "must be an integer"}) from None
            price_cents = validate_price(raw_price, field="price")

        result = code_resolver.resolve(g.org_id, code, exclude_id=exclude_id)
        data = result.to_dict()

        if exclude_id is not None:
            conflict = code_resolver.check_exact_conflict(
                g.org_id, result.code, price_cents, exclude_id=exclude_id
            )
            data["conflict"] = conflict
            data["available"] = not conflict
            if conflict:
                data["message"] = f'Code "{result.code}" at this price is already used by another drug'
    except ValidationError as e:
        return _validation_response(e, "Invalid drug code")
    except Exception:
        current_app.logger.exception("Failed to check drug code")
        return {"error": "Failed to check drug code"}, 500

    return data, 200


@drugs_bp.post("/check-codes")
@require_auth
def check_codes_route():
    """
    Resolve many codes at once.

    Body: {"codes": [str, ...]}. Any invalid entry fails the whole batch (400).
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400

    try:
        bulk = code_resolver.resolve_bulk(g.org_id, payload.get("codes"))
    except ValidationError as e:
        return _validation_response(e, "Some drug codes are invalid")
    except Exception:
        current_app.logger.exception("Failed to bulk check drug codes")
        return {"error": "Failed to check drug codes"}, 500

    return bulk.to_dict(), 200


@drugs_bp.post("")
@require_auth
def create_drug_route():
    """
    Create a drug variant plus PHARMACY and OPD stock rows.

    409 if an active variant already has the same code and price.
    """
    payload = request.get_json(silent=True)

    try:
        patch = validate_payload(model=Drug, payload=payload, policy=DRUG_CREATE_POLICY, partial=False)
        patch = enforce_rules_drug(patch, creating=True)
    except ValidationError as e:
        return _validation_response(e)

    try:
        result = drug_service.create_drug(org_id=g.org_id, actor_id=g.current_user.id, patch=patch)
    except ValidationError as e:
        return _validation_response(e)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except StorageError as e:
        return _storage_response(e, "Failed to create drug")
    except Exception:
        current_app.logger.exception("Failed to create drug")
        return {"error": "Failed to create drug", "code": StorageError.code}, 500

    return {
        "success": True,
        "data": result,
        "message": drug_service.creation_message(result),
    }, 201


@drugs_bp.get("")
@require_auth
def list_drugs_route():
    """
    List active drugs ordered by (code, price).

    Query params: search, category, department (restricts embedded stock rows).
    """
    department = request.args.get("department")
    if department is not None and department.upper() not in DEPARTMENTS:
        return {"error": f"department must be one of {', '.join(DEPARTMENTS)}"}, 400

    items = drug_service.list_drugs(
        org_id=g.org_id,
        search=request.args.get("search"),
        category=request.args.get("category"),
        department=department.upper() if department else None,
    )
    return {"success": True, "data": items, "count": len(items)}, 200


@drugs_bp.patch("/<int:drug_id>")
@require_auth
def update_drug_route(drug_id: int):
    """Edit a variant; code/price changes are checked against other rows only."""
    payload = request.get_json(silent=True)

    try:
        patch = validate_payload(model=Drug, payload=payload, policy=DRUG_UPDATE_POLICY, partial=True)
        patch = enforce_rules_drug(patch, creating=False)
    except ValidationError as e:
        return _validation_response(e)

    try:
        result = drug_service.update_drug(org_id=g.org_id, drug_id=drug_id, patch=patch)
    except TenantAccessError:
        return {"error": "Drug not found"}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to update drug")
        return {"error": "Failed to update drug"}, 500

    return {"success": True, **result}, 200


@drugs_bp.delete("/<int:drug_id>")
@require_auth
def delete_drug_route(drug_id: int):
    """Soft-delete a variant (is_active=false)."""
    try:
        drug = drug_service.deactivate_drug(org_id=g.org_id, drug_id=drug_id)
    except TenantAccessError:
        return {"error": "Drug not found"}, 404
    except Exception:
        current_app.logger.exception("Failed to delete drug")
        return {"error": "Failed to delete drug"}, 500

    return {"success": True, "data": drug}, 200


@drugs_bp.get("/<int:drug_id>/transactions")
@require_auth
def drug_transactions_route(drug_id: int):
    limit = min(request.args.get("limit", default=200, type=int), 500)
    try:
        items = stock_service.list_stock_transactions(org_id=g.org_id, drug_id=drug_id, limit=limit)
    except TenantAccessError:
        return {"error": "Drug not found"}, 404
    return {"success": True, "data": items}, 200
