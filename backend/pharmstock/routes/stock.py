# Overview: Flask API routes for stock; parses input and returns JSON responses.

from flask import Blueprint, request, g, current_app

from ..models import DEPARTMENTS
from ..services import stock_service
from ..services.drug_service import StorageError
from ..services.tenant_service import TenantAccessError
from ..validation import enforce_rules_stock_adjust, ValidationError
from ..decorators import require_auth


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_auth
def list_stock_route():
    """Stock rows of active drugs, lowest quantity first. Optional ?department=."""
    department = request.args.get("department")
    if department is not None:
        department = department.strip().upper()
        if department not in DEPARTMENTS:
            return {"error": f"department must be one of {', '.join(DEPARTMENTS)}"}, 400

    items = stock_service.list_stock(org_id=g.org_id, department=department)
    return {"success": True, "data": items, "count": len(items)}, 200


@stock_bp.post("/adjust")
@require_auth
def adjust_stock_route():
    """
    Record one manual stock movement.

    Body: drug_id, department, type (TRANSFER_IN | TRANSFER_OUT | ADJUSTMENT),
    quantity, optional note and reference.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400

    try:
        data = enforce_rules_stock_adjust(payload)
        result = stock_service.adjust_stock(
            org_id=g.org_id,
            actor_id=g.current_user.id,
            drug_id=data["drug_id"],
            department=data["department"],
            tx_type=data["type"],
            quantity=data["quantity"],
            note=data.get("note"),
            reference=data.get("reference"),
        )
    except ValidationError as e:
        return {"error": "Invalid stock adjustment", "details": str(e), "fields": e.fields}, 400
    except TenantAccessError:
        return {"error": "Drug not found"}, 404
    except StorageError as e:
        current_app.logger.error("Failed to adjust stock: %s", e)
        return {"error": "Failed to adjust stock", "code": e.code}, 500
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return {"error": "Failed to adjust stock"}, 500

    return {"success": True, "data": result}, 201
