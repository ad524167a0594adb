"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

Every request is scoped to one organization; cross-tenant access is
denied as if the row did not exist.

USAGE:
    from pharmstock.services.tenant_service import require_drug_in_org

    drug = require_drug_in_org(drug_id, g.org_id)
"""

from ..extensions import db
from ..models import Drug

class TenantAccessError(Exception):
    """Raised when a row is missing or belongs to another organization."""
    pass


def require_drug_in_org(drug_id: int, org_id: int, *, lock: bool = False) -> Drug:
    """
    Return the drug if it exists and belongs to org_id.

    Raises TenantAccessError otherwise; callers report 404 so foreign ids
    are indistinguishable from missing ones.
    """
    query = db.session.query(Drug).filter(Drug.id == drug_id)
    if lock:
        query = query.with_for_update()
    drug = query.first()
    if drug is None or drug.org_id != org_id:
        raise TenantAccessError("Drug not found")
    return drug
