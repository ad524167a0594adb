# Overview: Flask API routes for system status.

from flask import Blueprint

from ..extensions import db
from pharmstock.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


@system_bp.get("/health")
def health():
    """Liveness plus a trivial database round-trip."""
    db.session.execute(db.text("SELECT 1"))
    return {"status": "ok", "time": to_utc_z(utcnow())}
