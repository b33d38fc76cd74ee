# Overview: Read-only Flask route over the ledger audit log.

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services.audit_service import list_audit_log


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit-log")

MAX_AUDIT_PAGE = 500


@audit_bp.get("")
def list_audit_log_route():
    """
    Audit entries, newest first.

    Query params:
    - limit: max entries (default 100, capped at 500)
    - entity_type: sale, invoice or payment
    - entity_id: filter to one entity
    """
    try:
        limit = request.args.get("limit", 100, type=int)
        if limit < 1:
            return jsonify({"error": "limit must be >= 1"}), 400
        entries = list_audit_log(
            db.session,
            limit=min(limit, MAX_AUDIT_PAGE),
            entity_type=request.args.get("entity_type"),
            entity_id=request.args.get("entity_id", type=int),
        )
        return jsonify({"entries": [e.to_dict() for e in entries]}), 200
    except Exception:
        current_app.logger.exception("Failed to list audit log")
        return jsonify({"error": "Internal server error"}), 500
