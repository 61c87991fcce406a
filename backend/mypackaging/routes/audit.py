# Overview: Flask API routes for reading the audit trail.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..models import Role
from ..services import audit_service
from ..validation import query_int


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit-logs")


@audit_bp.get("/")
@require_auth
@require_role(Role.MANAGER)
def list_audit_logs_route():
    """Newest first. Query: limit, category (action|system|alert), action, actor."""
    entries = audit_service.list_audit_logs(
        limit=query_int("limit", 100),
        category=request.args.get("category"),
        action=request.args.get("action"),
        actor=request.args.get("actor"),
    )
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)}), 200
