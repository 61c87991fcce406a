# Overview: Flask API routes for supplier returns; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_actor, require_auth, require_role
from ..errors import LedgerError, error_response
from ..models import Role
from ..services import return_service
from ..validation import json_body, query_int


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("/")
@require_auth
@require_role(Role.MANAGER)
def create_return_route():
    """
    Send goods back to a supplier.

    Body: {"supplier_name": "...", "reference_number": "...", "reason": "...",
           "items": [{"product_id": 1, "qty": 5}]}
    """
    try:
        data = json_body()
        supplier_return = return_service.create_return(
            supplier_name=data.get("supplier_name"),
            items=data.get("items") or [],
            actor=current_actor(),
            reference_number=data.get("reference_number"),
            reason=data.get("reason"),
            created_at=data.get("created_at"),
        )
        return jsonify({"return": supplier_return.to_dict()}), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create supplier return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/")
@require_auth
def list_returns_route():
    returns = return_service.list_returns(supplier=request.args.get("supplier"), limit=query_int("limit", 200))
    return jsonify({"items": [r.to_dict() for r in returns], "count": len(returns)}), 200


@returns_bp.get("/<int:return_id>")
@require_auth
def get_return_route(return_id: int):
    try:
        return jsonify({"return": return_service.get_return(return_id).to_dict()}), 200
    except LedgerError as e:
        return error_response(e)


@returns_bp.delete("/<int:return_id>")
@require_auth
@require_role(Role.ADMIN)
def delete_return_route(return_id: int):
    try:
        data = json_body()
        return_service.delete_return(return_id, actor=current_actor(), password=data.get("password") or "")
        return jsonify({"deleted": return_id}), 200

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete supplier return")
        return jsonify({"error": "Internal server error"}), 500
