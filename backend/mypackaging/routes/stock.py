# Overview: Flask API routes for stock operations; low stock, shop use, transfers, and stock audits.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_actor, require_auth, require_role
from ..errors import LedgerError, error_response
from ..models import Role
from ..services import shop_service, stock_service
from ..validation import json_body, optional_int, query_int


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/low")
@require_auth
def low_stock_route():
    products = stock_service.low_stock_products()
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


# =============================================================================
# SHOP USE
# =============================================================================

@stock_bp.post("/shop-use")
@require_auth
def create_shop_use_route():
    try:
        data = json_body()
        shop_use = shop_service.create_shop_use(
            items=data.get("items") or [],
            reason=data.get("reason"),
            actor=current_actor(),
            notes=data.get("notes"),
            created_at=data.get("created_at"),
        )
        return jsonify({"shop_use": shop_use.to_dict()}), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record shop use")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/shop-use")
@require_auth
def list_shop_use_route():
    records = shop_service.list_shop_uses(limit=query_int("limit", 200))
    return jsonify({"items": [r.to_dict() for r in records], "count": len(records)}), 200


@stock_bp.delete("/shop-use/<int:shop_use_id>")
@require_auth
@require_role(Role.MANAGER)
def delete_shop_use_route(shop_use_id: int):
    try:
        data = json_body()
        shop_service.delete_shop_use(shop_use_id, actor=current_actor(), password=data.get("password") or "")
        return jsonify({"deleted": shop_use_id}), 200
    except LedgerError as e:
        return error_response(e)


# =============================================================================
# TRANSFERS
# =============================================================================

@stock_bp.post("/transfers")
@require_auth
@require_role(Role.MANAGER)
def create_transfer_route():
    """Body: {"source_product_id", "target_product_id", "source_qty", "conversion_rate", "target_qty"?}"""
    try:
        data = json_body()
        transfer = shop_service.create_transfer(
            source_product_id=optional_int(data.get("source_product_id"), "source_product_id"),
            target_product_id=optional_int(data.get("target_product_id"), "target_product_id"),
            source_qty=data.get("source_qty"),
            conversion_rate=data.get("conversion_rate"),
            target_qty=data.get("target_qty"),
            actor=current_actor(),
            notes=data.get("notes"),
            created_at=data.get("created_at"),
        )
        return jsonify({"transfer": transfer.to_dict()}), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create transfer")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/transfers")
@require_auth
def list_transfers_route():
    transfers = shop_service.list_transfers(limit=query_int("limit", 200))
    return jsonify({"items": [t.to_dict() for t in transfers], "count": len(transfers)}), 200


@stock_bp.delete("/transfers/<int:transfer_id>")
@require_auth
@require_role(Role.MANAGER)
def delete_transfer_route(transfer_id: int):
    try:
        data = json_body()
        shop_service.delete_transfer(transfer_id, actor=current_actor(), password=data.get("password") or "")
        return jsonify({"deleted": transfer_id}), 200
    except LedgerError as e:
        return error_response(e)


# =============================================================================
# STOCK AUDITS
# =============================================================================

@stock_bp.post("/audits")
@require_auth
@require_role(Role.ADMIN)
def create_stock_audit_route():
    """Body: {"product_id", "actual_stock", "reason", "password"}"""
    try:
        data = json_body()
        audit = shop_service.create_stock_audit(
            optional_int(data.get("product_id"), "product_id"),
            data.get("actual_stock"),
            data.get("reason"),
            actor=current_actor(),
            password=data.get("password") or "",
        )
        return jsonify({"audit": audit.to_dict()}), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record stock audit")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/audits")
@require_auth
def list_stock_audits_route():
    product_id = optional_int(request.args.get("product_id"), "product_id")
    audits = shop_service.list_stock_audits(product_id=product_id, limit=query_int("limit", 200))
    return jsonify({"items": [a.to_dict() for a in audits], "count": len(audits)}), 200
