# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_actor, require_auth, require_role
from ..errors import LedgerError, ValidationError, error_response
from ..models import DiscountType, Role
from ..services import purchase_service
from ..services.purchase_service import STATUS_LABELS
from ..validation import amount_cents, json_body, optional_int, query_int, strict_int


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


def _purchase_items(raw_items) -> list[dict]:
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")
    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object")
        discount_type = raw.get("discount_type") or DiscountType.NONE.value
        if discount_type == DiscountType.AMOUNT.value:
            discount_value = amount_cents(raw, "discount_value")
        else:
            discount_value = raw.get("discount_value")
        items.append({
            "product_id": raw.get("product_id"),
            "ordered_qty": raw.get("ordered_qty", raw.get("qty")),
            "cost_cents": amount_cents(raw, "cost"),
            "discount_type": discount_type,
            "discount_value": discount_value,
        })
    return items


def _received_quantities(raw) -> dict | None:
    """Accepts {"<item_id>": qty} or [{"item_id": 1, "received_qty": 3}]."""
    if not raw:
        return None
    if isinstance(raw, dict):
        return {strict_int(k, "received_quantities key"): v for k, v in raw.items()}
    if isinstance(raw, list):
        quantities = {}
        for entry in raw:
            item_id = optional_int(entry.get("item_id"), "item_id") if isinstance(entry, dict) else None
            if item_id is None:
                raise ValidationError("each received quantity needs an item_id")
            quantities[item_id] = entry.get("received_qty")
        return quantities
    raise ValidationError("received_quantities must be an object or a list")


def _serialize(purchase) -> dict:
    data = purchase.to_dict()
    data["status_label"] = STATUS_LABELS[purchase.status_enum]
    return data


@purchases_bp.post("/")
@require_auth
@require_role(Role.MANAGER)
def create_purchase_route():
    """
    Record a purchase order.

    Request body:
    {
        "supplier_name": "Acme Packaging",
        "invoice_number": "INV-001",
        "status": "Ordered",
        "items": [{"product_id": 1, "qty": 10, "cost": "2.50",
                   "discount_type": "percent", "discount_value": 10}],
        "overall_discount": "0.00",
        "transportation_cost": "15.00"
    }
    """
    try:
        data = json_body()
        received = data.get("received_quantities")
        purchase = purchase_service.create_purchase(
            supplier_name=data.get("supplier_name"),
            items=_purchase_items(data.get("items") or []),
            actor=current_actor(),
            invoice_number=data.get("invoice_number"),
            overall_discount_cents=amount_cents(data, "overall_discount"),
            transportation_cost_cents=amount_cents(data, "transportation_cost"),
            status=data.get("status") or "ORDERED",
            created_at=data.get("created_at"),
            notes=data.get("notes"),
            # positions into items, for a purchase created as partially received
            received_quantities=_received_quantities(received) if isinstance(received, dict) else None,
        )
        return jsonify({"purchase": _serialize(purchase)}), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/")
@require_auth
def list_purchases_route():
    try:
        purchases = purchase_service.list_purchases(
            status=request.args.get("status"),
            supplier=request.args.get("supplier"),
            limit=query_int("limit", 200),
        )
        return jsonify({"items": [_serialize(p) for p in purchases], "count": len(purchases)}), 200
    except LedgerError as e:
        return error_response(e)


@purchases_bp.get("/<int:purchase_id>")
@require_auth
def get_purchase_route(purchase_id: int):
    try:
        return jsonify({"purchase": _serialize(purchase_service.get_purchase(purchase_id))}), 200
    except LedgerError as e:
        return error_response(e)


@purchases_bp.post("/<int:purchase_id>/status")
@require_auth
@require_role(Role.MANAGER)
def update_purchase_status_route(purchase_id: int):
    """
    Move a purchase along its lifecycle.

    Body: {"status": "Received Partial", "received_quantities": [{"item_id": 7, "received_qty": 3}]}
    """
    try:
        data = json_body()
        if not data.get("status"):
            raise ValidationError("status is required")
        purchase = purchase_service.update_purchase_status(
            purchase_id,
            data["status"],
            actor=current_actor(),
            received_quantities=_received_quantities(data.get("received_quantities")),
        )
        return jsonify({"purchase": _serialize(purchase)}), 200

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update purchase status")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.delete("/<int:purchase_id>")
@require_auth
@require_role(Role.ADMIN)
def delete_purchase_route(purchase_id: int):
    try:
        data = json_body()
        purchase_service.delete_purchase(purchase_id, actor=current_actor(), password=data.get("password") or "")
        return jsonify({"deleted": purchase_id}), 200

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete purchase")
        return jsonify({"error": "Internal server error"}), 500
