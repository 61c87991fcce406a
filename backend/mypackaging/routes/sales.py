# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales API

Amounts may be sent as decimal amounts ("paid_amount": "30.00") or as integer
cents ("paid_amount_cents": 3000). Responses carry both.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_actor, require_auth, require_role
from ..errors import LedgerError, ValidationError, error_response
from ..models import Role
from ..money import to_cents
from ..services import payment_service, sales_service
from ..validation import amount_cents, json_body, query_int


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _sale_items(raw_items) -> list[dict]:
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")
    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object")
        item = {
            "product_id": raw.get("product_id"),
            "qty_box": raw.get("qty_box"),
            "qty_pack": raw.get("qty_pack"),
            "qty_loose": raw.get("qty_loose"),
        }
        for field in ("unit_price", "box_price", "pack_price"):
            item[f"{field}_cents"] = amount_cents(raw, field, default=None)
        items.append(item)
    return items


def _payment_breakdown(data: dict) -> dict | None:
    if data.get("payment_breakdown_cents"):
        return data["payment_breakdown_cents"]
    breakdown = data.get("payment_breakdown")
    if not breakdown:
        return None
    if not isinstance(breakdown, dict):
        raise ValidationError("payment_breakdown must be an object")
    try:
        return {method: to_cents(value) for method, value in breakdown.items()}
    except ValueError:
        raise ValidationError("payment_breakdown amounts must be numbers")


@sales_bp.post("/")
@require_auth
def create_sale_route():
    """
    Record a sale.

    Request body:
    {
        "customer_name": "Ahmad",
        "items": [{"product_id": 1, "qty_box": 0, "qty_pack": 0, "qty_loose": 10}],
        "adjustment_type": "none" | "discount" | "roundoff",
        "adjustment_value": "0.00",
        "payment_method": "cash" | "online" | "hutang",
        "paid_amount": "30.00",
        "payment_breakdown": {"cash": "30.00", "hutang": "20.00"},  (optional)
        "created_at": "2024-05-01T10:00:00Z",  (optional, back-dated sale)
        "notes": "..."
    }

    Returns:
        201: Sale created
        400: Invalid input
        404: Unknown product
        409: Insufficient stock / concurrent change
        503: Database unreachable or save not confirmed
    """
    try:
        data = json_body()
        sale = sales_service.create_sale(
            items=_sale_items(data.get("items") or []),
            actor=current_actor(),
            customer_name=data.get("customer_name"),
            adjustment_type=data.get("adjustment_type") or "none",
            adjustment_value_cents=amount_cents(data, "adjustment_value", allow_negative=True),
            payment_method=data.get("payment_method"),
            paid_amount_cents=amount_cents(data, "paid_amount"),
            payment_breakdown=_payment_breakdown(data),
            created_at=data.get("created_at"),
            notes=data.get("notes"),
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
@require_auth
def list_sales_route():
    try:
        sales = sales_service.list_sales(
            status=request.args.get("status"),
            customer=request.args.get("customer"),
            date_from=request.args.get("from"),
            date_to=request.args.get("to"),
            limit=query_int("limit", 200),
        )
        return jsonify({"items": [s.to_dict(include_items=False) for s in sales], "count": len(sales)}), 200

    except LedgerError as e:
        return error_response(e)
    except ValueError:
        return jsonify({"error": "from/to must be ISO dates"}), 400


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        data = sale.to_dict()
        data["payments"] = [p.to_dict() for p in sale.payments]
        return jsonify({"sale": data}), 200
    except LedgerError as e:
        return error_response(e)


@sales_bp.delete("/<int:sale_id>")
@require_auth
@require_role(Role.ADMIN)
def delete_sale_route(sale_id: int):
    """Delete a sale and restore its stock. Body: {"password": "..."}."""
    try:
        data = json_body()
        sales_service.delete_sale(sale_id, actor=current_actor(), password=data.get("password") or "")
        return jsonify({"deleted": sale_id}), 200

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/payments")
@require_auth
def sale_payments_route(sale_id: int):
    try:
        payments = payment_service.get_sale_payments(sale_id)
        return jsonify({"sale_id": sale_id, "items": [p.to_dict() for p in payments]}), 200
    except LedgerError as e:
        return error_response(e)
