# Overview: Flask API routes for the product catalogue; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_actor, require_auth, require_role
from ..errors import LedgerError, error_response
from ..models import Role
from ..services import products_service, stock_service
from ..validation import amount_cents, json_body, optional_int, query_int


products_bp = Blueprint("products", __name__, url_prefix="/api/products")

_PRICE_FIELDS = ("unit_price", "box_price", "pack_price")
_PLAIN_FIELDS = ("name", "sku", "big_bulk_qty", "small_bulk_qty", "reorder_point")


def _product_patch(data: dict) -> dict:
    patch = {key: data[key] for key in _PLAIN_FIELDS if key in data}
    for field in _PRICE_FIELDS:
        if field in data or f"{field}_cents" in data:
            patch[f"{field}_cents"] = amount_cents(data, field, default=None)
    return patch


@products_bp.get("/")
@require_auth
def list_products_route():
    page = request.args.get("page")
    return jsonify(products_service.list_products(
        search=request.args.get("search"),
        page=query_int("page", 1) if page else None,
        per_page=query_int("per_page", 20),
    )), 200


@products_bp.post("/")
@require_auth
@require_role(Role.MANAGER)
def create_product_route():
    try:
        data = json_body()
        product = products_service.create_product(
            patch=_product_patch(data),
            actor=current_actor(),
            opening_stock=optional_int(data.get("opening_stock"), "opening_stock") or 0,
        )
        return jsonify({"product": product.to_dict()}), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return jsonify({"product": products_service.get_product(product_id).to_dict()}), 200
    except LedgerError as e:
        return error_response(e)


@products_bp.patch("/<int:product_id>")
@require_auth
@require_role(Role.MANAGER)
def update_product_route(product_id: int):
    try:
        product = products_service.update_product(
            product_id,
            patch=_product_patch(json_body()),
            actor=current_actor(),
        )
        return jsonify({"product": product.to_dict()}), 200

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/movements")
@require_auth
def product_movements_route(product_id: int):
    try:
        movements = stock_service.get_stock_movements(product_id, limit=query_int("limit", 200))
        return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200
    except LedgerError as e:
        return error_response(e)
