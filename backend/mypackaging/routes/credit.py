# Overview: Flask API routes for the hutang (credit) view; read-only.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth
from ..errors import LedgerError, error_response
from ..services import credit_service


credit_bp = Blueprint("credit", __name__, url_prefix="/api/credit")


@credit_bp.get("/summary")
@require_auth
def credit_summary_route():
    return jsonify(credit_service.outstanding_summary()), 200


@credit_bp.get("/sales")
@require_auth
def credit_sales_route():
    """Open credit sales. Query: filter=all|overdue|recent, sort=date|amount|customer."""
    try:
        sales = credit_service.list_credit_sales(
            filter=request.args.get("filter", "all"),
            sort=request.args.get("sort", "date"),
        )
        items = []
        for sale in sales:
            data = sale.to_dict(include_items=False)
            data["is_overdue"] = credit_service.is_overdue(sale)
            items.append(data)
        return jsonify({"items": items, "count": len(items)}), 200

    except LedgerError as e:
        return error_response(e)


@credit_bp.get("/customers/<path:customer_name>")
@require_auth
def customer_statement_route(customer_name: str):
    try:
        return jsonify(credit_service.customer_statement(customer_name)), 200
    except LedgerError as e:
        return error_response(e)
