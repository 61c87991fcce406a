# Overview: Flask API routes for credit repayments; parses input and returns JSON responses.

# backend/mypackaging/routes/payments.py
"""
Credit Repayment API Routes

Retry safety:
- Send a client-generated request_id (body) or Idempotency-Key (header)
  with every payment. If the response is lost or reports an unconfirmed
  save (503 with outcome_unknown=true), re-send the same request: a payment
  that already landed is not applied twice.
- Send expected_remaining (the balance the operator saw) to be told with a
  409 when someone else recorded a payment first.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_actor, require_auth
from ..errors import LedgerError, ValidationError, error_response
from ..services import payment_service
from ..validation import amount_cents, json_body, optional_int, query_int


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/")
@require_auth
def record_payment_route():
    """
    Record a repayment against a credit sale.

    Request body:
    {
        "sale_id": 123,
        "amount": "20.00",   (or "amount_cents": 2000)
        "method": "cash" | "online",
        "payment_date": "2024-05-03",  (optional)
        "request_id": "c0a8...",  (optional, idempotency key)
        "expected_remaining": "20.00"  (optional)
    }
    """
    try:
        data = json_body()
        sale_id = optional_int(data.get("sale_id"), "sale_id")
        if sale_id is None:
            raise ValidationError("sale_id is required")
        amount = amount_cents(data, "amount", default=None)
        if amount is None:
            raise ValidationError("amount is required")

        sale = payment_service.record_payment(
            sale_id,
            amount,
            data.get("method") or "cash",
            actor=current_actor(),
            payment_date=data.get("payment_date"),
            request_id=data.get("request_id") or request.headers.get("Idempotency-Key"),
            expected_remaining_cents=amount_cents(data, "expected_remaining", default=None),
        )
        body = sale.to_dict(include_items=False)
        body["payments"] = [p.to_dict() for p in sale.payments]
        return jsonify({"sale": body}), 201

    except LedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/")
@require_auth
def list_payments_route():
    try:
        payments = payment_service.list_payments(
            customer_name=request.args.get("customer"),
            date_from=request.args.get("from"),
            date_to=request.args.get("to"),
            limit=query_int("limit", 500),
        )
        return jsonify({"items": [p.to_dict() for p in payments], "count": len(payments)}), 200

    except LedgerError as e:
        return error_response(e)
    except ValueError:
        return jsonify({"error": "from/to must be ISO dates"}), 400
