# Overview: Credit repayment engine; settles hutang balances with idempotent, conflict-checked writes.

"""
Credit repayments

WHY: A repayment changes three things that must agree: the sale's paid and
remaining amounts (and status), the sale-scoped payment history, and the
global payments table used by reports. All three are written in one
transaction against a locked, version-checked sale row.

Retry safety:
- request_id is the caller's idempotency key for one payment intent. If a
  payment with that key already committed, the call returns the sale as it
  stands without recording anything again. This is what makes "retry after
  an unconfirmed save" safe.
- expected_remaining_cents lets a client assert the balance it showed to
  the operator. If someone else changed it first the call fails with
  ConcurrencyConflictError instead of applying on stale numbers.
"""

from __future__ import annotations

import logging

from ..errors import ConcurrencyConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Payment, PaymentMethod, Sale, SalePayment, SaleStatus
from ..money import is_settled
from ..time_utils import normalize_datetime, utcnow
from . import audit_service, change_feed
from .concurrency import lock_for_update, run_in_transaction

logger = logging.getLogger(__name__)

REPAYMENT_METHODS = (PaymentMethod.CASH.value, PaymentMethod.ONLINE.value)


class PaymentError(ValidationError):
    """Raised for payment validation errors."""
    pass


def _validate_amount(amount_cents) -> int:
    if isinstance(amount_cents, bool):
        raise PaymentError("Payment amount must be an amount in cents")
    try:
        amount = int(amount_cents)
    except (TypeError, ValueError):
        raise PaymentError("Payment amount must be an amount in cents")
    if amount != amount_cents and not isinstance(amount_cents, str):
        raise PaymentError("Payment amount must be an amount in cents")
    if amount < 1:
        raise PaymentError("Payment amount must be greater than 0")
    return amount


def _replayed_payment(request_id: str, sale_id: int, amount_cents: int) -> Payment | None:
    existing = db.session.query(Payment).filter_by(request_id=request_id).first()
    if existing is None:
        return None
    if existing.sale_id != sale_id or existing.amount_cents != amount_cents:
        raise PaymentError(
            "request_id was already used for a different payment",
            details={"request_id": request_id, "sale_id": existing.sale_id},
        )
    return existing


def record_payment(
    sale_id: int,
    amount_cents: int,
    method: str,
    *,
    actor: str | None,
    payment_date=None,
    request_id: str | None = None,
    expected_remaining_cents: int | None = None,
) -> Sale:
    """
    Apply a repayment to a credit sale.

    Raises:
        PaymentError: bad amount/method, nothing owed, or overpayment
        NotFoundError: unknown sale
        ConcurrencyConflictError: balance no longer matches expected_remaining_cents
        ConnectivityError: store unreachable, or commit not confirmed
    """
    amount = _validate_amount(amount_cents)
    if method not in REPAYMENT_METHODS:
        raise PaymentError(
            f"Payment method must be one of: {', '.join(REPAYMENT_METHODS)}",
            details={"method": method},
        )
    try:
        paid_at = normalize_datetime(payment_date) or utcnow()
    except ValueError:
        raise PaymentError("Invalid payment date")
    request_id = (request_id or "").strip() or None

    def _op():
        if request_id:
            existing = _replayed_payment(request_id, sale_id, amount)
            if existing is not None:
                logger.info("Payment %s already recorded for request %s", existing.id, request_id)
                return db.session.get(Sale, sale_id)

        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})

        if expected_remaining_cents is not None and sale.remaining_cents != expected_remaining_cents:
            raise ConcurrencyConflictError(
                "The balance for this sale changed since it was loaded. Reload it and try again.",
                details={
                    "sale_id": sale.id,
                    "expected_remaining_cents": expected_remaining_cents,
                    "remaining_cents": sale.remaining_cents,
                },
            )

        if is_settled(sale.remaining_cents):
            raise PaymentError("This sale has no remaining balance", details={"sale_id": sale.id})

        if amount > sale.remaining_cents:
            raise PaymentError(
                "Payment amount cannot exceed the remaining balance",
                details={"remaining_cents": sale.remaining_cents, "amount_cents": amount},
            )

        now = utcnow()
        sale.paid_amount_cents = sale.paid_amount_cents + amount
        sale.remaining_cents = max(0, sale.remaining_cents - amount)
        sale.status = SaleStatus.PAID.value if is_settled(sale.remaining_cents) else SaleStatus.HUTANG.value
        sale.updated_at = now

        sale_payment = SalePayment(
            sale_id=sale.id,
            amount_cents=amount,
            payment_method=method,
            paid_at=paid_at,
            created_at=now,
            created_by=actor,
        )
        db.session.add(sale_payment)
        db.session.flush()

        payment = Payment(
            sale_id=sale.id,
            sale_payment_id=sale_payment.id,
            customer_name=sale.customer_name,
            amount_cents=amount,
            payment_method=method,
            paid_at=paid_at,
            created_at=now,
            created_by=actor,
            request_id=request_id,
        )
        db.session.add(payment)
        db.session.flush()

        audit_service.log_payment_recorded(sale, payment, actor)
        change_feed.record_change("sales", "updated", sale.id, sale.to_dict())
        change_feed.record_change("payments", "created", payment.id, payment.to_dict())
        return sale

    sale = run_in_transaction(_op)
    logger.info("Payment on sale %s: remaining=%s status=%s", sale.id, sale.remaining_cents, sale.status)
    return sale


def get_sale_payments(sale_id: int) -> list[SalePayment]:
    if db.session.get(Sale, sale_id) is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return (
        db.session.query(SalePayment)
        .filter(SalePayment.sale_id == sale_id)
        .order_by(SalePayment.paid_at.asc(), SalePayment.id.asc())
        .all()
    )


def list_payments(customer_name: str | None = None, date_from=None, date_to=None, limit: int = 500) -> list[Payment]:
    query = db.session.query(Payment)
    if customer_name:
        query = query.filter(Payment.customer_name == customer_name.strip())
    start = normalize_datetime(date_from)
    end = normalize_datetime(date_to)
    if start is not None:
        query = query.filter(Payment.paid_at >= start)
    if end is not None:
        query = query.filter(Payment.paid_at <= end)
    limit = max(1, min(int(limit), 5000))
    return query.order_by(Payment.paid_at.desc(), Payment.id.desc()).limit(limit).all()
