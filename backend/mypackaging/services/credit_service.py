# Overview: Read model over credit (hutang) sales; outstanding totals, overdue tracking, customer statements.

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Payment, Sale, SaleStatus
from ..money import cents_to_amount, sum_cents
from ..time_utils import utcnow

RECENT_DAYS = 7

CREDIT_FILTERS = ("all", "overdue", "recent")
CREDIT_SORTS = ("date", "amount", "customer")


def _overdue_cutoff(now: datetime) -> datetime:
    return now - timedelta(days=current_app.config.get("CREDIT_OVERDUE_DAYS", 30))


def _open_credit_query():
    return db.session.query(Sale).filter(
        Sale.status == SaleStatus.HUTANG.value,
        Sale.remaining_cents > 0,
    )


def outstanding_summary(now: datetime | None = None) -> dict:
    """Totals across every sale that still has a balance."""
    now = now or utcnow()
    open_sales = _open_credit_query()

    total_outstanding = open_sales.with_entities(func.coalesce(func.sum(Sale.remaining_cents), 0)).scalar()
    customers = open_sales.with_entities(func.count(func.distinct(Sale.customer_name))).scalar()
    overdue = open_sales.filter(Sale.created_at < _overdue_cutoff(now)).count()

    return {
        "total_outstanding_cents": int(total_outstanding or 0),
        "total_outstanding": cents_to_amount(total_outstanding or 0),
        "total_customers": int(customers or 0),
        "open_sales": open_sales.count(),
        "overdue_count": overdue,
        "overdue_days": current_app.config.get("CREDIT_OVERDUE_DAYS", 30),
    }


def is_overdue(sale: Sale, now: datetime | None = None) -> bool:
    now = now or utcnow()
    return sale.remaining_cents > 0 and sale.created_at < _overdue_cutoff(now)


def list_credit_sales(filter: str = "all", sort: str = "date", now: datetime | None = None) -> list[Sale]:
    """
    Open credit sales.

    filter: all | overdue (older than CREDIT_OVERDUE_DAYS) | recent (last 7 days)
    sort:   date (newest first) | amount (largest balance first) | customer (A-Z)
    """
    if filter not in CREDIT_FILTERS:
        raise ValidationError(f"filter must be one of: {', '.join(CREDIT_FILTERS)}")
    if sort not in CREDIT_SORTS:
        raise ValidationError(f"sort must be one of: {', '.join(CREDIT_SORTS)}")

    now = now or utcnow()
    query = _open_credit_query()
    if filter == "overdue":
        query = query.filter(Sale.created_at < _overdue_cutoff(now))
    elif filter == "recent":
        query = query.filter(Sale.created_at >= now - timedelta(days=RECENT_DAYS))

    if sort == "amount":
        query = query.order_by(Sale.remaining_cents.desc(), Sale.id.desc())
    elif sort == "customer":
        query = query.order_by(Sale.customer_name.asc(), Sale.created_at.desc())
    else:
        query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    return query.all()


def customer_statement(customer_name: str) -> dict:
    """
    Everything a customer has bought on credit and paid back.

    A credit sale is one that left a balance when it was made
    (hutang_total_cents > 0), whether or not it has since been paid off.
    """
    name = (customer_name or "").strip()
    if not name:
        raise ValidationError("Customer name is required")

    sales = (
        db.session.query(Sale)
        .filter(Sale.customer_name == name, Sale.hutang_total_cents > 0)
        .order_by(Sale.created_at.asc(), Sale.id.asc())
        .all()
    )
    payments = (
        db.session.query(Payment)
        .filter(Payment.customer_name == name)
        .order_by(Payment.paid_at.asc(), Payment.id.asc())
        .all()
    )

    total_credit = sum_cents(sale.total_cents for sale in sales)
    total_paid = sum_cents(sale.paid_amount_cents for sale in sales)
    total_remaining = sum_cents(sale.remaining_cents for sale in sales)

    return {
        "customer_name": name,
        "total_credit_cents": total_credit,
        "total_paid_cents": total_paid,
        "total_remaining_cents": total_remaining,
        "total_credit": cents_to_amount(total_credit),
        "total_paid": cents_to_amount(total_paid),
        "total_remaining": cents_to_amount(total_remaining),
        "sales": [sale.to_dict(include_items=False) for sale in sales],
        "payments": [payment.to_dict() for payment in payments],
    }
