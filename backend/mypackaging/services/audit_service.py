# Overview: Append-only audit trail for every business event; written inside the caller's transaction.

"""
Audit trail

WHY: Every stock or money movement must be attributable after the fact
(who, what, when). Entries are added to the caller's session so an audit row
commits or rolls back together with the change it describes; the log line
for the operator console is emitted only after commit.

Categories:
- action:  user-initiated business events (sale created, payment recorded)
- update:  corrections to recorded state (stock level set by a count)
- alert:   things that need attention (stock fell to its reorder point)
- error, warning, info: operational events
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from ..extensions import db
from ..models import AuditLog
from ..money import format_amount
from ..time_utils import utcnow
from . import change_feed

logger = logging.getLogger("mypackaging.audit")

CATEGORY_ACTION = "action"
CATEGORY_UPDATE = "update"
CATEGORY_ALERT = "alert"
CATEGORY_ERROR = "error"
CATEGORY_WARNING = "warning"
CATEGORY_INFO = "info"
CATEGORIES = (CATEGORY_ACTION, CATEGORY_UPDATE, CATEGORY_ALERT, CATEGORY_ERROR, CATEGORY_WARNING, CATEGORY_INFO)


def _jsonable(value):
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def log_activity(
    action: str,
    actor: str | None,
    description: str,
    category: str = CATEGORY_ACTION,
    payload: dict | None = None,
    occurred_at: datetime | None = None,
) -> AuditLog:
    """Add one audit entry to the current transaction. Never commits."""
    if category not in CATEGORIES:
        raise ValueError(f"unknown audit category: {category}")

    entry = AuditLog(
        action=action,
        actor=actor or "system",
        description=description,
        category=category,
        payload=_jsonable(payload) if payload else None,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(entry)
    db.session.flush()

    line = f"[AUDIT] {category.upper()}: {action} by {entry.actor} - {description}"
    change_feed.after_commit(lambda: logger.info(line))
    change_feed.record_change("audit_logs", "created", entry.id, entry.to_dict())
    return entry


def list_audit_logs(
    limit: int = 100,
    category: str | None = None,
    action: str | None = None,
    actor: str | None = None,
) -> list[AuditLog]:
    query = db.session.query(AuditLog)
    if category:
        query = query.filter(AuditLog.category == category)
    if action:
        query = query.filter(AuditLog.action == action)
    if actor:
        query = query.filter(AuditLog.actor == actor)
    limit = max(1, min(int(limit), 1000))
    return query.order_by(AuditLog.occurred_at.desc(), AuditLog.id.desc()).limit(limit).all()


# Grouped helpers, one per business event

def log_sale_created(sale, actor: str | None) -> AuditLog:
    return log_activity(
        "sale_created",
        actor,
        f"Sale #{sale.id} to {sale.customer_name}: {format_amount(sale.total_cents)} ({sale.status})",
        payload={
            "sale_id": sale.id,
            "customer_name": sale.customer_name,
            "total_cents": sale.total_cents,
            "paid_amount_cents": sale.paid_amount_cents,
            "remaining_cents": sale.remaining_cents,
            "payment_type": sale.payment_type,
            "items": [
                {"product_id": item.product_id, "required_units": item.required_units}
                for item in sale.items
            ],
        },
    )


def log_sale_deleted(sale, actor: str | None) -> AuditLog:
    return log_activity(
        "sale_deleted",
        actor,
        f"Deleted sale #{sale.id} to {sale.customer_name} ({format_amount(sale.total_cents)})",
        payload={"sale_id": sale.id, "total_cents": sale.total_cents, "status": sale.status},
    )


def log_payment_recorded(sale, payment, actor: str | None) -> AuditLog:
    return log_activity(
        "payment_recorded",
        actor,
        f"{format_amount(payment.amount_cents)} {payment.payment_method} from {sale.customer_name} "
        f"for sale #{sale.id}, remaining {format_amount(sale.remaining_cents)}",
        payload={
            "sale_id": sale.id,
            "payment_id": payment.id,
            "amount_cents": payment.amount_cents,
            "payment_method": payment.payment_method,
            "remaining_cents": sale.remaining_cents,
            "status": sale.status,
        },
    )


def log_stock_level_change(product, old_balance: int, new_balance: int, reason: str, actor: str | None) -> AuditLog:
    return log_activity(
        "stock_level_changed",
        actor,
        f"{product.name}: {old_balance} -> {new_balance} ({reason})",
        category=CATEGORY_UPDATE,
        payload={
            "product_id": product.id,
            "old_balance": old_balance,
            "new_balance": new_balance,
            "reason": reason,
        },
    )


def log_low_stock_alert(product, actor: str | None) -> AuditLog:
    return log_activity(
        "low_stock",
        actor,
        f"{product.name} is at {product.stock_balance} units (reorder point {product.reorder_point})",
        category=CATEGORY_ALERT,
        payload={
            "product_id": product.id,
            "stock_balance": product.stock_balance,
            "reorder_point": product.reorder_point,
        },
    )


def log_purchase_event(action: str, purchase, actor: str | None, description: str) -> AuditLog:
    return log_activity(
        action,
        actor,
        description,
        payload={
            "purchase_id": purchase.id,
            "supplier_name": purchase.supplier_name,
            "status": purchase.status,
            "total_cents": purchase.total_cents,
        },
    )
