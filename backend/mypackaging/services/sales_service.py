# Overview: Sale engine; prices a basket, settles payment or credit, and takes stock in one transaction.

"""
Sale engine

WHY: A sale is the only place where money and stock move together. The
document, its lines and every product decrement commit as one unit or not
at all, so the ledger can never show a sale without its stock movement
(or the reverse).

Validation runs against the state read inside the transaction, before
anything is written, in this order:
1. every line names an existing product and at least one unit
2. stock covers the units requested (summed per product across lines)
3. a sale left with a balance is a credit sale for a named customer
"""

from __future__ import annotations

import logging

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    AdjustmentType,
    Payment,
    PaymentMethod,
    Sale,
    SaleItem,
    SaleStatus,
    WALK_IN_CUSTOMER,
)
from ..money import is_settled, sum_cents
from ..time_utils import normalize_datetime, utcnow
from . import audit_service, auth_service, change_feed, stock_service
from .concurrency import lock_for_update, run_in_transaction

logger = logging.getLogger(__name__)

PAYMENT_ORDER = (PaymentMethod.CASH.value, PaymentMethod.ONLINE.value, PaymentMethod.HUTANG.value)


class SaleError(ValidationError):
    """Raised for sale validation errors."""
    pass


def _parse_cents(value, field: str) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise SaleError(f"{field} must be an amount in cents")
    try:
        cents = int(value)
    except (TypeError, ValueError):
        raise SaleError(f"{field} must be an amount in cents")
    if cents != value and not isinstance(value, str):
        raise SaleError(f"{field} must be an amount in cents")
    return cents


def _optional_price(item: dict, key: str) -> int | None:
    value = item.get(key)
    if value is None or value == "":
        return None
    cents = _parse_cents(value, key)
    if cents < 0:
        raise SaleError(f"{key} cannot be negative")
    return cents


def price_line(product, item: dict, position: int) -> SaleItem:
    """
    Build one priced SaleItem.

    Box and pack prices fall back to unit price x bulk quantity. A line may
    carry its own unit/box/pack price (a negotiated price) in cents.
    """
    label = f"Item {position + 1}"
    qty_box = stock_service.parse_quantity(item.get("qty_box"), f"{label} box quantity")
    qty_pack = stock_service.parse_quantity(item.get("qty_pack"), f"{label} pack quantity")
    qty_loose = stock_service.parse_quantity(item.get("qty_loose"), f"{label} loose quantity")

    required_units = qty_box * product.box_size + qty_pack * product.pack_size + qty_loose
    if required_units < 1:
        raise SaleError(f"{label} ({product.name}) must have at least one unit")

    unit_price = _optional_price(item, "unit_price_cents")
    if unit_price is None:
        unit_price = product.unit_price_cents
    box_price = _optional_price(item, "box_price_cents")
    if box_price is None:
        box_price = product.effective_box_price_cents
    pack_price = _optional_price(item, "pack_price_cents")
    if pack_price is None:
        pack_price = product.effective_pack_price_cents

    return SaleItem(
        position=position,
        product_id=product.id,
        product_name=product.name,
        qty_box=qty_box,
        qty_pack=qty_pack,
        qty_loose=qty_loose,
        required_units=required_units,
        unit_price_cents=unit_price,
        box_price_cents=box_price,
        pack_price_cents=pack_price,
        subtotal_cents=qty_box * box_price + qty_pack * pack_price + qty_loose * unit_price,
    )


def compute_adjustment(subtotal_cents: int, adjustment_type: str | None, value_cents: int) -> int:
    """
    Signed effect on the total.

    - discount: value is a non-negative amount taken off (at most the subtotal)
    - roundoff: value is added as given, either sign, as long as the total stays >= 0
    """
    try:
        kind = AdjustmentType(adjustment_type or AdjustmentType.NONE.value)
    except ValueError:
        raise SaleError(f"Unknown adjustment type: {adjustment_type}")

    if kind == AdjustmentType.NONE:
        return 0
    if kind == AdjustmentType.DISCOUNT:
        if value_cents < 0:
            raise SaleError("Discount cannot be negative")
        if value_cents > subtotal_cents:
            raise SaleError("Discount cannot exceed the subtotal")
        return -value_cents

    if subtotal_cents + value_cents < 0:
        raise SaleError("Round-off cannot make the total negative")
    return value_cents


def resolve_payment(
    total_cents: int,
    payment_method: str | None,
    paid_amount_cents: int,
    payment_breakdown: dict | None,
) -> dict:
    """
    Split what the customer handed over into cash/online/hutang totals.

    Single method:
    - cash / online: paid_amount is tendered in that method
    - hutang: paid_amount is a cash deposit, the rest is credit

    Breakdown ({"cash": c, "online": o, "hutang": h} in cents): when a
    hutang part is given the three must add up to the total exactly.

    Cash over-tender becomes change; paid never exceeds the total.
    """
    if payment_breakdown:
        parts = {}
        for method in PAYMENT_ORDER:
            cents = _parse_cents(payment_breakdown.get(method), f"{method} amount")
            if cents < 0:
                raise SaleError(f"{method} amount cannot be negative")
            parts[method] = cents
        unknown = set(payment_breakdown) - set(PAYMENT_ORDER)
        if unknown:
            raise SaleError(f"Unknown payment method: {sorted(unknown)[0]}")

        cash, online, hutang = parts["cash"], parts["online"], parts["hutang"]
        credit_selected = hutang > 0
        if credit_selected and cash + online + hutang != total_cents:
            raise SaleError(
                "Cash, online and hutang amounts must add up to the total",
                details={"total_cents": total_cents, "breakdown": parts},
            )
        used = [m for m in PAYMENT_ORDER if parts[m] > 0]
        payment_type = "+".join(used) if used else PaymentMethod.CASH.value
    else:
        try:
            method = PaymentMethod(payment_method or PaymentMethod.CASH.value)
        except ValueError:
            raise SaleError(f"Unknown payment method: {payment_method}")
        if paid_amount_cents < 0:
            raise SaleError("Paid amount cannot be negative")

        cash = paid_amount_cents if method in (PaymentMethod.CASH, PaymentMethod.HUTANG) else 0
        online = paid_amount_cents if method == PaymentMethod.ONLINE else 0
        credit_selected = method == PaymentMethod.HUTANG
        payment_type = method.value

    if online > total_cents:
        raise SaleError("Online payment cannot exceed the sale total")

    tendered = cash + online
    change = max(0, tendered - total_cents)
    paid = tendered - change
    remaining = max(0, total_cents - paid)

    return {
        "payment_type": payment_type,
        "cash_total_cents": cash - change,
        "online_total_cents": online,
        "hutang_total_cents": remaining,
        "paid_amount_cents": paid,
        "remaining_cents": remaining,
        "change_cents": change,
        "credit_selected": credit_selected,
    }


def create_sale(
    *,
    items: list[dict],
    actor: str | None,
    customer_name: str | None = None,
    adjustment_type: str = AdjustmentType.NONE.value,
    adjustment_value_cents: int = 0,
    payment_method: str | None = None,
    paid_amount_cents: int = 0,
    payment_breakdown: dict | None = None,
    created_at=None,
    notes: str | None = None,
) -> Sale:
    """
    Record a sale atomically.

    items: [{"product_id", "qty_box", "qty_pack", "qty_loose",
             optional "unit_price_cents"/"box_price_cents"/"pack_price_cents"}]

    Raises SaleError, InsufficientStockError, NotFoundError; nothing is
    written when any of them is raised.
    """
    if not items:
        raise SaleError("Add at least one item to the sale")

    adjustment_value_cents = _parse_cents(adjustment_value_cents, "adjustment value")
    paid_amount_cents = _parse_cents(paid_amount_cents, "paid amount")
    try:
        sale_date = normalize_datetime(created_at) or utcnow()
    except ValueError:
        raise SaleError("Invalid sale date")
    customer = (customer_name or "").strip()

    def _op():
        lines = []
        requirements: dict[int, int] = {}
        for position, item in enumerate(items):
            if not isinstance(item, dict) or item.get("product_id") is None:
                raise SaleError(f"Item {position + 1} has no product")
            product = stock_service.get_product(int(item["product_id"]))
            line = price_line(product, item, position)
            lines.append(line)
            requirements[line.product_id] = requirements.get(line.product_id, 0) + line.required_units

        stock_service.check_availability(requirements)

        subtotal = sum_cents(line.subtotal_cents for line in lines)
        adjustment = compute_adjustment(subtotal, adjustment_type, adjustment_value_cents)
        total = subtotal + adjustment
        payment = resolve_payment(total, payment_method, paid_amount_cents, payment_breakdown)

        if payment["remaining_cents"] > 0:
            if not payment["credit_selected"]:
                raise SaleError(
                    "Paid amount is less than the total; choose hutang to sell on credit",
                    details={"total_cents": total, "paid_amount_cents": payment["paid_amount_cents"]},
                )
            if not customer or customer.lower() == WALK_IN_CUSTOMER.lower():
                raise SaleError("Customer name is required for hutang sales")

        sale = Sale(
            customer_name=customer or WALK_IN_CUSTOMER,
            subtotal_cents=subtotal,
            adjustment_type=adjustment_type or AdjustmentType.NONE.value,
            adjustment_cents=adjustment,
            total_cents=total,
            payment_type=payment["payment_type"],
            cash_total_cents=payment["cash_total_cents"],
            online_total_cents=payment["online_total_cents"],
            hutang_total_cents=payment["hutang_total_cents"],
            paid_amount_cents=payment["paid_amount_cents"],
            remaining_cents=payment["remaining_cents"],
            change_cents=payment["change_cents"],
            status=SaleStatus.PAID.value if is_settled(payment["remaining_cents"]) else SaleStatus.HUTANG.value,
            notes=notes,
            created_at=sale_date,
            created_by=actor,
        )
        sale.items = lines
        db.session.add(sale)
        db.session.flush()

        for line in lines:
            stock_service.apply_delta(
                line.product_id,
                -line.required_units,
                movement_type=stock_service.MOVEMENT_SALE,
                reference_type="sale",
                reference_id=sale.id,
                actor=actor,
                enforce_available=True,
            )

        audit_service.log_sale_created(sale, actor)
        change_feed.record_change("sales", "created", sale.id, sale.to_dict())
        return sale

    sale = run_in_transaction(_op)
    logger.info("Sale %s recorded: total=%s status=%s", sale.id, sale.total_cents, sale.status)
    return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def list_sales(
    status: str | None = None,
    customer: str | None = None,
    date_from=None,
    date_to=None,
    limit: int = 200,
) -> list[Sale]:
    """Newest first. date_to is inclusive."""
    query = db.session.query(Sale)
    if status:
        query = query.filter(Sale.status == status)
    if customer:
        query = query.filter(Sale.customer_name.ilike(f"%{customer.strip()}%"))
    start = normalize_datetime(date_from)
    end = normalize_datetime(date_to)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    limit = max(1, min(int(limit), 1000))
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()


def delete_sale(sale_id: int, *, actor: str, password: str) -> None:
    """
    Remove a sale and put its stock back.

    Requires the operator's password. Repayments recorded against the sale
    are removed with it (both the sale-scoped and the global records).
    """
    auth_service.reauthenticate(actor, password)

    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})

        for item in sale.items:
            stock_service.apply_delta(
                item.product_id,
                item.required_units,
                movement_type=stock_service.MOVEMENT_SALE_REVERSAL,
                reference_type="sale",
                reference_id=sale.id,
                actor=actor,
                note="Sale deleted",
            )

        removed_payments = db.session.query(Payment).filter(Payment.sale_id == sale.id).all()
        for payment in removed_payments:
            db.session.delete(payment)
            change_feed.record_change("payments", "deleted", payment.id, {"sale_id": sale.id})
        db.session.flush()

        audit_service.log_sale_deleted(sale, actor)
        change_feed.record_change("sales", "deleted", sale.id, sale.to_dict(include_items=False))
        db.session.delete(sale)

    run_in_transaction(_op)
    logger.info("Sale %s deleted by %s", sale_id, actor)
