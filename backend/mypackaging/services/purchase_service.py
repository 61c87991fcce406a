# Overview: Purchase engine; supplier orders whose status transitions move stock exactly once.

"""
Purchase orders

Lifecycle:
    ORDERED -> IN_TRANSIT -> RECEIVED | RECEIVED_PARTIAL
    ORDERED | IN_TRANSIT | RECEIVED_PARTIAL -> CANCELLED
    RECEIVED_PARTIAL -> RECEIVED

Stock invariants:
- Each PurchaseItem tracks stocked_qty, the units of that line currently
  counted in the product's stock balance.
- Entering RECEIVED brings every line up to its ordered quantity; entering
  RECEIVED_PARTIAL brings every line to its received quantity; CANCELLED
  takes every line back to zero. Only the difference from stocked_qty is
  applied, so a receipt is never counted twice and a reversal removes
  exactly what was added.
- Updating a purchase to the status it already has is a no-op.
- A RECEIVED purchase is final; it can only be reversed by deleting it.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import DiscountType, Purchase, PurchaseItem, PurchaseStatus
from ..money import percent_of_cents, sum_cents
from ..time_utils import normalize_datetime, utcnow
from . import audit_service, auth_service, change_feed, stock_service
from .concurrency import lock_for_update, run_in_transaction

logger = logging.getLogger(__name__)


class PurchaseError(ValidationError):
    """Raised for purchase validation and lifecycle errors."""
    pass


ALLOWED_TRANSITIONS: dict[PurchaseStatus, set[PurchaseStatus]] = {
    PurchaseStatus.ORDERED: {
        PurchaseStatus.IN_TRANSIT,
        PurchaseStatus.RECEIVED,
        PurchaseStatus.RECEIVED_PARTIAL,
        PurchaseStatus.CANCELLED,
    },
    PurchaseStatus.IN_TRANSIT: {
        PurchaseStatus.RECEIVED,
        PurchaseStatus.RECEIVED_PARTIAL,
        PurchaseStatus.CANCELLED,
    },
    PurchaseStatus.RECEIVED_PARTIAL: {
        PurchaseStatus.RECEIVED,
        PurchaseStatus.CANCELLED,
    },
    PurchaseStatus.RECEIVED: set(),
    PurchaseStatus.CANCELLED: set(),
}

# Labels shown to operators; the API accepts either form.
STATUS_LABELS = {
    PurchaseStatus.ORDERED: "Ordered",
    PurchaseStatus.IN_TRANSIT: "In Transit",
    PurchaseStatus.RECEIVED: "Received",
    PurchaseStatus.RECEIVED_PARTIAL: "Received Partial",
    PurchaseStatus.CANCELLED: "Cancelled",
}


def parse_status(value) -> PurchaseStatus:
    if isinstance(value, PurchaseStatus):
        return value
    text = str(value or "").strip()
    for status, label in STATUS_LABELS.items():
        if text.lower() == label.lower():
            return status
    try:
        return PurchaseStatus(text.upper().replace(" ", "_"))
    except ValueError:
        raise PurchaseError(f"Unknown purchase status: {value}")


def _parse_cents(value, field: str) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise PurchaseError(f"{field} must be an amount in cents")
    try:
        cents = int(value)
    except (TypeError, ValueError):
        raise PurchaseError(f"{field} must be an amount in cents")
    if cents < 0:
        raise PurchaseError(f"{field} cannot be negative")
    return cents


def line_subtotal_cents(qty: int, cost_cents: int, discount_type: str, discount_value) -> int:
    """
    qty x cost, less the line discount.

    percent: 0-100, may carry decimals; amount: cents off the line, floored at 0.
    """
    base = qty * cost_cents
    if discount_type == DiscountType.PERCENT.value:
        return base - percent_of_cents(base, discount_value)
    if discount_type == DiscountType.AMOUNT.value:
        return max(0, base - int(discount_value))
    return base


def _build_item(item: dict, position: int) -> PurchaseItem:
    label = f"Item {position + 1}"
    if not isinstance(item, dict) or item.get("product_id") is None:
        raise PurchaseError(f"{label} has no product")
    product = stock_service.get_product(int(item["product_id"]))

    qty = stock_service.parse_quantity(item.get("ordered_qty", item.get("qty")), f"{label} quantity", allow_zero=False)
    cost = _parse_cents(item.get("cost_cents"), f"{label} cost")
    if cost < 1:
        raise PurchaseError(f"{label} ({product.name}) needs a cost greater than 0")

    try:
        discount_type = DiscountType(item.get("discount_type") or DiscountType.NONE.value).value
    except ValueError:
        raise PurchaseError(f"{label} has an unknown discount type")

    raw_discount = item.get("discount_value")
    if discount_type == DiscountType.PERCENT.value:
        try:
            percent = Decimal(str(raw_discount if raw_discount not in (None, "") else 0))
        except InvalidOperation:
            raise PurchaseError(f"{label} discount must be a percentage")
        if not percent.is_finite() or percent < 0 or percent > 100:
            raise PurchaseError(f"{label} discount must be between 0 and 100 percent")
        discount_value = str(percent)
    elif discount_type == DiscountType.AMOUNT.value:
        discount_value = str(_parse_cents(raw_discount, f"{label} discount"))
    else:
        discount_value = "0"

    return PurchaseItem(
        position=position,
        product_id=product.id,
        product_name=product.name,
        ordered_qty=qty,
        received_qty=0,
        stocked_qty=0,
        cost_cents=cost,
        discount_type=discount_type,
        discount_value=discount_value,
        subtotal_cents=line_subtotal_cents(qty, cost, discount_type, discount_value),
    )


def _stock_to(purchase: Purchase, targets: dict[int, int], actor: str | None) -> None:
    """Move each line's stocked_qty to its target, applying only the difference."""
    for item in purchase.items:
        target = targets.get(item.id, item.stocked_qty)
        delta = target - item.stocked_qty
        if delta == 0:
            continue
        stock_service.apply_delta(
            item.product_id,
            delta,
            movement_type=(
                stock_service.MOVEMENT_PURCHASE_RECEIPT if delta > 0 else stock_service.MOVEMENT_PURCHASE_REVERSAL
            ),
            reference_type="purchase",
            reference_id=purchase.id,
            actor=actor,
        )
        item.stocked_qty = target


def _line_key(key) -> int:
    if isinstance(key, bool):
        raise PurchaseError(f"Invalid purchase line reference: {key!r}")
    try:
        return int(key)
    except (TypeError, ValueError):
        raise PurchaseError(f"Invalid purchase line reference: {key!r}")


def _received_targets(purchase: Purchase, received_quantities: dict | None) -> dict[int, int]:
    """
    Per-line received quantities for a partial receipt.

    Keys are PurchaseItem ids; lines left out keep what they already have.
    """
    received = {_line_key(k): v for k, v in (received_quantities or {}).items()}
    known = {item.id for item in purchase.items}
    for key in received:
        if key not in known:
            raise PurchaseError(f"Purchase item {key} is not on this purchase")

    targets = {}
    for item in purchase.items:
        raw = received.get(item.id)
        if raw is None:
            qty = item.received_qty
        else:
            qty = stock_service.parse_quantity(raw, f"{item.product_name} received quantity")
        if qty > item.ordered_qty:
            raise PurchaseError(
                f"{item.product_name}: received quantity cannot exceed ordered quantity",
                details={"item_id": item.id, "ordered_qty": item.ordered_qty, "received_qty": qty},
            )
        targets[item.id] = qty
    return targets


def _transition(purchase: Purchase, new_status: PurchaseStatus, actor: str | None, received_quantities=None) -> None:
    current = purchase.status_enum
    if new_status not in ALLOWED_TRANSITIONS[current]:
        raise PurchaseError(
            f"Cannot change a purchase from {STATUS_LABELS[current]} to {STATUS_LABELS[new_status]}",
            details={"from": current.value, "to": new_status.value},
        )

    if new_status == PurchaseStatus.RECEIVED:
        targets = {item.id: item.ordered_qty for item in purchase.items}
        for item in purchase.items:
            item.received_qty = item.ordered_qty
    elif new_status == PurchaseStatus.RECEIVED_PARTIAL:
        targets = _received_targets(purchase, received_quantities)
        for item in purchase.items:
            item.received_qty = targets[item.id]
    elif new_status == PurchaseStatus.CANCELLED:
        targets = {item.id: 0 for item in purchase.items}
    else:
        targets = {}

    _stock_to(purchase, targets, actor)

    now = utcnow()
    purchase.status = new_status.value
    purchase.updated_at = now
    if new_status.is_received:
        purchase.received_at = now


def create_purchase(
    *,
    supplier_name: str,
    items: list[dict],
    actor: str | None,
    invoice_number: str | None = None,
    overall_discount_cents: int = 0,
    transportation_cost_cents: int = 0,
    status=PurchaseStatus.ORDERED,
    created_at=None,
    notes: str | None = None,
    received_quantities: dict | None = None,
) -> Purchase:
    """
    Record a purchase order.

    A purchase created directly as RECEIVED (or RECEIVED_PARTIAL) stocks its
    lines in the same transaction.
    """
    supplier = (supplier_name or "").strip()
    if not supplier:
        raise PurchaseError("Supplier name is required")
    if not items:
        raise PurchaseError("Add at least one item to the purchase")

    initial_status = parse_status(status)
    if initial_status == PurchaseStatus.CANCELLED:
        raise PurchaseError("A purchase cannot be created as cancelled")

    overall_discount = _parse_cents(overall_discount_cents, "Overall discount")
    transportation = _parse_cents(transportation_cost_cents, "Transportation cost")
    try:
        order_date = normalize_datetime(created_at) or utcnow()
    except ValueError:
        raise PurchaseError("Invalid purchase date")

    def _op():
        lines = [_build_item(item, position) for position, item in enumerate(items)]
        subtotal = sum_cents(line.subtotal_cents for line in lines)

        purchase = Purchase(
            supplier_name=supplier,
            invoice_number=(invoice_number or "").strip() or None,
            status=PurchaseStatus.ORDERED.value,
            subtotal_cents=subtotal,
            overall_discount_cents=overall_discount,
            transportation_cost_cents=transportation,
            total_cents=max(0, subtotal - overall_discount) + transportation,
            notes=notes,
            created_at=order_date,
            created_by=actor,
        )
        purchase.items = lines
        db.session.add(purchase)
        db.session.flush()

        if initial_status != PurchaseStatus.ORDERED:
            # Line ids are needed for partial receipts, so the transition runs after flush.
            if received_quantities and initial_status == PurchaseStatus.RECEIVED_PARTIAL:
                positions = {_line_key(pos): qty for pos, qty in received_quantities.items()}
                by_position = {lines[pos].id: qty for pos, qty in positions.items() if 0 <= pos < len(lines)}
            else:
                by_position = None
            _transition(purchase, initial_status, actor, by_position)

        audit_service.log_purchase_event(
            "purchase_created",
            purchase,
            actor,
            f"Purchase #{purchase.id} from {purchase.supplier_name} ({STATUS_LABELS[purchase.status_enum]})",
        )
        change_feed.record_change("purchases", "created", purchase.id, purchase.to_dict())
        return purchase

    purchase = run_in_transaction(_op)
    logger.info("Purchase %s recorded with status %s", purchase.id, purchase.status)
    return purchase


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})
    return purchase


def list_purchases(status=None, supplier: str | None = None, limit: int = 200) -> list[Purchase]:
    query = db.session.query(Purchase)
    if status:
        query = query.filter(Purchase.status == parse_status(status).value)
    if supplier:
        query = query.filter(Purchase.supplier_name.ilike(f"%{supplier.strip()}%"))
    limit = max(1, min(int(limit), 1000))
    return query.order_by(Purchase.created_at.desc(), Purchase.id.desc()).limit(limit).all()


def update_purchase_status(
    purchase_id: int,
    new_status,
    *,
    actor: str | None,
    received_quantities: dict | None = None,
) -> Purchase:
    """
    Move a purchase to `new_status`, applying or reversing stock as needed.

    received_quantities ({item_id: qty}) is used when entering RECEIVED_PARTIAL.
    """
    target = parse_status(new_status)

    def _op():
        purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
        if purchase is None:
            raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})

        previous = purchase.status_enum
        if previous == target:
            return purchase

        _transition(purchase, target, actor, received_quantities)

        audit_service.log_purchase_event(
            "purchase_status_changed",
            purchase,
            actor,
            f"Purchase #{purchase.id}: {STATUS_LABELS[previous]} -> {STATUS_LABELS[target]}",
        )
        change_feed.record_change("purchases", "updated", purchase.id, purchase.to_dict())
        return purchase

    purchase = run_in_transaction(_op)
    logger.info("Purchase %s is now %s", purchase.id, purchase.status)
    return purchase


def delete_purchase(purchase_id: int, *, actor: str, password: str) -> None:
    """
    Delete a purchase. Any stock it added is taken back out first.

    Requires the operator's password.
    """
    auth_service.reauthenticate(actor, password)

    def _op():
        purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
        if purchase is None:
            raise NotFoundError(f"Purchase {purchase_id} not found", details={"purchase_id": purchase_id})

        previous = purchase.status_enum
        _stock_to(purchase, {item.id: 0 for item in purchase.items}, actor)

        # Received stock is cancelled out first so the trail shows the reversal.
        if previous.is_received:
            purchase.status = PurchaseStatus.CANCELLED.value
            audit_service.log_purchase_event(
                "purchase_cancelled",
                purchase,
                actor,
                f"Purchase #{purchase.id}: {STATUS_LABELS[previous]} -> Cancelled (deleting)",
            )

        audit_service.log_purchase_event(
            "purchase_deleted",
            purchase,
            actor,
            f"Deleted purchase #{purchase.id} from {purchase.supplier_name} ({STATUS_LABELS[previous]})",
        )
        change_feed.record_change("purchases", "deleted", purchase.id, {"id": purchase.id})
        db.session.delete(purchase)

    run_in_transaction(_op)
    logger.info("Purchase %s deleted by %s", purchase_id, actor)
