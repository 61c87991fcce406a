# Overview: Stock ledger; the only writer of Product.stock_balance.

"""
Stock ledger invariants (authoritative)

- Product.stock_balance is a stored, mutable quantity. It is changed only by
  apply_delta(), inside the caller's transaction, and every change appends a
  StockMovement row with the balance after the change.
- Sales check availability first (enforce_available=True): a sale can never
  push a product below zero. Reversals, supplier returns, shop use, transfers
  and purchase cancellations are applied as-is and may go negative; the
  negative balance is visible in reports rather than hidden by clamping.
- Product rows carry a version_id, so two transactions moving the same
  product cannot both commit on a stale read (see concurrency.py).
- A product crossing down to its reorder point raises a low_stock alert in
  the audit trail.
"""

from __future__ import annotations

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, StockMovement
from ..time_utils import utcnow
from . import audit_service, change_feed
from .concurrency import lock_for_update

MOVEMENT_OPENING = "OPENING"
MOVEMENT_SALE = "SALE"
MOVEMENT_SALE_REVERSAL = "SALE_REVERSAL"
MOVEMENT_PURCHASE_RECEIPT = "PURCHASE_RECEIPT"
MOVEMENT_PURCHASE_REVERSAL = "PURCHASE_REVERSAL"
MOVEMENT_SUPPLIER_RETURN = "SUPPLIER_RETURN"
MOVEMENT_SUPPLIER_RETURN_REVERSAL = "SUPPLIER_RETURN_REVERSAL"
MOVEMENT_SHOP_USE = "SHOP_USE"
MOVEMENT_SHOP_USE_REVERSAL = "SHOP_USE_REVERSAL"
MOVEMENT_TRANSFER_OUT = "TRANSFER_OUT"
MOVEMENT_TRANSFER_IN = "TRANSFER_IN"
MOVEMENT_TRANSFER_REVERSAL = "TRANSFER_REVERSAL"
MOVEMENT_STOCK_AUDIT = "STOCK_AUDIT"

MOVEMENT_TYPES = (
    MOVEMENT_OPENING,
    MOVEMENT_SALE,
    MOVEMENT_SALE_REVERSAL,
    MOVEMENT_PURCHASE_RECEIPT,
    MOVEMENT_PURCHASE_REVERSAL,
    MOVEMENT_SUPPLIER_RETURN,
    MOVEMENT_SUPPLIER_RETURN_REVERSAL,
    MOVEMENT_SHOP_USE,
    MOVEMENT_SHOP_USE_REVERSAL,
    MOVEMENT_TRANSFER_OUT,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_REVERSAL,
    MOVEMENT_STOCK_AUDIT,
)


class StockError(ValidationError):
    """Raised for bad quantities or stock operation input."""
    pass


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def parse_quantity(value, field: str, *, allow_zero: bool = True) -> int:
    """Whole, non-negative unit count from user input."""
    if value is None or value == "":
        value = 0
    if isinstance(value, bool):
        raise StockError(f"{field} must be a whole number")
    if isinstance(value, float):
        if not value.is_integer():
            raise StockError(f"{field} must be a whole number")
        value = int(value)
    try:
        qty = int(value)
    except (TypeError, ValueError):
        raise StockError(f"{field} must be a whole number")
    if qty < 0:
        raise StockError(f"{field} cannot be negative")
    if qty == 0 and not allow_zero:
        raise StockError(f"{field} must be greater than 0")
    return qty


def check_availability(requirements: dict[int, int]) -> dict[int, Product]:
    """
    Lock each product and confirm it can cover the requested units.

    `requirements` maps product_id -> total units across all lines.
    Raises InsufficientStockError for the first product that falls short.
    """
    products: dict[int, Product] = {}
    for product_id, required in requirements.items():
        product = get_product(product_id, lock=True)
        if required > product.stock_balance:
            raise InsufficientStockError(product.name, product.stock_balance, required, product.id)
        products[product_id] = product
    return products


def apply_delta(
    product_id: int,
    delta: int,
    *,
    movement_type: str,
    reference_type: str | None = None,
    reference_id: int | None = None,
    actor: str | None = None,
    note: str | None = None,
    enforce_available: bool = False,
) -> int:
    """
    Add `delta` units to a product's balance and record the movement.

    Runs inside the caller's transaction and never commits.
    Returns the new balance.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"unknown movement type: {movement_type}")
    delta = int(delta)

    product = get_product(product_id, lock=True)
    old_balance = product.stock_balance or 0
    new_balance = old_balance + delta

    if enforce_available and new_balance < 0:
        raise InsufficientStockError(product.name, old_balance, -delta, product.id)

    product.stock_balance = new_balance
    product.updated_at = utcnow()

    if movement_type == MOVEMENT_SALE:
        product.quantity_sold = (product.quantity_sold or 0) - delta
    elif movement_type == MOVEMENT_SALE_REVERSAL:
        product.quantity_sold = max(0, (product.quantity_sold or 0) - delta)
    elif movement_type == MOVEMENT_PURCHASE_RECEIPT:
        product.total_purchased = (product.total_purchased or 0) + delta
    elif movement_type == MOVEMENT_PURCHASE_REVERSAL:
        product.total_purchased = max(0, (product.total_purchased or 0) + delta)

    movement = StockMovement(
        product_id=product.id,
        movement_type=movement_type,
        quantity_delta=delta,
        balance_after=new_balance,
        reference_type=reference_type,
        reference_id=reference_id,
        note=note,
        actor=actor,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()

    if old_balance > product.reorder_point >= new_balance:
        audit_service.log_low_stock_alert(product, actor)

    change_feed.record_change("products", "updated", product.id, product.to_dict())
    return new_balance


def get_stock_movements(product_id: int, limit: int = 200) -> list[StockMovement]:
    get_product(product_id)
    limit = max(1, min(int(limit), 1000))
    return (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def low_stock_products() -> list[Product]:
    """Products at or below their reorder point, emptiest first."""
    return (
        db.session.query(Product)
        .filter(Product.stock_balance <= Product.reorder_point)
        .order_by(Product.stock_balance.asc(), Product.name.asc())
        .all()
    )


def parse_unit_lines(items: list[dict]) -> list[tuple[Product, int]]:
    """[{"product_id", "qty"}] -> [(product, qty)], each qty a positive whole number."""
    if not items:
        raise StockError("Add at least one item")
    lines = []
    for position, item in enumerate(items):
        label = f"Item {position + 1}"
        if not isinstance(item, dict) or item.get("product_id") is None:
            raise StockError(f"{label} has no product")
        product = get_product(int(item["product_id"]))
        qty = parse_quantity(item.get("qty"), f"{label} quantity", allow_zero=False)
        lines.append((product, qty))
    return lines
