from __future__ import annotations

from enum import Enum

from ..extensions import db
from ..money import cents_to_amount
from ..time_utils import to_utc_z


class PurchaseStatus(str, Enum):
    """Purchase order lifecycle. Display labels live at the API edge only."""
    ORDERED = "ORDERED"
    IN_TRANSIT = "IN_TRANSIT"
    RECEIVED = "RECEIVED"
    RECEIVED_PARTIAL = "RECEIVED_PARTIAL"
    CANCELLED = "CANCELLED"

    @property
    def is_received(self) -> bool:
        return self in (PurchaseStatus.RECEIVED, PurchaseStatus.RECEIVED_PARTIAL)


class DiscountType(str, Enum):
    NONE = "none"
    PERCENT = "percent"
    AMOUNT = "amount"


class Purchase(db.Model):
    """
    Purchase order from a supplier.

    Stock is touched only on status transitions (see purchase_service).
    PurchaseItem.stocked_qty records how many units of each line are
    currently counted in Product.stock_balance, which is what makes each
    receipt apply exactly once and each reversal undo exactly what was added.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_name = db.Column(db.String(255), nullable=False)
    invoice_number = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(32), nullable=False, default=PurchaseStatus.ORDERED.value, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    overall_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    transportation_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(255), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "PurchaseItem",
        backref="purchase",
        lazy=True,
        order_by="PurchaseItem.position",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def status_enum(self) -> PurchaseStatus:
        return PurchaseStatus(self.status)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_name": self.supplier_name,
            "invoice_number": self.invoice_number,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "subtotal": cents_to_amount(self.subtotal_cents),
            "overall_discount_cents": self.overall_discount_cents,
            "transportation_cost_cents": self.transportation_cost_cents,
            "total_cents": self.total_cents,
            "total": cents_to_amount(self.total_cents),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "updated_at": to_utc_z(self.updated_at),
            "received_at": to_utc_z(self.received_at),
            "version_id": self.version_id,
            "items": [item.to_dict() for item in self.items],
        }


class PurchaseItem(db.Model):
    __tablename__ = "purchase_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    ordered_qty = db.Column(db.Integer, nullable=False)
    received_qty = db.Column(db.Integer, nullable=False, default=0)
    stocked_qty = db.Column(db.Integer, nullable=False, default=0)

    cost_cents = db.Column(db.Integer, nullable=False)
    discount_type = db.Column(db.String(16), nullable=False, default=DiscountType.NONE.value)
    # Percent (may carry decimals, stored as text) or an amount in cents
    discount_value = db.Column(db.String(32), nullable=False, default="0")
    subtotal_cents = db.Column(db.Integer, nullable=False)

    @property
    def outstanding_qty(self) -> int:
        return max(0, self.ordered_qty - self.stocked_qty)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "ordered_qty": self.ordered_qty,
            "received_qty": self.received_qty,
            "stocked_qty": self.stocked_qty,
            "cost_cents": self.cost_cents,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "subtotal_cents": self.subtotal_cents,
            "subtotal": cents_to_amount(self.subtotal_cents),
        }


class SupplierReturn(db.Model):
    """Goods sent back to a supplier. Stock leaves as soon as this is created."""
    __tablename__ = "supplier_returns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    supplier_name = db.Column(db.String(255), nullable=False)
    reference_number = db.Column(db.String(64), nullable=True)
    reason = db.Column(db.String(255), nullable=True)
    total_qty = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(255), nullable=True)

    items = db.relationship(
        "SupplierReturnItem",
        backref="supplier_return",
        lazy=True,
        order_by="SupplierReturnItem.position",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_name": self.supplier_name,
            "reference_number": self.reference_number,
            "reason": self.reason,
            "total_qty": self.total_qty,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "items": [item.to_dict() for item in self.items],
        }


class SupplierReturnItem(db.Model):
    __tablename__ = "supplier_return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("supplier_returns.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    qty = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "qty": self.qty,
        }
