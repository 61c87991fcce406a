from __future__ import annotations

from enum import Enum

from ..extensions import db
from ..money import cents_to_amount
from ..time_utils import to_utc_z


class SaleStatus(str, Enum):
    PAID = "Paid"
    HUTANG = "Hutang"


class PaymentMethod(str, Enum):
    CASH = "cash"
    ONLINE = "online"
    HUTANG = "hutang"


class AdjustmentType(str, Enum):
    NONE = "none"
    DISCOUNT = "discount"
    ROUNDOFF = "roundoff"


WALK_IN_CUSTOMER = "Walk In"


class Sale(db.Model):
    """
    Sale document.

    Money invariants (all cents):
    - total_cents == subtotal_cents + adjustment_cents
    - paid_amount_cents + remaining_cents == total_cents
    - status == Hutang iff remaining_cents >= 1

    Only the sale engine creates or deletes a sale; only the repayment
    engine moves paid/remaining/status afterwards. version_id guards that
    read-modify-write against concurrent operators.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        db.Index("ix_sales_customer_status", "customer_name", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_name = db.Column(db.String(255), nullable=False, default=WALK_IN_CUSTOMER)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    adjustment_type = db.Column(db.String(16), nullable=False, default=AdjustmentType.NONE.value)
    # Signed effect on the total: negative for a discount, either sign for round-off
    adjustment_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_type = db.Column(db.String(32), nullable=False)
    cash_total_cents = db.Column(db.Integer, nullable=False, default=0)
    online_total_cents = db.Column(db.Integer, nullable=False, default=0)
    hutang_total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_cents = db.Column(db.Integer, nullable=False, default=0)
    # Cash handed back on over-tender; never part of paid_amount_cents
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_by = db.Column(db.String(255), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        order_by="SaleItem.position",
        cascade="all, delete-orphan",
    )
    payments = db.relationship(
        "SalePayment",
        backref="sale",
        lazy=True,
        order_by="SalePayment.paid_at",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_credit(self) -> bool:
        return self.status == SaleStatus.HUTANG.value

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "customer_name": self.customer_name,
            "subtotal_cents": self.subtotal_cents,
            "subtotal": cents_to_amount(self.subtotal_cents),
            "adjustment_type": self.adjustment_type,
            "adjustment_cents": self.adjustment_cents,
            "adjustment": cents_to_amount(self.adjustment_cents),
            "total_cents": self.total_cents,
            "total": cents_to_amount(self.total_cents),
            "payment_type": self.payment_type,
            "cash_total_cents": self.cash_total_cents,
            "online_total_cents": self.online_total_cents,
            "hutang_total_cents": self.hutang_total_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "paid_amount": cents_to_amount(self.paid_amount_cents),
            "remaining_cents": self.remaining_cents,
            "remaining": cents_to_amount(self.remaining_cents),
            "change_cents": self.change_cents,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """One product line on a sale, priced and sized at the moment of sale."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    # Soft reference: products are never deleted while sales point at them
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    qty_box = db.Column(db.Integer, nullable=False, default=0)
    qty_pack = db.Column(db.Integer, nullable=False, default=0)
    qty_loose = db.Column(db.Integer, nullable=False, default=0)
    required_units = db.Column(db.Integer, nullable=False)

    unit_price_cents = db.Column(db.Integer, nullable=False)
    box_price_cents = db.Column(db.Integer, nullable=False)
    pack_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "qty_box": self.qty_box,
            "qty_pack": self.qty_pack,
            "qty_loose": self.qty_loose,
            "required_units": self.required_units,
            "unit_price_cents": self.unit_price_cents,
            "box_price_cents": self.box_price_cents,
            "pack_price_cents": self.pack_price_cents,
            "subtotal_cents": self.subtotal_cents,
            "subtotal": cents_to_amount(self.subtotal_cents),
        }


class SalePayment(db.Model):
    """
    Credit repayment recorded under its sale.

    Immutable once written. paid_at is the business date the customer paid,
    created_at is when the record was written.
    """
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "amount_cents": self.amount_cents,
            "amount": cents_to_amount(self.amount_cents),
            "payment_method": self.payment_method,
            "paid_at": to_utc_z(self.paid_at),
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }


class Payment(db.Model):
    """
    Global, denormalized copy of every credit repayment.

    Written in the same transaction as the SalePayment so cross-customer
    reports never have to walk sales. request_id is the caller's idempotency
    key for the payment intent.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("request_id", name="uq_payments_request_id"),
        db.Index("ix_payments_customer_paid", "customer_name", "paid_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    sale_payment_id = db.Column(db.Integer, db.ForeignKey("sale_payments.id"), nullable=True)
    customer_name = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(255), nullable=True)
    request_id = db.Column(db.String(64), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "sale_payment_id": self.sale_payment_id,
            "customer_name": self.customer_name,
            "amount_cents": self.amount_cents,
            "amount": cents_to_amount(self.amount_cents),
            "payment_method": self.payment_method,
            "paid_at": to_utc_z(self.paid_at),
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "request_id": self.request_id,
        }
