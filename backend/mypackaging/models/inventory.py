from __future__ import annotations

from ..extensions import db
from ..money import cents_to_amount
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    stock_balance is the single source of truth for on-hand units. Only the
    stock ledger (services/stock_service.py) writes it; every write also
    appends a StockMovement row.

    Bulk pricing: a box holds big_bulk_qty units and a pack holds
    small_bulk_qty units. When no box/pack price is set the bulk price falls
    back to unit price x bulk quantity.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_products_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True, index=True)

    # Authoritative storage in cents (frontend may only format for display)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    box_price_cents = db.Column(db.Integer, nullable=True)
    pack_price_cents = db.Column(db.Integer, nullable=True)

    big_bulk_qty = db.Column(db.Integer, nullable=False, default=1)
    small_bulk_qty = db.Column(db.Integer, nullable=False, default=1)

    stock_balance = db.Column(db.Integer, nullable=False, default=0)
    reorder_point = db.Column(db.Integer, nullable=False, default=0)
    quantity_sold = db.Column(db.Integer, nullable=False, default=0)
    total_purchased = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def box_size(self) -> int:
        return self.big_bulk_qty or 1

    @property
    def pack_size(self) -> int:
        return self.small_bulk_qty or 1

    @property
    def effective_box_price_cents(self) -> int:
        if self.box_price_cents:
            return self.box_price_cents
        return self.unit_price_cents * self.box_size

    @property
    def effective_pack_price_cents(self) -> int:
        if self.pack_price_cents:
            return self.pack_price_cents
        return self.unit_price_cents * self.pack_size

    @property
    def is_low_stock(self) -> bool:
        return self.stock_balance <= self.reorder_point

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock_balance}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "unit_price_cents": self.unit_price_cents,
            "unit_price": cents_to_amount(self.unit_price_cents),
            "box_price_cents": self.box_price_cents,
            "pack_price_cents": self.pack_price_cents,
            "big_bulk_qty": self.big_bulk_qty,
            "small_bulk_qty": self.small_bulk_qty,
            "stock_balance": self.stock_balance,
            "reorder_point": self.reorder_point,
            "quantity_sold": self.quantity_sold,
            "total_purchased": self.total_purchased,
            "is_low_stock": self.is_low_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only trail of every delta applied to Product.stock_balance.

    balance_after is the product balance right after this movement, so the
    history can be replayed and checked against the stored balance.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(32), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)

    # Owning document (sale, purchase, supplier_return, shop_use, transfer, stock_audit)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    note = db.Column(db.String(255), nullable=True)
    actor = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "balance_after": self.balance_after,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "note": self.note,
            "actor": self.actor,
            "occurred_at": to_utc_z(self.occurred_at),
        }
