from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ShopUse(db.Model):
    """Products consumed by the shop itself (wrapping, samples, damage)."""
    __tablename__ = "shop_uses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    reason = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    total_qty = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(255), nullable=True)

    items = db.relationship(
        "ShopUseItem",
        backref="shop_use",
        lazy=True,
        order_by="ShopUseItem.position",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reason": self.reason,
            "notes": self.notes,
            "total_qty": self.total_qty,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "items": [item.to_dict() for item in self.items],
        }


class ShopUseItem(db.Model):
    __tablename__ = "shop_use_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    shop_use_id = db.Column(db.Integer, db.ForeignKey("shop_uses.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    qty = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "qty": self.qty,
        }


class StockTransfer(db.Model):
    """
    Conversion of one product into another, e.g. breaking a roll into
    sheets: source loses source_qty, target gains target_qty.
    """
    __tablename__ = "stock_transfers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    source_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    source_product_name = db.Column(db.String(255), nullable=False)
    target_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    target_product_name = db.Column(db.String(255), nullable=False)
    source_qty = db.Column(db.Integer, nullable=False)
    target_qty = db.Column(db.Integer, nullable=False)
    conversion_rate = db.Column(db.String(32), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_product_id": self.source_product_id,
            "source_product_name": self.source_product_name,
            "target_product_id": self.target_product_id,
            "target_product_name": self.target_product_name,
            "source_qty": self.source_qty,
            "target_qty": self.target_qty,
            "conversion_rate": self.conversion_rate,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }


class StockAudit(db.Model):
    """Physical count that resets a product's balance to what is on the shelf."""
    __tablename__ = "stock_audits"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    old_stock = db.Column(db.Integer, nullable=False)
    actual_stock = db.Column(db.Integer, nullable=False)
    difference = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "old_stock": self.old_stock,
            "actual_stock": self.actual_stock,
            "difference": self.difference,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }
