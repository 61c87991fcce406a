# Overview: In-shop stock operations; shop use, product-to-product transfers, and physical stock counts.

"""
Shop operations

- Shop use: units the shop consumes itself. Deleting the record puts them back.
- Transfer: converts units of one product into another (e.g. one carton
  into 50 loose pieces). target_qty defaults to source_qty x conversion_rate,
  rounded half-up to whole units.
- Stock audit: a physical count. The balance is set to what is on the shelf
  and the difference is recorded. Needs the operator's password because it
  overrides the ledger.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import ShopUse, ShopUseItem, StockAudit, StockTransfer
from ..time_utils import normalize_datetime, utcnow
from . import audit_service, auth_service, change_feed, stock_service
from .concurrency import lock_for_update, run_in_transaction

logger = logging.getLogger(__name__)


def _record_date(value):
    try:
        return normalize_datetime(value) or utcnow()
    except ValueError:
        raise ValidationError("Invalid date")


# Shop use

def create_shop_use(*, items: list[dict], reason: str, actor: str | None, notes: str | None = None, created_at=None) -> ShopUse:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required for shop use")
    used_at = _record_date(created_at)

    def _op():
        lines = stock_service.parse_unit_lines(items)
        shop_use = ShopUse(
            reason=reason,
            notes=notes,
            total_qty=sum(qty for _, qty in lines),
            created_at=used_at,
            created_by=actor,
        )
        shop_use.items = [
            ShopUseItem(position=pos, product_id=product.id, product_name=product.name, qty=qty)
            for pos, (product, qty) in enumerate(lines)
        ]
        db.session.add(shop_use)
        db.session.flush()

        for product, qty in lines:
            stock_service.apply_delta(
                product.id,
                -qty,
                movement_type=stock_service.MOVEMENT_SHOP_USE,
                reference_type="shop_use",
                reference_id=shop_use.id,
                actor=actor,
                note=reason,
            )

        audit_service.log_activity(
            "shop_use_created",
            actor,
            f"Shop use #{shop_use.id}: {shop_use.total_qty} units ({reason})",
            payload={"shop_use_id": shop_use.id, "items": [{"product_id": p.id, "qty": q} for p, q in lines]},
        )
        change_feed.record_change("shop_uses", "created", shop_use.id, shop_use.to_dict())
        return shop_use

    return run_in_transaction(_op)


def list_shop_uses(limit: int = 200) -> list[ShopUse]:
    limit = max(1, min(int(limit), 1000))
    return db.session.query(ShopUse).order_by(ShopUse.created_at.desc(), ShopUse.id.desc()).limit(limit).all()


def delete_shop_use(shop_use_id: int, *, actor: str, password: str) -> None:
    auth_service.reauthenticate(actor, password)

    def _op():
        shop_use = lock_for_update(db.session.query(ShopUse).filter_by(id=shop_use_id)).first()
        if shop_use is None:
            raise NotFoundError(f"Shop use {shop_use_id} not found")

        for item in shop_use.items:
            stock_service.apply_delta(
                item.product_id,
                item.qty,
                movement_type=stock_service.MOVEMENT_SHOP_USE_REVERSAL,
                reference_type="shop_use",
                reference_id=shop_use.id,
                actor=actor,
                note="Shop use deleted",
            )

        audit_service.log_activity(
            "shop_use_deleted",
            actor,
            f"Deleted shop use #{shop_use.id} ({shop_use.total_qty} units)",
            payload={"shop_use_id": shop_use.id},
        )
        change_feed.record_change("shop_uses", "deleted", shop_use.id, {"id": shop_use.id})
        db.session.delete(shop_use)

    run_in_transaction(_op)


# Transfers

def _conversion_rate(value) -> Decimal:
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValidationError("Conversion rate must be a number")
    if not rate.is_finite() or rate <= 0:
        raise ValidationError("Conversion rate must be greater than 0")
    return rate


def create_transfer(
    *,
    source_product_id: int,
    target_product_id: int,
    source_qty,
    conversion_rate,
    actor: str | None,
    target_qty=None,
    notes: str | None = None,
    created_at=None,
) -> StockTransfer:
    if source_product_id is None or target_product_id is None:
        raise ValidationError("Select both source and target products")
    if int(source_product_id) == int(target_product_id):
        raise ValidationError("Source and target products must be different")

    qty_out = stock_service.parse_quantity(source_qty, "Source quantity", allow_zero=False)
    rate = _conversion_rate(conversion_rate)
    if target_qty is None or target_qty == "":
        qty_in = int((qty_out * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        if qty_in < 1:
            raise ValidationError(
                "Source quantity x conversion rate comes to less than one unit",
                details={"source_qty": qty_out, "conversion_rate": str(rate)},
            )
    else:
        qty_in = stock_service.parse_quantity(target_qty, "Target quantity", allow_zero=False)
    transferred_at = _record_date(created_at)

    def _op():
        source = stock_service.get_product(int(source_product_id))
        target = stock_service.get_product(int(target_product_id))

        transfer = StockTransfer(
            source_product_id=source.id,
            source_product_name=source.name,
            target_product_id=target.id,
            target_product_name=target.name,
            source_qty=qty_out,
            target_qty=qty_in,
            conversion_rate=str(rate),
            notes=notes,
            created_at=transferred_at,
            created_by=actor,
        )
        db.session.add(transfer)
        db.session.flush()

        stock_service.apply_delta(
            source.id,
            -qty_out,
            movement_type=stock_service.MOVEMENT_TRANSFER_OUT,
            reference_type="transfer",
            reference_id=transfer.id,
            actor=actor,
        )
        stock_service.apply_delta(
            target.id,
            qty_in,
            movement_type=stock_service.MOVEMENT_TRANSFER_IN,
            reference_type="transfer",
            reference_id=transfer.id,
            actor=actor,
        )

        audit_service.log_activity(
            "transfer_created",
            actor,
            f"Transfer: {source.name} -> {target.name} ({qty_out} -> {qty_in})",
            payload={
                "transfer_id": transfer.id,
                "source_product_id": source.id,
                "target_product_id": target.id,
                "source_qty": qty_out,
                "target_qty": qty_in,
            },
        )
        change_feed.record_change("stock_transfers", "created", transfer.id, transfer.to_dict())
        return transfer

    return run_in_transaction(_op)


def list_transfers(limit: int = 200) -> list[StockTransfer]:
    limit = max(1, min(int(limit), 1000))
    return (
        db.session.query(StockTransfer)
        .order_by(StockTransfer.created_at.desc(), StockTransfer.id.desc())
        .limit(limit)
        .all()
    )


def delete_transfer(transfer_id: int, *, actor: str, password: str) -> None:
    """Undo both sides of a transfer. Requires the operator's password."""
    auth_service.reauthenticate(actor, password)

    def _op():
        transfer = lock_for_update(db.session.query(StockTransfer).filter_by(id=transfer_id)).first()
        if transfer is None:
            raise NotFoundError(f"Transfer {transfer_id} not found")

        stock_service.apply_delta(
            transfer.source_product_id,
            transfer.source_qty,
            movement_type=stock_service.MOVEMENT_TRANSFER_REVERSAL,
            reference_type="transfer",
            reference_id=transfer.id,
            actor=actor,
            note="Transfer deleted",
        )
        stock_service.apply_delta(
            transfer.target_product_id,
            -transfer.target_qty,
            movement_type=stock_service.MOVEMENT_TRANSFER_REVERSAL,
            reference_type="transfer",
            reference_id=transfer.id,
            actor=actor,
            note="Transfer deleted",
        )

        audit_service.log_activity(
            "transfer_deleted",
            actor,
            f"Deleted transfer #{transfer.id}: {transfer.source_product_name} -> {transfer.target_product_name}",
            payload={"transfer_id": transfer.id},
        )
        change_feed.record_change("stock_transfers", "deleted", transfer.id, {"id": transfer.id})
        db.session.delete(transfer)

    run_in_transaction(_op)


# Stock audits

def create_stock_audit(product_id: int, actual_stock, reason: str, *, actor: str, password: str) -> StockAudit:
    """Set a product's balance to a physical count and record the difference."""
    auth_service.reauthenticate(actor, password)

    counted = stock_service.parse_quantity(actual_stock, "Actual stock")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required for a stock audit")

    def _op():
        product = stock_service.get_product(product_id, lock=True)
        old_stock = product.stock_balance
        difference = counted - old_stock

        audit = StockAudit(
            product_id=product.id,
            product_name=product.name,
            old_stock=old_stock,
            actual_stock=counted,
            difference=difference,
            reason=reason,
            created_at=utcnow(),
            created_by=actor,
        )
        db.session.add(audit)
        db.session.flush()

        if difference:
            stock_service.apply_delta(
                product.id,
                difference,
                movement_type=stock_service.MOVEMENT_STOCK_AUDIT,
                reference_type="stock_audit",
                reference_id=audit.id,
                actor=actor,
                note=reason,
            )

        audit_service.log_stock_level_change(product, old_stock, counted, f"Stock audit: {reason}", actor)
        change_feed.record_change("stock_audits", "created", audit.id, audit.to_dict())
        return audit

    audit = run_in_transaction(_op)
    logger.info("Stock audit %s on product %s: difference %s", audit.id, audit.product_id, audit.difference)
    return audit


def list_stock_audits(product_id: int | None = None, limit: int = 200) -> list[StockAudit]:
    query = db.session.query(StockAudit)
    if product_id is not None:
        query = query.filter(StockAudit.product_id == product_id)
    limit = max(1, min(int(limit), 1000))
    return query.order_by(StockAudit.created_at.desc(), StockAudit.id.desc()).limit(limit).all()
