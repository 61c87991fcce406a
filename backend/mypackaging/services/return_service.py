# Overview: Supplier returns; stock leaves when a return is recorded and comes back if it is deleted.

from __future__ import annotations

import logging

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import SupplierReturn, SupplierReturnItem
from ..time_utils import normalize_datetime, utcnow
from . import audit_service, auth_service, change_feed, stock_service
from .concurrency import lock_for_update, run_in_transaction

logger = logging.getLogger(__name__)


class ReturnError(ValidationError):
    """Raised for supplier return validation errors."""
    pass


def create_return(
    *,
    supplier_name: str,
    items: list[dict],
    actor: str | None,
    reference_number: str | None = None,
    reason: str | None = None,
    created_at=None,
) -> SupplierReturn:
    """
    Record goods sent back to a supplier and take them out of stock.

    items: [{"product_id", "qty"}]. The balance may go negative; returns are
    not blocked by the on-hand count.
    """
    supplier = (supplier_name or "").strip()
    if not supplier:
        raise ReturnError("Supplier name is required")
    if not items:
        raise ReturnError("Add at least one item to the return")
    try:
        return_date = normalize_datetime(created_at) or utcnow()
    except ValueError:
        raise ReturnError("Invalid return date")

    def _op():
        lines = stock_service.parse_unit_lines(items)

        supplier_return = SupplierReturn(
            supplier_name=supplier,
            reference_number=(reference_number or "").strip() or None,
            reason=(reason or "").strip() or None,
            total_qty=sum(qty for _, qty in lines),
            created_at=return_date,
            created_by=actor,
        )
        supplier_return.items = [
            SupplierReturnItem(position=pos, product_id=product.id, product_name=product.name, qty=qty)
            for pos, (product, qty) in enumerate(lines)
        ]
        db.session.add(supplier_return)
        db.session.flush()

        for product, qty in lines:
            stock_service.apply_delta(
                product.id,
                -qty,
                movement_type=stock_service.MOVEMENT_SUPPLIER_RETURN,
                reference_type="supplier_return",
                reference_id=supplier_return.id,
                actor=actor,
                note=supplier_return.reason,
            )

        audit_service.log_activity(
            "supplier_return_created",
            actor,
            f"Return #{supplier_return.id} to {supplier}: {supplier_return.total_qty} units",
            payload={
                "return_id": supplier_return.id,
                "supplier_name": supplier,
                "items": [{"product_id": p.id, "qty": q} for p, q in lines],
            },
        )
        change_feed.record_change("supplier_returns", "created", supplier_return.id, supplier_return.to_dict())
        return supplier_return

    supplier_return = run_in_transaction(_op)
    logger.info("Supplier return %s recorded (%s units)", supplier_return.id, supplier_return.total_qty)
    return supplier_return


def get_return(return_id: int) -> SupplierReturn:
    supplier_return = db.session.get(SupplierReturn, return_id)
    if supplier_return is None:
        raise NotFoundError(f"Return {return_id} not found", details={"return_id": return_id})
    return supplier_return


def list_returns(supplier: str | None = None, limit: int = 200) -> list[SupplierReturn]:
    query = db.session.query(SupplierReturn)
    if supplier:
        query = query.filter(SupplierReturn.supplier_name.ilike(f"%{supplier.strip()}%"))
    limit = max(1, min(int(limit), 1000))
    return query.order_by(SupplierReturn.created_at.desc(), SupplierReturn.id.desc()).limit(limit).all()


def delete_return(return_id: int, *, actor: str, password: str) -> None:
    """Delete a return and restore exactly the units it removed. Requires the operator's password."""
    auth_service.reauthenticate(actor, password)

    def _op():
        supplier_return = lock_for_update(db.session.query(SupplierReturn).filter_by(id=return_id)).first()
        if supplier_return is None:
            raise NotFoundError(f"Return {return_id} not found", details={"return_id": return_id})

        for item in supplier_return.items:
            stock_service.apply_delta(
                item.product_id,
                item.qty,
                movement_type=stock_service.MOVEMENT_SUPPLIER_RETURN_REVERSAL,
                reference_type="supplier_return",
                reference_id=supplier_return.id,
                actor=actor,
                note="Return deleted",
            )

        audit_service.log_activity(
            "supplier_return_deleted",
            actor,
            f"Deleted return #{supplier_return.id} to {supplier_return.supplier_name}",
            payload={"return_id": supplier_return.id, "total_qty": supplier_return.total_qty},
        )
        change_feed.record_change("supplier_returns", "deleted", supplier_return.id, {"id": supplier_return.id})
        db.session.delete(supplier_return)

    run_in_transaction(_op)
    logger.info("Supplier return %s deleted by %s", return_id, actor)
