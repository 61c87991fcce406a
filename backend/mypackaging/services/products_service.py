# Overview: Service-layer operations for the product catalogue; stock balances are only touched via stock_service.

from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from ..time_utils import utcnow
from . import audit_service, change_feed, stock_service
from .concurrency import lock_for_update, run_in_transaction

# stock_balance, quantity_sold and total_purchased are owned by the stock ledger
PRODUCT_MUTABLE_FIELDS = {
    "name",
    "sku",
    "unit_price_cents",
    "box_price_cents",
    "pack_price_cents",
    "big_bulk_qty",
    "small_bulk_qty",
    "reorder_point",
}
_CENTS_FIELDS = {"unit_price_cents", "box_price_cents", "pack_price_cents"}
_COUNT_FIELDS = {"big_bulk_qty", "small_bulk_qty", "reorder_point"}


def _clean_patch(patch: dict) -> dict:
    clean = {}
    for key, value in patch.items():
        if key not in PRODUCT_MUTABLE_FIELDS:
            continue
        if key == "name":
            value = (value or "").strip()
            if not value:
                raise ValidationError("Product name is required")
        elif key == "sku":
            value = (value or "").strip() or None
        elif key in _CENTS_FIELDS:
            if value is None or value == "":
                value = 0 if key == "unit_price_cents" else None
            else:
                value = stock_service.parse_quantity(value, key.replace("_cents", "").replace("_", " "))
        elif key in _COUNT_FIELDS:
            value = stock_service.parse_quantity(value, key.replace("_", " "))
            if key != "reorder_point" and value < 1:
                raise ValidationError(f"{key.replace('_', ' ')} must be at least 1")
        clean[key] = value
    return clean


def _ensure_unique_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product).filter(db.func.lower(Product.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ValidationError(f"A product named {name} already exists")


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def list_products(search: str | None = None, page: int | None = None, per_page: int | None = None) -> dict:
    """Products A-Z, optionally filtered by name/SKU and paginated."""
    base_query = db.session.query(Product)
    if search:
        like = f"%{search.strip()}%"
        base_query = base_query.filter(db.or_(Product.name.ilike(like), Product.sku.ilike(like)))
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(*, patch: dict, actor: str | None, opening_stock=0) -> Product:
    """
    Create a product. Opening stock, if any, goes through the stock ledger
    so the product's history starts with an OPENING movement.
    """
    clean = _clean_patch(patch)
    if "name" not in clean:
        raise ValidationError("Product name is required")
    opening = stock_service.parse_quantity(opening_stock, "Opening stock")

    def _op():
        _ensure_unique_name(clean["name"])

        product = Product(stock_balance=0, quantity_sold=0, total_purchased=0)
        for key, value in clean.items():
            setattr(product, key, value)
        db.session.add(product)
        db.session.flush()

        if opening:
            stock_service.apply_delta(
                product.id,
                opening,
                movement_type=stock_service.MOVEMENT_OPENING,
                reference_type="product",
                reference_id=product.id,
                actor=actor,
                note="Opening stock",
            )

        audit_service.log_activity(
            "product_created",
            actor,
            f"Created product {product.name} with {opening} units",
            payload={"product_id": product.id, "opening_stock": opening},
        )
        change_feed.record_change("products", "created", product.id, product.to_dict())
        return product

    return run_in_transaction(_op)


def update_product(product_id: int, *, patch: dict, actor: str | None) -> Product:
    """Change catalogue fields. Stock fields in the patch are ignored."""
    clean = _clean_patch(patch)

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
        if "name" in clean:
            _ensure_unique_name(clean["name"], exclude_id=product.id)

        changed = {k: v for k, v in clean.items() if getattr(product, k) != v}
        if not changed:
            return product
        for key, value in changed.items():
            setattr(product, key, value)
        product.updated_at = utcnow()

        audit_service.log_activity(
            "product_updated",
            actor,
            f"Updated product {product.name}: {', '.join(sorted(changed))}",
            payload={"product_id": product.id, "changes": changed},
        )
        change_feed.record_change("products", "updated", product.id, product.to_dict())
        return product

    return run_in_transaction(_op)
