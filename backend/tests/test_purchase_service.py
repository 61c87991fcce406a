# Overview: Pytest coverage for purchase orders and supplier returns; stock moves exactly once per transition.

import pytest

from mypackaging.errors import AuthorizationError, ValidationError
from mypackaging.extensions import db
from mypackaging.models import AuditLog, Purchase, StockMovement, SupplierReturn
from mypackaging.services import purchase_service, return_service
from mypackaging.services.purchase_service import PurchaseError
from mypackaging.services.return_service import ReturnError
from mypackaging.services.stock_service import MOVEMENT_PURCHASE_RECEIPT, MOVEMENT_PURCHASE_REVERSAL

from conftest import PASSWORD


def _order(product, qty=10, cost_cents=100, **kwargs):
    return purchase_service.create_purchase(
        supplier_name="Kilang Kotak Sdn Bhd",
        items=[{"product_id": product.id, "ordered_qty": qty, "cost_cents": cost_cents}],
        actor="tests",
        **kwargs,
    )


def _balance(product):
    db.session.refresh(product)
    return product.stock_balance


class TestPurchaseTotals:
    def test_line_and_overall_discounts(self, make_product):
        cup = make_product("Cup")
        lid = make_product("Lid")

        purchase = purchase_service.create_purchase(
            supplier_name="Supplier",
            items=[
                {"product_id": cup.id, "ordered_qty": 10, "cost_cents": 100, "discount_type": "percent", "discount_value": 10},
                {"product_id": lid.id, "ordered_qty": 5, "cost_cents": 200, "discount_type": "amount", "discount_value": 100},
            ],
            actor="tests",
            overall_discount_cents=300,
            transportation_cost_cents=500,
        )

        assert [i.subtotal_cents for i in purchase.items] == [900, 900]
        assert purchase.subtotal_cents == 1800
        assert purchase.total_cents == 2000
        assert purchase.status == "ORDERED"
        assert _balance(cup) == 0

    def test_line_subtotal_floors_at_zero(self):
        assert purchase_service.line_subtotal_cents(1, 100, "amount", 500) == 0
        assert purchase_service.line_subtotal_cents(3, 333, "percent", "12.5") == 874

    @pytest.mark.parametrize("item", [
        {"ordered_qty": 0, "cost_cents": 100},
        {"ordered_qty": 1, "cost_cents": 0},
        {"ordered_qty": 1, "cost_cents": 100, "discount_type": "percent", "discount_value": 101},
        {"ordered_qty": 1, "cost_cents": 100, "discount_type": "bogus"},
    ])
    def test_invalid_lines(self, make_product, item):
        product = make_product("Cup")
        with pytest.raises(ValidationError) as exc:
            purchase_service.create_purchase(
                supplier_name="Supplier", items=[dict(item, product_id=product.id)], actor="tests",
            )
        assert exc.value.status_code == 400
        assert db.session.query(Purchase).count() == 0

    def test_supplier_required(self, make_product):
        product = make_product("Cup")
        with pytest.raises(PurchaseError):
            purchase_service.create_purchase(
                supplier_name=" ", items=[{"product_id": product.id, "ordered_qty": 1, "cost_cents": 1}], actor="tests",
            )


class TestPurchaseLifecycle:
    def test_partial_then_full_receipt_counts_once(self, make_product):
        product = make_product("Cup")
        purchase = _order(product, qty=10)
        item_id = purchase.items[0].id

        purchase_service.update_purchase_status(
            purchase.id, "Received Partial", actor="tests", received_quantities={item_id: 3},
        )
        assert _balance(product) == 3

        purchase = purchase_service.update_purchase_status(purchase.id, "RECEIVED", actor="tests")
        assert purchase.status == "RECEIVED"
        assert purchase.received_at is not None
        assert purchase.items[0].received_qty == 10
        assert _balance(product) == 10
        assert product.total_purchased == 10

        deltas = [
            m.quantity_delta
            for m in db.session.query(StockMovement).filter_by(movement_type=MOVEMENT_PURCHASE_RECEIPT).all()
        ]
        assert sorted(deltas) == [3, 7]

    def test_same_status_is_a_no_op(self, make_product):
        product = make_product("Cup")
        purchase = _order(product, qty=10)
        item_id = purchase.items[0].id

        purchase_service.update_purchase_status(
            purchase.id, "RECEIVED_PARTIAL", actor="tests", received_quantities={item_id: 4},
        )
        purchase_service.update_purchase_status(
            purchase.id, "RECEIVED_PARTIAL", actor="tests", received_quantities={item_id: 4},
        )

        assert _balance(product) == 4

    def test_cancel_after_partial_takes_stock_back(self, make_product):
        product = make_product("Cup", stock=2)
        purchase = _order(product, qty=10)
        purchase_service.update_purchase_status(
            purchase.id, "RECEIVED_PARTIAL", actor="tests", received_quantities={str(purchase.items[0].id): 6},
        )

        purchase_service.update_purchase_status(purchase.id, "Cancelled", actor="tests")

        assert _balance(product) == 2
        reversal = db.session.query(StockMovement).filter_by(movement_type=MOVEMENT_PURCHASE_REVERSAL).one()
        assert reversal.quantity_delta == -6

    def test_in_transit_moves_no_stock(self, make_product):
        product = make_product("Cup")
        purchase = _order(product)

        purchase = purchase_service.update_purchase_status(purchase.id, "In Transit", actor="tests")

        assert purchase.status == "IN_TRANSIT"
        assert _balance(product) == 0

    @pytest.mark.parametrize("target", ["CANCELLED", "ORDERED", "RECEIVED_PARTIAL", "IN_TRANSIT"])
    def test_received_is_final(self, make_product, target):
        product = make_product("Cup")
        purchase = _order(product, status="RECEIVED")

        with pytest.raises(PurchaseError):
            purchase_service.update_purchase_status(purchase.id, target, actor="tests")
        assert _balance(product) == 10

    def test_received_quantity_cannot_exceed_order(self, make_product):
        product = make_product("Cup")
        purchase = _order(product, qty=5)

        with pytest.raises(PurchaseError):
            purchase_service.update_purchase_status(
                purchase.id, "RECEIVED_PARTIAL", actor="tests", received_quantities={purchase.items[0].id: 6},
            )
        assert _balance(product) == 0

    @pytest.mark.parametrize("key", ["first", None, "1.5"])
    def test_received_quantity_keys_must_be_line_ids(self, make_product, key):
        product = make_product("Cup")
        purchase = _order(product, qty=5)

        with pytest.raises(PurchaseError):
            purchase_service.update_purchase_status(
                purchase.id, "RECEIVED_PARTIAL", actor="tests", received_quantities={key: 3},
            )
        assert _balance(product) == 0

    def test_created_as_received_stocks_immediately(self, make_product):
        product = make_product("Cup")

        _order(product, qty=12, status="Received")

        assert _balance(product) == 12

    def test_created_as_partial_uses_line_positions(self, make_product):
        product = make_product("Cup")

        purchase = _order(product, qty=12, status="RECEIVED_PARTIAL", received_quantities={"0": 5})

        assert purchase.items[0].received_qty == 5
        assert _balance(product) == 5

    def test_delete_reverses_received_stock(self, make_product, admin_user):
        product = make_product("Cup", stock=1)
        purchase = _order(product, qty=10, status="RECEIVED")

        with pytest.raises(AuthorizationError):
            purchase_service.delete_purchase(purchase.id, actor=admin_user.email, password="nope")
        assert _balance(product) == 11

        purchase_service.delete_purchase(purchase.id, actor=admin_user.email, password=PASSWORD)

        assert _balance(product) == 1
        assert product.total_purchased == 0
        assert db.session.query(Purchase).count() == 0
        actions = [e.action for e in db.session.query(AuditLog).order_by(AuditLog.id).all()]
        assert actions[-2:] == ["purchase_cancelled", "purchase_deleted"]


class TestSupplierReturns:
    def test_return_then_delete_restores_stock(self, make_product, admin_user):
        product = make_product("Cup", stock=10)

        supplier_return = return_service.create_return(
            supplier_name="Supplier",
            items=[{"product_id": product.id, "qty": 5}],
            actor="tests",
            reason="Damaged",
        )
        assert supplier_return.total_qty == 5
        assert _balance(product) == 5

        return_service.delete_return(supplier_return.id, actor=admin_user.email, password=PASSWORD)

        assert _balance(product) == 10
        assert db.session.query(SupplierReturn).count() == 0

    def test_return_may_exceed_on_hand(self, make_product):
        product = make_product("Cup", stock=2)

        return_service.create_return(supplier_name="Supplier", items=[{"product_id": product.id, "qty": 3}], actor="tests")

        assert _balance(product) == -1

    def test_return_needs_supplier_and_items(self, make_product):
        product = make_product("Cup", stock=2)
        with pytest.raises(ReturnError):
            return_service.create_return(supplier_name="", items=[{"product_id": product.id, "qty": 1}], actor="tests")
        with pytest.raises(ReturnError):
            return_service.create_return(supplier_name="Supplier", items=[], actor="tests")
