# Overview: Pytest coverage for the stock ledger and product catalogue.

import pytest

from mypackaging.errors import InsufficientStockError, NotFoundError, ValidationError
from mypackaging.extensions import db
from mypackaging.models import AuditLog, StockMovement
from mypackaging.services import products_service, stock_service
from mypackaging.services.concurrency import run_in_transaction
from mypackaging.services.stock_service import StockError


class TestParseQuantity:
    def test_accepts_whole_numbers(self):
        assert stock_service.parse_quantity(3, "qty") == 3
        assert stock_service.parse_quantity("4", "qty") == 4
        assert stock_service.parse_quantity(5.0, "qty") == 5
        assert stock_service.parse_quantity(None, "qty") == 0

    @pytest.mark.parametrize("value", [-1, 1.5, "x", True])
    def test_rejects_bad_input(self, value):
        with pytest.raises(StockError):
            stock_service.parse_quantity(value, "qty")

    def test_zero_can_be_refused(self):
        with pytest.raises(StockError):
            stock_service.parse_quantity(0, "qty", allow_zero=False)


class TestApplyDelta:
    def test_opening_stock_is_a_movement(self, make_product):
        product = make_product("Tape", stock=25)

        movements = stock_service.get_stock_movements(product.id)
        assert len(movements) == 1
        assert movements[0].movement_type == stock_service.MOVEMENT_OPENING
        assert movements[0].quantity_delta == 25
        assert movements[0].balance_after == 25

    def test_delta_updates_balance_and_history(self, make_product):
        product = make_product("Tape", stock=10)

        run_in_transaction(lambda: stock_service.apply_delta(
            product.id, 5, movement_type=stock_service.MOVEMENT_PURCHASE_RECEIPT, actor="tests",
        ))
        run_in_transaction(lambda: stock_service.apply_delta(
            product.id, -3, movement_type=stock_service.MOVEMENT_SALE, actor="tests",
        ))

        db.session.refresh(product)
        assert product.stock_balance == 12
        assert product.total_purchased == 5
        assert product.quantity_sold == 3
        balances = [m.balance_after for m in stock_service.get_stock_movements(product.id)]
        assert balances == [12, 15, 10]

    def test_enforced_delta_cannot_go_negative(self, make_product):
        product = make_product("Tape", stock=2)

        with pytest.raises(InsufficientStockError) as exc:
            run_in_transaction(lambda: stock_service.apply_delta(
                product.id, -3, movement_type=stock_service.MOVEMENT_SALE, enforce_available=True,
            ))

        assert exc.value.available == 2
        assert exc.value.required == 3
        db.session.refresh(product)
        assert product.stock_balance == 2

    def test_reversals_may_go_negative(self, make_product):
        product = make_product("Tape", stock=1)

        run_in_transaction(lambda: stock_service.apply_delta(
            product.id, -4, movement_type=stock_service.MOVEMENT_SUPPLIER_RETURN,
        ))

        db.session.refresh(product)
        assert product.stock_balance == -3

    def test_unknown_movement_type(self, make_product):
        product = make_product("Tape", stock=1)
        with pytest.raises(ValueError):
            stock_service.apply_delta(product.id, 1, movement_type="GIFT")

    def test_crossing_reorder_point_raises_alert(self, make_product):
        product = make_product("Tape", stock=10, reorder_point=5)

        run_in_transaction(lambda: stock_service.apply_delta(
            product.id, -6, movement_type=stock_service.MOVEMENT_SHOP_USE, actor="tests",
        ))

        alerts = db.session.query(AuditLog).filter_by(action="low_stock").all()
        assert len(alerts) == 1
        assert alerts[0].category == "alert"
        assert [p.id for p in stock_service.low_stock_products()] == [product.id]

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.get_product(12345)


class TestProductCatalogue:
    def test_bulk_prices_fall_back_to_unit_price(self, make_product):
        product = make_product("Cup", unit_price_cents=120, big_bulk_qty=50, small_bulk_qty=10, pack_price_cents=1100)

        assert product.effective_box_price_cents == 6000
        assert product.effective_pack_price_cents == 1100

    def test_names_are_unique_ignoring_case(self, make_product):
        make_product("Paper Bag")
        with pytest.raises(ValidationError):
            make_product("paper bag")

    def test_update_ignores_stock_fields(self, make_product):
        product = make_product("Cup", stock=7)

        updated = products_service.update_product(
            product.id,
            patch={"unit_price_cents": 150, "stock_balance": 999},
            actor="tests",
        )

        assert updated.unit_price_cents == 150
        assert updated.stock_balance == 7
        assert db.session.query(StockMovement).filter_by(product_id=product.id).count() == 1

    def test_list_paginates(self, make_product):
        for name in ("A", "B", "C"):
            make_product(name)

        page = products_service.list_products(page=2, per_page=2)

        assert [p["name"] for p in page["items"]] == ["C"]
        assert page["pagination"]["total"] == 3
        assert page["pagination"]["has_prev"] is True
        assert page["pagination"]["has_next"] is False
