# Overview: Pytest coverage for shop use, product transfers, and physical stock audits.

import pytest

from mypackaging.errors import AuthorizationError, ValidationError
from mypackaging.extensions import db
from mypackaging.models import AuditLog, StockAudit, StockMovement
from mypackaging.services import shop_service
from mypackaging.services.stock_service import MOVEMENT_STOCK_AUDIT, MOVEMENT_TRANSFER_REVERSAL

from conftest import PASSWORD


def _balance(product):
    db.session.refresh(product)
    return product.stock_balance


class TestShopUse:
    def test_use_then_delete(self, make_product, manager_user):
        tape = make_product("Tape", stock=10)
        bag = make_product("Bag", stock=4)

        shop_use = shop_service.create_shop_use(
            items=[{"product_id": tape.id, "qty": 2}, {"product_id": bag.id, "qty": 1}],
            reason="Wrapping counter",
            actor="tests",
        )
        assert shop_use.total_qty == 3
        assert (_balance(tape), _balance(bag)) == (8, 3)

        shop_service.delete_shop_use(shop_use.id, actor=manager_user.email, password=PASSWORD)

        assert (_balance(tape), _balance(bag)) == (10, 4)
        assert shop_service.list_shop_uses() == []

    def test_reason_required(self, make_product):
        tape = make_product("Tape", stock=10)
        with pytest.raises(ValidationError):
            shop_service.create_shop_use(items=[{"product_id": tape.id, "qty": 1}], reason=" ", actor="tests")


class TestTransfers:
    def test_carton_into_pieces(self, make_product, manager_user):
        carton = make_product("Carton", stock=5)
        piece = make_product("Piece", stock=0)

        transfer = shop_service.create_transfer(
            source_product_id=carton.id,
            target_product_id=piece.id,
            source_qty=2,
            conversion_rate=50,
            actor="tests",
        )
        assert transfer.target_qty == 100
        assert (_balance(carton), _balance(piece)) == (3, 100)
        transfer_id = transfer.id

        shop_service.delete_transfer(transfer_id, actor=manager_user.email, password=PASSWORD)
        assert (_balance(carton), _balance(piece)) == (5, 0)
        reversals = (
            db.session.query(StockMovement)
            .filter_by(movement_type=MOVEMENT_TRANSFER_REVERSAL, reference_id=transfer_id)
            .all()
        )
        assert sorted((m.product_id, m.quantity_delta) for m in reversals) == sorted([(carton.id, 2), (piece.id, -100)])

    def test_fractional_rate_rounds_half_up(self, make_product):
        a = make_product("A", stock=5)
        b = make_product("B", stock=0)

        transfer = shop_service.create_transfer(
            source_product_id=a.id, target_product_id=b.id, source_qty=3, conversion_rate="0.5", actor="tests",
        )

        assert transfer.target_qty == 2

    def test_explicit_target_quantity(self, make_product):
        a = make_product("A", stock=5)
        b = make_product("B", stock=0)

        transfer = shop_service.create_transfer(
            source_product_id=a.id, target_product_id=b.id, source_qty=1, conversion_rate=12, target_qty=10,
            actor="tests",
        )

        assert transfer.target_qty == 10
        assert _balance(b) == 10

    @pytest.mark.parametrize("kwargs", [
        {"conversion_rate": 0},
        {"conversion_rate": "abc"},
        {"conversion_rate": "0.1", "source_qty": 1},
        {"source_qty": 0},
    ])
    def test_invalid_transfers(self, make_product, kwargs):
        a = make_product("A", stock=5)
        b = make_product("B", stock=0)
        params = {"source_qty": 2, "conversion_rate": 2}
        params.update(kwargs)

        with pytest.raises(ValidationError):
            shop_service.create_transfer(source_product_id=a.id, target_product_id=b.id, actor="tests", **params)
        assert _balance(a) == 5

    def test_same_product_rejected(self, make_product):
        a = make_product("A", stock=5)
        with pytest.raises(ValidationError):
            shop_service.create_transfer(
                source_product_id=a.id, target_product_id=a.id, source_qty=1, conversion_rate=1, actor="tests",
            )


class TestStockAudit:
    def test_count_sets_balance_and_records_difference(self, make_product, admin_user):
        product = make_product("Tape", stock=10)

        audit = shop_service.create_stock_audit(
            product.id, 7, "Monthly count", actor=admin_user.email, password=PASSWORD,
        )

        assert (audit.old_stock, audit.actual_stock, audit.difference) == (10, 7, -3)
        assert _balance(product) == 7
        movement = db.session.query(StockMovement).filter_by(movement_type=MOVEMENT_STOCK_AUDIT).one()
        assert movement.quantity_delta == -3
        entry = db.session.query(AuditLog).filter_by(action="stock_level_changed").one()
        assert entry.category == "update"

    def test_matching_count_writes_no_movement(self, make_product, admin_user):
        product = make_product("Tape", stock=10)

        shop_service.create_stock_audit(product.id, 10, "Spot check", actor=admin_user.email, password=PASSWORD)

        assert db.session.query(StockMovement).filter_by(movement_type=MOVEMENT_STOCK_AUDIT).count() == 0
        assert len(shop_service.list_stock_audits(product.id)) == 1

    def test_wrong_password(self, make_product, admin_user):
        product = make_product("Tape", stock=10)

        with pytest.raises(AuthorizationError):
            shop_service.create_stock_audit(product.id, 0, "Count", actor=admin_user.email, password="bad")

        assert _balance(product) == 10
        assert db.session.query(StockAudit).count() == 0
