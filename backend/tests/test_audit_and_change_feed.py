# Overview: Pytest coverage for the audit trail and post-commit change notifications.

import logging

import pytest

from mypackaging.extensions import db
from mypackaging.models import AuditLog
from mypackaging.services import audit_service, change_feed, payment_service, sales_service
from mypackaging.services.concurrency import run_in_transaction


class TestChangeFeed:
    def test_subscribers_see_committed_writes(self, make_product):
        product = make_product("Cup", stock=10)
        seen = []
        change_feed.subscribe("sales", seen.append)

        sale = sales_service.create_sale(
            items=[{"product_id": product.id, "qty_loose": 2}],
            actor="tests",
            customer_name="Ahmad",
            payment_method="hutang",
        )
        payment_service.record_payment(sale.id, 100, "cash", actor="tests")

        assert [(c.change, c.entity_id) for c in seen] == [("created", sale.id), ("updated", sale.id)]
        assert seen[0].data["status"] == "Hutang"
        assert seen[1].data["remaining_cents"] == 900

    def test_predicate_filters_changes(self, make_product):
        product = make_product("Cup", stock=10)
        hutang = []
        change_feed.subscribe("sales", hutang.append, predicate=lambda c: c.data.get("status") == "Hutang")

        sales_service.create_sale(
            items=[{"product_id": product.id, "qty_loose": 1}], actor="tests", payment_method="cash", paid_amount_cents=500,
        )
        sales_service.create_sale(
            items=[{"product_id": product.id, "qty_loose": 1}], actor="tests", customer_name="Siti", payment_method="hutang",
        )

        assert [c.data["customer_name"] for c in hutang] == ["Siti"]

    def test_rolled_back_changes_are_never_delivered(self, make_product):
        product = make_product("Cup", stock=10)
        seen = []
        change_feed.subscribe("products", seen.append)

        def fails_after_recording():
            change_feed.record_change("products", "updated", product.id, {"id": product.id})
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            run_in_transaction(fails_after_recording)
        run_in_transaction(lambda: None)

        assert seen == []

    def test_unsubscribe(self, make_product):
        seen = []
        unsubscribe = change_feed.subscribe("products", seen.append)
        unsubscribe()

        make_product("Cup", stock=1)

        assert seen == []

    def test_unknown_collection(self):
        with pytest.raises(ValueError):
            change_feed.subscribe("customers", lambda change: None)

    def test_failing_subscriber_does_not_break_the_write(self, make_product):
        def broken(change):
            raise RuntimeError("subscriber bug")

        change_feed.subscribe("products", broken)

        product = make_product("Cup", stock=3)

        db.session.refresh(product)
        assert product.stock_balance == 3


class TestAuditTrail:
    def test_entries_commit_with_the_change(self, make_product):
        make_product("Cup", stock=3)

        actions = [e.action for e in audit_service.list_audit_logs()]
        assert actions == ["product_created"]

    def test_entries_roll_back_with_the_change(self, db_session):
        def fails():
            audit_service.log_activity("sale_created", "tests", "never happened")
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            run_in_transaction(fails)

        assert db.session.query(AuditLog).count() == 0

    def test_log_line_emitted_after_commit(self, db_session, caplog):
        with caplog.at_level(logging.INFO, logger="mypackaging.audit"):
            run_in_transaction(lambda: audit_service.log_activity("login", "admin@shop.local", "Signed in", category="info"))

        assert "[AUDIT] INFO: login by admin@shop.local - Signed in" in caplog.text

    def test_filters(self, db_session):
        run_in_transaction(lambda: audit_service.log_activity("a", "x@shop.local", "first"))
        run_in_transaction(lambda: audit_service.log_activity("b", "y@shop.local", "second", category="alert"))

        assert [e.action for e in audit_service.list_audit_logs(category="alert")] == ["b"]
        assert [e.action for e in audit_service.list_audit_logs(actor="x@shop.local")] == ["a"]

    @pytest.mark.parametrize("category", ["action", "update", "alert", "error", "warning", "info"])
    def test_known_categories(self, db_session, category):
        run_in_transaction(lambda: audit_service.log_activity("stock_updated", "tests", "x", category=category))

        assert [e.category for e in audit_service.list_audit_logs()] == [category]

    def test_unknown_category(self, db_session):
        with pytest.raises(ValueError):
            audit_service.log_activity("a", "x", "y", category="system")
