# Overview: Pytest coverage for credit repayments and the unit-of-work boundary.

"""
Repayment Tests

CONCURRENCY/RETRY TESTS: A repayment must never be lost or applied twice.

Test Coverage:
- Settling a Hutang sale writes one sale-scoped and one global payment
- Overpayment and payments on settled sales are rejected
- request_id replays are no-ops; reuse for a different payment is rejected
- A commit that fails after landing is reported as outcome unknown, and the
  follow-up retry does not double-apply
- A stale expected balance is a conflict
- Version conflicts are retried, then surfaced
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from mypackaging.errors import ConcurrencyConflictError, ConnectivityError, NotFoundError
from mypackaging.extensions import db
from mypackaging.models import Payment, Sale, SalePayment
from mypackaging.services import credit_service, payment_service, sales_service
from mypackaging.services.concurrency import run_in_transaction
from mypackaging.services.payment_service import PaymentError


@pytest.fixture
def ahmad_sale(make_product):
    """RM50.00 sale to Ahmad with RM30.00 paid and RM20.00 owed."""
    product = make_product("Box 10x10", stock=10, unit_price_cents=500)
    return sales_service.create_sale(
        items=[{"product_id": product.id, "qty_loose": 4}, {"product_id": product.id, "qty_loose": 6}],
        actor="cashier@shop.local",
        customer_name="Ahmad",
        payment_method="hutang",
        paid_amount_cents=3000,
    )


class TestRecordPayment:
    def test_full_repayment_settles_sale(self, ahmad_sale):
        sale = payment_service.record_payment(ahmad_sale.id, 2000, "cash", actor="cashier@shop.local")

        assert sale.status == "Paid"
        assert sale.remaining_cents == 0
        assert sale.paid_amount_cents == 5000

        sale_payments = db.session.query(SalePayment).filter_by(sale_id=sale.id).all()
        payments = db.session.query(Payment).filter_by(sale_id=sale.id).all()
        assert [p.amount_cents for p in sale_payments] == [2000]
        assert [p.amount_cents for p in payments] == [2000]
        assert payments[0].sale_payment_id == sale_payments[0].id
        assert payments[0].customer_name == "Ahmad"

    def test_partial_repayment_keeps_hutang(self, ahmad_sale):
        sale = payment_service.record_payment(ahmad_sale.id, 500, "online", actor="tests")

        assert sale.status == "Hutang"
        assert sale.remaining_cents == 1500
        assert sale.paid_amount_cents + sale.remaining_cents == sale.total_cents

    def test_overpayment_rejected(self, ahmad_sale):
        with pytest.raises(PaymentError):
            payment_service.record_payment(ahmad_sale.id, 2001, "cash", actor="tests")

        assert db.session.query(Payment).count() == 0

    def test_settled_sale_rejects_payment(self, ahmad_sale):
        payment_service.record_payment(ahmad_sale.id, 2000, "cash", actor="tests")

        with pytest.raises(PaymentError):
            payment_service.record_payment(ahmad_sale.id, 1, "cash", actor="tests")

    @pytest.mark.parametrize("amount", [0, -100, 1.5, "abc", True])
    def test_invalid_amount(self, ahmad_sale, amount):
        with pytest.raises(PaymentError):
            payment_service.record_payment(ahmad_sale.id, amount, "cash", actor="tests")

    def test_hutang_is_not_a_repayment_method(self, ahmad_sale):
        with pytest.raises(PaymentError):
            payment_service.record_payment(ahmad_sale.id, 100, "hutang", actor="tests")

    def test_unknown_sale(self, db_session):
        with pytest.raises(NotFoundError):
            payment_service.record_payment(999, 100, "cash", actor="tests")

    def test_backdated_payment_date(self, ahmad_sale):
        payment_service.record_payment(
            ahmad_sale.id, 1000, "cash", actor="tests", payment_date="2024-05-03T10:00:00Z",
        )

        payment = db.session.query(Payment).one()
        assert payment.paid_at.year == 2024
        assert payment.to_dict()["paid_at"] == "2024-05-03T10:00:00Z"


class TestRetrySafety:
    def test_replayed_request_id_is_not_applied_twice(self, ahmad_sale):
        payment_service.record_payment(ahmad_sale.id, 1000, "cash", actor="tests", request_id="req-1")
        sale = payment_service.record_payment(ahmad_sale.id, 1000, "cash", actor="tests", request_id="req-1")

        assert sale.remaining_cents == 1000
        assert db.session.query(Payment).count() == 1
        assert db.session.query(SalePayment).count() == 1

    def test_request_id_reused_for_different_payment(self, ahmad_sale):
        payment_service.record_payment(ahmad_sale.id, 1000, "cash", actor="tests", request_id="req-1")

        with pytest.raises(PaymentError):
            payment_service.record_payment(ahmad_sale.id, 500, "cash", actor="tests", request_id="req-1")

    def test_unconfirmed_commit_then_retry(self, ahmad_sale, monkeypatch):
        """The commit lands but its acknowledgement is lost; the retry must not double-apply."""
        real_session = db.session.registry()

        def commit_then_time_out():
            real_session.commit()
            raise OperationalError("COMMIT", {}, Exception("timeout"))

        monkeypatch.setattr(db.session, "commit", commit_then_time_out)
        with pytest.raises(ConnectivityError) as exc:
            payment_service.record_payment(ahmad_sale.id, 2000, "cash", actor="tests", request_id="req-lost")
        assert exc.value.outcome_unknown is True
        monkeypatch.undo()

        # The operator re-reads before retrying: the payment did land.
        db.session.expire_all()
        assert db.session.get(Sale, ahmad_sale.id).remaining_cents == 0

        sale = payment_service.record_payment(ahmad_sale.id, 2000, "cash", actor="tests", request_id="req-lost")
        assert sale.status == "Paid"
        assert db.session.query(Payment).count() == 1

    def test_stale_expected_balance_is_conflict(self, ahmad_sale):
        payment_service.record_payment(ahmad_sale.id, 500, "cash", actor="operator-a")

        with pytest.raises(ConcurrencyConflictError):
            payment_service.record_payment(
                ahmad_sale.id, 500, "cash", actor="operator-b", expected_remaining_cents=2000,
            )

        sale = payment_service.record_payment(
            ahmad_sale.id, 500, "cash", actor="operator-b", expected_remaining_cents=1500,
        )
        assert sale.remaining_cents == 1000

    def test_unreachable_store_fails_before_write(self, ahmad_sale, monkeypatch):
        def refuse(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("unable to open database file"))

        monkeypatch.setattr(db.session, "execute", refuse)
        with pytest.raises(ConnectivityError) as exc:
            payment_service.record_payment(ahmad_sale.id, 500, "cash", actor="tests")
        assert exc.value.outcome_unknown is False
        monkeypatch.undo()

        assert db.session.query(Payment).count() == 0


class TestRunInTransaction:
    def test_conflict_is_retried(self, db_session):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("version mismatch")
            return "done"

        assert run_in_transaction(flaky, attempts=3, backoff_base=0) == "done"
        assert len(calls) == 3

    def test_conflict_surfaces_after_last_attempt(self, db_session):
        def always_stale():
            raise StaleDataError("version mismatch")

        with pytest.raises(ConcurrencyConflictError):
            run_in_transaction(always_stale, attempts=2, backoff_base=0)

    def test_other_errors_roll_back(self, make_product):
        product = make_product("Cup", stock=5)

        def half_done():
            db.session.get(type(product), product.id).reorder_point = 99
            db.session.flush()
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            run_in_transaction(half_done)

        db.session.refresh(product)
        assert product.reorder_point == 0


class TestCreditReadModel:
    def test_outstanding_summary(self, ahmad_sale, make_product):
        other = make_product("Cup", stock=5, unit_price_cents=100)
        sales_service.create_sale(
            items=[{"product_id": other.id, "qty_loose": 5}],
            actor="tests",
            customer_name="Siti",
            payment_method="hutang",
            created_at="2020-01-01T00:00:00Z",
        )

        summary = credit_service.outstanding_summary()

        assert summary["total_outstanding_cents"] == 2500
        assert summary["total_customers"] == 2
        assert summary["open_sales"] == 2
        assert summary["overdue_count"] == 1

    def test_filters_and_sorting(self, ahmad_sale, make_product):
        other = make_product("Cup", stock=5, unit_price_cents=100)
        old = sales_service.create_sale(
            items=[{"product_id": other.id, "qty_loose": 5}],
            actor="tests",
            customer_name="Siti",
            payment_method="hutang",
            created_at="2020-01-01T00:00:00Z",
        )

        assert [s.id for s in credit_service.list_credit_sales("overdue")] == [old.id]
        assert [s.id for s in credit_service.list_credit_sales("recent")] == [ahmad_sale.id]
        assert [s.customer_name for s in credit_service.list_credit_sales(sort="customer")] == ["Ahmad", "Siti"]
        assert [s.remaining_cents for s in credit_service.list_credit_sales(sort="amount")] == [2000, 500]

    def test_customer_statement_keeps_settled_credit_sales(self, ahmad_sale):
        payment_service.record_payment(ahmad_sale.id, 2000, "cash", actor="tests")

        statement = credit_service.customer_statement("Ahmad")

        assert statement["total_credit_cents"] == 5000
        assert statement["total_paid_cents"] == 5000
        assert statement["total_remaining_cents"] == 0
        assert len(statement["sales"]) == 1
        assert len(statement["payments"]) == 1
        assert credit_service.outstanding_summary()["open_sales"] == 0
