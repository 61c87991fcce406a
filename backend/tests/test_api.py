# Overview: Pytest coverage for the HTTP API; authentication, roles, and the main ledger flows.

"""
API Tests

Exercises the JSON endpoints end to end through the Flask test client:
authentication and role checks, the credit sale / repayment flow with
decimal amounts, error bodies, and the read-only credit view.
"""

import pytest

from mypackaging.extensions import db
from mypackaging.models import Payment

from conftest import PASSWORD, auth_headers, get_auth_token


@pytest.fixture
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, staff_user.email))


@pytest.fixture
def manager_headers(client, manager_user):
    return auth_headers(get_auth_token(client, manager_user.email))


@pytest.fixture
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.email))


class TestAuth:
    def test_login_and_me(self, client, staff_user):
        token = get_auth_token(client, staff_user.email)
        assert token

        response = client.get('/api/auth/me', headers=auth_headers(token))
        assert response.status_code == 200
        assert response.json['user']['email'] == "staff@shop.local"
        assert response.json['user']['role'] == "staff"

    def test_bad_credentials(self, client, staff_user):
        response = client.post('/api/auth/login', json={'email': staff_user.email, 'password': 'wrong'})
        assert response.status_code == 401

        response = client.post('/api/auth/login', json={'email': staff_user.email})
        assert response.status_code == 400

    def test_missing_or_bad_token(self, client, db_session):
        assert client.get('/api/sales/').status_code == 401
        assert client.get('/api/sales/', headers=auth_headers("not-a-token")).status_code == 401

    def test_logout_revokes_token(self, client, staff_user):
        headers = auth_headers(get_auth_token(client, staff_user.email))

        assert client.post('/api/auth/logout', headers=headers).status_code == 200
        assert client.get('/api/auth/me', headers=headers).status_code == 401

    def test_only_admin_creates_users(self, client, staff_headers, admin_headers):
        body = {'email': 'new@shop.local', 'password': PASSWORD, 'role': 'staff'}

        assert client.post('/api/auth/users', json=body, headers=staff_headers).status_code == 403

        response = client.post('/api/auth/users', json=body, headers=admin_headers)
        assert response.status_code == 201
        assert response.json['user']['email'] == 'new@shop.local'

        weak = {'email': 'weak@shop.local', 'password': 'short'}
        assert client.post('/api/auth/users', json=weak, headers=admin_headers).status_code == 400


class TestHealth:
    def test_health(self, client, db_session):
        response = client.get('/api/health')
        assert response.status_code == 200
        assert response.json['database']['status'] == 'healthy'


class TestProductsApi:
    def test_manager_creates_product_with_decimal_price(self, client, manager_headers, staff_headers):
        body = {'name': 'Box 10x10', 'unit_price': '5.00', 'opening_stock': 10, 'reorder_point': 2}

        assert client.post('/api/products/', json=body, headers=staff_headers).status_code == 403

        response = client.post('/api/products/', json=body, headers=manager_headers)
        assert response.status_code == 201
        product = response.json['product']
        assert product['unit_price_cents'] == 500
        assert product['unit_price'] == '5.00'
        assert product['stock_balance'] == 10

        movements = client.get(f"/api/products/{product['id']}/movements", headers=staff_headers)
        assert movements.json['count'] == 1

    def test_unknown_product(self, client, staff_headers):
        response = client.get('/api/products/999', headers=staff_headers)
        assert response.status_code == 404
        assert response.json['code'] == 'NOT_FOUND'


class TestSaleAndRepaymentFlow:
    def test_credit_sale_then_repayment(self, client, make_product, staff_headers):
        product = make_product("Box 10x10", stock=10, unit_price_cents=500)

        response = client.post('/api/sales/', json={
            'customer_name': 'Ahmad',
            'items': [
                {'product_id': product.id, 'qty_loose': 4},
                {'product_id': product.id, 'qty_loose': 6},
            ],
            'payment_method': 'hutang',
            'paid_amount': '30.00',
        }, headers=staff_headers)
        assert response.status_code == 201
        sale = response.json['sale']
        assert sale['status'] == 'Hutang'
        assert sale['total'] == '50.00'
        assert sale['remaining'] == '20.00'

        stock = client.get(f'/api/products/{product.id}', headers=staff_headers).json['product']
        assert stock['stock_balance'] == 0

        headers = dict(staff_headers, **{'Idempotency-Key': 'pay-ahmad-1'})
        body = {'sale_id': sale['id'], 'amount': '20.00', 'method': 'cash', 'expected_remaining': '20.00'}
        paid = client.post('/api/payments/', json=body, headers=headers)
        assert paid.status_code == 201
        assert paid.json['sale']['status'] == 'Paid'
        assert paid.json['sale']['remaining_cents'] == 0
        assert [p['amount'] for p in paid.json['sale']['payments']] == ['20.00']

        # Lost response: the client re-sends the same request.
        replay = client.post('/api/payments/', json=body, headers=headers)
        assert replay.status_code == 201
        assert db.session.query(Payment).count() == 1

        history = client.get(f"/api/sales/{sale['id']}/payments", headers=staff_headers)
        assert history.json['items'][0]['amount_cents'] == 2000

    def test_insufficient_stock_response(self, client, make_product, staff_headers):
        product = make_product("Box 10x10", stock=10)

        response = client.post('/api/sales/', json={
            'items': [{'product_id': product.id, 'qty_loose': 15}],
            'payment_method': 'cash',
            'paid_amount': '75.00',
        }, headers=staff_headers)

        assert response.status_code == 409
        assert response.json['code'] == 'INSUFFICIENT_STOCK'
        assert response.json['details']['available'] == 10
        assert response.json['details']['required'] == 15

    def test_credit_sale_without_customer(self, client, make_product, staff_headers):
        product = make_product("Box 10x10", stock=10)

        response = client.post('/api/sales/', json={
            'items': [{'product_id': product.id, 'qty_loose': 1}],
            'payment_method': 'hutang',
        }, headers=staff_headers)

        assert response.status_code == 400
        assert 'Customer name' in response.json['error']

    def test_amount_cents_must_be_integer(self, client, make_product, staff_headers):
        product = make_product("Box 10x10", stock=10)

        response = client.post('/api/sales/', json={
            'items': [{'product_id': product.id, 'qty_loose': 1}],
            'payment_method': 'cash',
            'paid_amount_cents': 5.5,
        }, headers=staff_headers)

        assert response.status_code == 400

    def test_stale_expected_balance_is_409(self, client, make_product, staff_headers):
        product = make_product("Box 10x10", stock=10, unit_price_cents=500)
        sale = client.post('/api/sales/', json={
            'customer_name': 'Ahmad',
            'items': [{'product_id': product.id, 'qty_loose': 2}],
            'payment_method': 'hutang',
        }, headers=staff_headers).json['sale']

        response = client.post('/api/payments/', json={
            'sale_id': sale['id'], 'amount_cents': 100, 'expected_remaining_cents': 999,
        }, headers=staff_headers)

        assert response.status_code == 409
        assert response.json['code'] == 'CONCURRENCY_CONFLICT'

    def test_delete_sale_needs_admin_and_password(self, client, make_product, manager_headers, admin_headers):
        product = make_product("Box 10x10", stock=10)
        sale = client.post('/api/sales/', json={
            'items': [{'product_id': product.id, 'qty_loose': 3}],
            'payment_method': 'cash',
            'paid_amount': '15.00',
        }, headers=manager_headers).json['sale']

        assert client.delete(f"/api/sales/{sale['id']}", json={'password': PASSWORD}, headers=manager_headers).status_code == 403
        assert client.delete(f"/api/sales/{sale['id']}", json={'password': 'bad'}, headers=admin_headers).status_code == 403

        response = client.delete(f"/api/sales/{sale['id']}", json={'password': PASSWORD}, headers=admin_headers)
        assert response.status_code == 200
        stock = client.get(f'/api/products/{product.id}', headers=admin_headers).json['product']
        assert stock['stock_balance'] == 10


class TestCreditApi:
    def test_summary_and_statement(self, client, make_product, staff_headers):
        product = make_product("Box 10x10", stock=10, unit_price_cents=500)
        client.post('/api/sales/', json={
            'customer_name': 'Ahmad',
            'items': [{'product_id': product.id, 'qty_loose': 10}],
            'payment_breakdown': {'cash': '30.00', 'hutang': '20.00'},
        }, headers=staff_headers)

        summary = client.get('/api/credit/summary', headers=staff_headers).json
        assert summary['total_outstanding_cents'] == 2000
        assert summary['total_customers'] == 1

        listing = client.get('/api/credit/sales?filter=recent&sort=amount', headers=staff_headers).json
        assert listing['count'] == 1
        assert listing['items'][0]['is_overdue'] is False

        statement = client.get('/api/credit/customers/Ahmad', headers=staff_headers).json
        assert statement['total_remaining_cents'] == 2000

        bad = client.get('/api/credit/sales?filter=someday', headers=staff_headers)
        assert bad.status_code == 400


class TestPurchaseAndStockApi:
    def test_purchase_receipt_flow(self, client, make_product, manager_headers):
        product = make_product("Cup", stock=0)

        created = client.post('/api/purchases/', json={
            'supplier_name': 'Supplier',
            'items': [{'product_id': product.id, 'ordered_qty': 10, 'cost': '1.00'}],
        }, headers=manager_headers)
        assert created.status_code == 201
        purchase = created.json['purchase']
        assert purchase['status_label'] == 'Ordered'
        item_id = purchase['items'][0]['id']

        partial = client.post(f"/api/purchases/{purchase['id']}/status", json={
            'status': 'Received Partial',
            'received_quantities': [{'item_id': item_id, 'received_qty': 3}],
        }, headers=manager_headers)
        assert partial.status_code == 200
        assert partial.json['purchase']['status'] == 'RECEIVED_PARTIAL'

        received = client.post(f"/api/purchases/{purchase['id']}/status", json={'status': 'Received'}, headers=manager_headers)
        assert received.status_code == 200

        stock = client.get(f'/api/products/{product.id}', headers=manager_headers).json['product']
        assert stock['stock_balance'] == 10

        bad = client.post(f"/api/purchases/{purchase['id']}/status", json={'status': 'Cancelled'}, headers=manager_headers)
        assert bad.status_code == 400

    def test_non_numeric_received_key_is_400(self, client, make_product, manager_headers):
        product = make_product("Cup", stock=0)
        created = client.post('/api/purchases/', json={
            'supplier_name': 'Supplier',
            'items': [{'product_id': product.id, 'ordered_qty': 10, 'cost': '1.00'}],
        }, headers=manager_headers)
        purchase_id = created.json['purchase']['id']

        response = client.post(f"/api/purchases/{purchase_id}/status", json={
            'status': 'Received Partial',
            'received_quantities': {'first': 3},
        }, headers=manager_headers)

        assert response.status_code == 400
        stock = client.get(f'/api/products/{product.id}', headers=manager_headers).json['product']
        assert stock['stock_balance'] == 0

    def test_stock_audit_is_admin_only(self, client, make_product, manager_headers, admin_headers):
        product = make_product("Cup", stock=10)
        body = {'product_id': product.id, 'actual_stock': 8, 'reason': 'Count', 'password': PASSWORD}

        assert client.post('/api/stock/audits', json=body, headers=manager_headers).status_code == 403

        response = client.post('/api/stock/audits', json=body, headers=admin_headers)
        assert response.status_code == 201
        assert response.json['audit']['difference'] == -2

    def test_low_stock_and_audit_log(self, client, make_product, manager_headers):
        make_product("Cup", stock=1, reorder_point=5)

        low = client.get('/api/stock/low', headers=manager_headers).json
        assert [p['name'] for p in low['items']] == ['Cup']

        logs = client.get('/api/audit-logs/?action=product_created', headers=manager_headers).json
        assert logs['count'] == 1
