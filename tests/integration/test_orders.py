"""
Integration tests for the orders API.
"""

import pytest
import re
import threading
from datetime import datetime

from onam_api.models import Order, Counter
from onam_api.schemas import UPI_FIELDS_REQUIRED
from onam_api.services import order_number_service
from onam_api.services.email_service import get_transport

ORDER_NUMBER_PATTERN = re.compile(r'^ONAM-\d{8}-\d{4}$')


def auth_headers(account):
    return {'Authorization': f"Bearer {account['token']}"}


def today_prefix():
    return f"ONAM-{datetime.now().strftime('%Y%m%d')}-"


def create(client, payload):
    return client.post('/api/orders', json=payload)


class TestCreateOrder:
    """POST /api/orders"""

    def test_create_assigns_sequential_numbers(self, client, order_payload):
        first = create(client, order_payload())
        second = create(client, order_payload())

        assert first.status_code == 201
        body = first.get_json()
        assert body['success'] is True
        assert body['message'] == 'Order created successfully'
        assert body['whatsappLink'] == 'https://chat.whatsapp.com/onam-test'
        assert body['order']['orderNumber'] == today_prefix() + '0001'
        assert body['order']['status'] == 'pending'
        assert body['order']['totalAmount'] == 580.0

        assert second.status_code == 201
        assert second.get_json()['order']['orderNumber'] == today_prefix() + '0002'

    def test_confirmation_email_sent(self, app, client, order_payload):
        with app.app_context():
            with get_transport().mail.record_messages() as outbox:
                response = create(client, order_payload())

        assert response.status_code == 201
        assert len(outbox) == 1
        assert outbox[0].recipients == ['anjali.nair@example.com']
        assert response.get_json()['order']['orderNumber'] in outbox[0].subject

    def test_email_failure_does_not_fail_order(self, app, client, order_payload, monkeypatch):
        def failing_connect():
            raise ConnectionRefusedError('smtp down')

        with app.app_context():
            monkeypatch.setattr(get_transport().mail, 'connect', failing_connect)

        assert create(client, order_payload()).status_code == 201

    def test_total_mismatch_rejected(self, client, session, order_payload):
        response = create(client, order_payload(totalAmount=999))

        assert response.status_code == 400
        body = response.get_json()
        assert body['success'] is False
        assert body['message'] == 'Total amount mismatch'
        assert session.query(Order).count() == 0
        assert session.query(Counter).count() == 0

    def test_total_within_tolerance_accepted(self, client, order_payload):
        assert create(client, order_payload(totalAmount=580.005)).status_code == 201

    def test_upi_without_references_rejected(self, client, session, order_payload):
        response = create(client, order_payload(payment={'method': 'upi', 'upiId': 'anjali@okaxis'}))

        assert response.status_code == 400
        assert response.get_json()['message'] == UPI_FIELDS_REQUIRED
        assert session.query(Order).count() == 0

    def test_upi_with_references(self, client, order_payload):
        payment = {'method': 'upi', 'upiId': 'anjali@okaxis', 'transactionId': 'T2509111234'}
        response = create(client, order_payload(payment=payment))
        assert response.status_code == 201

        order_id = response.get_json()['order']['orderId']
        stored = client.get(f'/api/orders/{order_id}').get_json()['order']
        assert stored['payment'] == {'method': 'upi', 'upiId': 'anjali@okaxis', 'transactionId': 'T2509111234'}

    def test_field_errors_listed(self, client, order_payload):
        payload = order_payload()
        payload['studentInfo']['phone'] = '12345'
        response = create(client, payload)

        assert response.status_code == 400
        body = response.get_json()
        assert body['code'] == 'VALIDATION_ERROR'
        assert any(error['field'] == 'studentInfo.phone' for error in body['errors'])

    def test_non_json_body_rejected(self, client):
        response = client.post('/api/orders', data='not json', content_type='text/plain')
        assert response.status_code == 400

    def test_duplicate_order_number_is_conflict(self, client, order_payload, monkeypatch):
        class FixedAllocator:
            def allocate(self, now=None):
                return 'ONAM-20250911-0001'

        monkeypatch.setattr(order_number_service, 'allocator_for_engine', lambda engine: FixedAllocator())

        assert create(client, order_payload()).status_code == 201
        response = create(client, order_payload())

        assert response.status_code == 409
        body = response.get_json()
        assert body['code'] == 'DUPLICATE_ORDER_NUMBER'
        assert body['message'] == 'Duplicate order number. Please try again.'

    def test_database_down_is_503(self, client, order_payload, monkeypatch):
        monkeypatch.setattr('onam_api.database.is_database_available', lambda: False)
        response = create(client, order_payload())

        assert response.status_code == 503
        assert response.get_json()['code'] == 'STORAGE_UNAVAILABLE'


class TestConcurrentCreation:
    """Simultaneous POST /api/orders calls share one daily counter."""

    def test_parallel_orders_get_gapless_numbers(self, app, session, order_payload):
        workers = 8
        barrier = threading.Barrier(workers)
        responses = []
        errors = []
        lock = threading.Lock()

        def place_order():
            client = app.test_client()
            barrier.wait()
            try:
                response = create(client, order_payload())
            except Exception as e:
                errors.append(e)
                return
            with lock:
                responses.append((response.status_code, response.get_json()))

        threads = [threading.Thread(target=place_order) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert errors == []
        assert [status for status, _ in responses] == [201] * workers

        numbers = [body['order']['orderNumber'] for _, body in responses]
        assert all(number.startswith(today_prefix()) for number in numbers)
        assert sorted(int(number.rsplit('-', 1)[1]) for number in numbers) == list(range(1, workers + 1))
        assert session.query(Order).count() == workers


class TestOrderTotals:
    """Item totals must match totalAmount to within one paisa."""

    def single_item(self, order_payload, total_amount):
        items = [{'id': 'chips', 'name': 'Banana chips', 'quantity': 1, 'price': 1.00, 'total': 1.00}]
        return order_payload(orderItems=items, totalAmount=total_amount)

    def test_difference_of_exactly_one_paisa_accepted(self, client, order_payload):
        response = create(client, self.single_item(order_payload, 1.01))
        assert response.status_code == 201
        assert response.get_json()['order']['totalAmount'] == 1.01

    def test_difference_above_one_paisa_rejected(self, client, order_payload):
        response = create(client, self.single_item(order_payload, 1.02))
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Total amount mismatch'


class TestGetAndListOrders:
    """GET /api/orders and /api/orders/<id>"""

    def test_get_order_round_trip(self, client, order_payload):
        created = create(client, order_payload()).get_json()['order']
        response = client.get(f"/api/orders/{created['orderId']}")

        assert response.status_code == 200
        order = response.get_json()['order']
        assert order['orderNumber'] == created['orderNumber']
        assert order['status'] == 'pending'
        assert order['studentInfo']['email'] == 'anjali.nair@example.com'
        assert order['studentInfo']['hostel'] == 'Block A'
        assert [item['id'] for item in order['orderItems']] == ['sadya-veg', 'payasam']
        assert order['orderItems'][0]['total'] == 500.0
        assert order['notes'] == 'Vegetarian'

    def test_invalid_id(self, client):
        response = client.get('/api/orders/not-an-id')
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Invalid order ID format'

    def test_unknown_id(self, client):
        response = client.get('/api/orders/999999')
        assert response.status_code == 404
        assert response.get_json()['message'] == 'Order not found'

    def test_list_requires_a_filter(self, client):
        response = client.get('/api/orders')
        assert response.status_code == 400

    def test_list_by_email_newest_first(self, client, order_payload):
        first = create(client, order_payload()).get_json()['order']
        second = create(client, order_payload()).get_json()['order']
        other = order_payload()
        other['studentInfo']['email'] = 'someone.else@example.com'
        create(client, other)

        response = client.get('/api/orders', query_string={'email': 'ANJALI.NAIR@example.com'})

        assert response.status_code == 200
        body = response.get_json()
        assert body['count'] == 2
        assert [o['orderNumber'] for o in body['orders']] == [second['orderNumber'], first['orderNumber']]

    def test_list_by_student_id_with_limit(self, client, order_payload):
        for _ in range(3):
            create(client, order_payload())

        response = client.get('/api/orders', query_string={'studentId': 'MITADT2025001', 'limit': 2})
        assert response.get_json()['count'] == 2

    def test_list_by_unknown_status(self, client):
        response = client.get('/api/orders', query_string={'status': 'shipped'})
        assert response.status_code == 400

    def test_list_invalid_limit(self, client):
        response = client.get('/api/orders', query_string={'status': 'pending', 'limit': 'many'})
        assert response.status_code == 400


class TestUpdateStatus:
    """PATCH /api/orders/<id>/status"""

    @pytest.fixture
    def order_id(self, client, order_payload):
        return create(client, order_payload()).get_json()['order']['orderId']

    def test_requires_token(self, client, order_id):
        response = client.patch(f'/api/orders/{order_id}/status', json={'status': 'confirmed'})
        assert response.status_code == 401
        assert response.get_json()['code'] == 'AUTH_TOKEN_MISSING'

    def test_invalid_token(self, client, order_id):
        response = client.patch(
            f'/api/orders/{order_id}/status',
            json={'status': 'confirmed'},
            headers={'Authorization': 'Bearer not-a-token'},
        )
        assert response.status_code == 401
        assert response.get_json()['code'] == 'AUTH_TOKEN_INVALID'

    def test_requires_admin(self, client, order_id, user):
        response = client.patch(
            f'/api/orders/{order_id}/status', json={'status': 'confirmed'}, headers=auth_headers(user),
        )
        assert response.status_code == 403

    def test_admin_updates_status(self, client, order_id, admin):
        response = client.patch(
            f'/api/orders/{order_id}/status', json={'status': 'confirmed'}, headers=auth_headers(admin),
        )

        assert response.status_code == 200
        body = response.get_json()
        assert body['order']['status'] == 'confirmed'
        assert ORDER_NUMBER_PATTERN.match(body['order']['orderNumber'])
        assert client.get(f'/api/orders/{order_id}').get_json()['order']['status'] == 'confirmed'

    def test_invalid_status(self, client, order_id, admin):
        response = client.patch(
            f'/api/orders/{order_id}/status', json={'status': 'shipped'}, headers=auth_headers(admin),
        )
        assert response.status_code == 400
        assert response.get_json()['message'] == (
            'Invalid status. Must be one of: pending, confirmed, cancelled, completed'
        )

    def test_unknown_order(self, client, admin):
        response = client.patch('/api/orders/424242/status', json={'status': 'confirmed'}, headers=auth_headers(admin))
        assert response.status_code == 404


class TestRequestGuards:
    """Rate limiting and CSRF on order creation."""

    def test_order_rate_limit(self, app, client, order_payload, fake_redis, monkeypatch):
        limiter = app.extensions['rate_limiter']
        monkeypatch.setattr(limiter, '_enabled', True)
        monkeypatch.setattr(limiter, 'client', fake_redis)
        monkeypatch.setattr(limiter, '_limits', {
            'order': {'limit': 1, 'window': 900, 'message': 'Too many order requests.'},
        })

        first = create(client, order_payload())
        assert first.status_code == 201
        assert first.headers['RateLimit-Limit'] == '1'
        assert first.headers['RateLimit-Remaining'] == '0'

        second = create(client, order_payload())
        assert second.status_code == 429
        assert second.get_json()['message'] == 'Too many order requests.'
        assert second.get_json()['code'] == 'RATE_LIMITED'
        assert 'Retry-After' in second.headers

    def test_csrf_token_required_when_enabled(self, app, client, order_payload, monkeypatch):
        monkeypatch.setitem(app.config, 'WTF_CSRF_ENABLED', True)

        rejected = create(client, order_payload())
        assert rejected.status_code == 403
        assert rejected.get_json()['code'] == 'CSRF_TOKEN_INVALID'

        token = client.get('/api/csrf-token').get_json()['csrfToken']
        accepted = client.post('/api/orders', json=order_payload(), headers={'X-CSRF-Token': token})
        assert accepted.status_code == 201
