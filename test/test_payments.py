from datetime import datetime, timezone
from decimal import Decimal

import pytest

from chalicelib.utils import exceptions, mercadopago
from test.utils.fixtures import create_test_menu
from test.utils.request_utils import make_request, body_of, admin_token, client_token, kitchen_token, \
    id_other_client

PIX_PAYMENT = {
    'payment_id': '987654',
    'status': 'pending',
    'qr_code': '00020126580014br.gov.bcb.pix',
    'qr_code_base64': 'aVZCT1J3MEtHZ28=',
    'expiration_date': '2026-10-19T12:05:00.000-03:00'
}


class FakeResponse:
    def __init__(self, data, status_code=200):
        self.data = data
        self.status_code = status_code
        self.ok = status_code < 400

    def json(self):
        return self.data


@pytest.fixture
def online_order(chalice_gateway):
    menu = create_test_menu(chalice_gateway)
    response = make_request(chalice_gateway, endpoint='/orders', method='POST', token=client_token(), json_body={
        'order_type': 'pickup',
        'customer_name': 'Maria',
        'customer_phone': '+5511999990000',
        'payment_method': 'pix',
        'items': [{'product_id': menu['burger'], 'quantity': 2}]
    })
    assert response['statusCode'] == 201, response['body']
    return body_of(response)


@pytest.fixture
def gateway_calls(monkeypatch):
    calls = []

    def create_pix_payment(order_id, amount, description, payer_email=None):
        calls.append(('pix', order_id, amount, description, payer_email))
        return dict(PIX_PAYMENT)

    def create_checkout_preference(order_id, amount, description, payer_email=None, back_url=None,
                                   notification_url=None):
        calls.append(('card', order_id, amount, notification_url))
        return {'preference_id': 'pref-1', 'checkout_url': 'https://mp.example/checkout/pref-1',
                'sandbox_checkout_url': None}

    monkeypatch.setattr(mercadopago, 'create_pix_payment', create_pix_payment)
    monkeypatch.setattr(mercadopago, 'create_checkout_preference', create_checkout_preference)
    return calls


def start_payment(chalice_gateway, order_id, payment_type, token=None):
    return make_request(chalice_gateway, endpoint='/payments', method='POST', token=token or client_token(),
                        json_body={'order_id': order_id, 'payment_type': payment_type})


def get_order(chalice_gateway, order_id):
    return body_of(make_request(chalice_gateway, endpoint=f'/orders/{order_id}', token=admin_token()))


@pytest.mark.parametrize('status, expected', [
    ('approved', ('approved', 'confirmed')),
    ('pending', ('pending', None)),
    ('in_process', ('pending', None)),
    ('rejected', ('rejected', None)),
    ('cancelled', ('cancelled', None))
])
def test_map_payment_status(status, expected):
    assert mercadopago.map_payment_status(status) == expected


def test_pix_payment_request(monkeypatch):
    monkeypatch.setenv('MERCADO_PAGO_ACCESS_TOKEN', 'mp-token')
    sent = {}

    def request(method, url, timeout=None, **kwargs):
        sent.update(method=method, url=url, timeout=timeout, **kwargs)
        return FakeResponse({
            'id': 987654,
            'status': 'pending',
            'date_of_expiration': '2026-01-01T12:05:00.000+00:00',
            'point_of_interaction': {'transaction_data': {'qr_code': 'pix-code', 'qr_code_base64': 'cXI='}}
        }, status_code=201)

    monkeypatch.setattr(mercadopago.requests, 'request', request)
    result = mercadopago.create_pix_payment('order-1', Decimal('51.80'), 'Pedido #1',
                                            now=datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))
    assert result == {'payment_id': '987654', 'status': 'pending', 'qr_code': 'pix-code',
                      'qr_code_base64': 'cXI=', 'expiration_date': '2026-01-01T12:05:00.000+00:00'}
    assert sent['method'] == 'POST'
    assert sent['url'] == 'https://api.mercadopago.com/v1/payments'
    assert sent['timeout'] == 5.0
    assert sent['headers']['Authorization'] == 'Bearer mp-token'
    assert sent['headers']['X-Idempotency-Key'].startswith('order-1-')
    assert sent['json']['transaction_amount'] == 51.8
    assert sent['json']['payment_method_id'] == 'pix'
    assert sent['json']['external_reference'] == 'order-1'
    assert sent['json']['date_of_expiration'] == '2026-01-01T12:05:00.000+00:00'
    assert sent['json']['payer'] == {'email': 'cliente@delivery.com'}


def test_gateway_error(monkeypatch):
    monkeypatch.setenv('MERCADO_PAGO_ACCESS_TOKEN', 'mp-token')
    monkeypatch.setattr(mercadopago.requests, 'request',
                        lambda *args, **kwargs: FakeResponse({'message': 'invalid token'}, status_code=401))
    with pytest.raises(exceptions.PaymentServiceError):
        mercadopago.get_payment('1')


def test_gateway_not_configured():
    with pytest.raises(exceptions.ServiceNotConfigured):
        mercadopago.get_payment('1')


def test_start_pix_payment(chalice_gateway, online_order, gateway_calls):
    response = start_payment(chalice_gateway, online_order['id'], 'pix')
    assert response['statusCode'] == 201, response['body']
    body = body_of(response)
    assert body['success'] is True
    assert body['order_id'] == online_order['id']
    assert body['qr_code'] == PIX_PAYMENT['qr_code']
    assert gateway_calls == [('pix', online_order['id'], Decimal('51.80'), 'Pedido #1', None)]

    order = get_order(chalice_gateway, online_order['id'])
    assert order['status'] == 'waiting_payment'
    assert order['payment_status'] == 'pending'
    assert order['payment_id'] == '987654'
    assert order['payment_details']['type'] == 'pix'


def test_start_card_payment(chalice_gateway, online_order, gateway_calls):
    response = start_payment(chalice_gateway, online_order['id'], 'card')
    assert response['statusCode'] == 201, response['body']
    assert body_of(response)['checkout_url'] == 'https://mp.example/checkout/pref-1'
    assert gateway_calls == [('card', online_order['id'], Decimal('51.80'),
                              'https://test-domain.com/payments/webhook')]
    assert get_order(chalice_gateway, online_order['id'])['payment_details'] == {
        'type': 'card', 'preference_id': 'pref-1', 'checkout_url': 'https://mp.example/checkout/pref-1'}


def test_payment_of_somebody_elses_order(chalice_gateway, online_order, gateway_calls):
    response = start_payment(chalice_gateway, online_order['id'], 'pix', token=client_token(id_other_client))
    assert response['statusCode'] == 404
    assert gateway_calls == []


@pytest.mark.parametrize('body', [
    {'payment_type': 'pix'},
    {'order_id': 'any'},
    {'order_id': 'any', 'payment_type': 'boleto'}
])
def test_invalid_payment_request(chalice_gateway, body):
    response = make_request(chalice_gateway, endpoint='/payments', method='POST', json_body=body,
                            token=client_token())
    assert response['statusCode'] == 400


def test_payment_for_order_not_waiting(chalice_gateway, online_order, gateway_calls):
    assert make_request(chalice_gateway, endpoint=f"/orders/{online_order['id']}/cancel", method='POST',
                        token=client_token())['statusCode'] == 200
    response = start_payment(chalice_gateway, online_order['id'], 'pix')
    assert response['statusCode'] == 409
    assert gateway_calls == []


def test_payment_without_gateway_credentials(chalice_gateway, online_order):
    response = start_payment(chalice_gateway, online_order['id'], 'pix')
    assert response['statusCode'] == 500
    assert body_of(response)['exception'] == 'ServiceNotConfigured'


def test_staff_can_not_start_payments(chalice_gateway, online_order):
    assert start_payment(chalice_gateway, online_order['id'], 'pix', token=kitchen_token())['statusCode'] == 403


def test_webhook_approves_payment(chalice_gateway, online_order, monkeypatch):
    monkeypatch.setattr(mercadopago, 'get_payment', lambda payment_id: {
        'id': int(payment_id), 'status': 'approved', 'external_reference': online_order['id']})
    response = make_request(chalice_gateway, endpoint='/payments/webhook', method='POST',
                            json_body={'type': 'payment', 'action': 'payment.updated', 'data': {'id': '123'}})
    assert response['statusCode'] == 200
    assert body_of(response) == {'received': True}

    order = get_order(chalice_gateway, online_order['id'])
    assert order['status'] == 'confirmed'
    assert order['payment_status'] == 'approved'
    assert order['payment_id'] == '123'
    assert order['history'][-1]['status'] == 'confirmed'
    assert order['history'][-1]['by'] == 'system'


def test_webhook_pending_payment_keeps_order_waiting(chalice_gateway, online_order, monkeypatch):
    monkeypatch.setattr(mercadopago, 'get_payment', lambda payment_id: {
        'id': 124, 'status': 'in_process', 'external_reference': online_order['id']})
    make_request(chalice_gateway, endpoint='/payments/webhook', method='POST',
                 json_body={'type': 'payment', 'data': {'id': '124'}})
    order = get_order(chalice_gateway, online_order['id'])
    assert order['status'] == 'waiting_payment'
    assert order['payment_status'] == 'pending'


def test_webhook_merchant_order(chalice_gateway, online_order, monkeypatch):
    monkeypatch.setattr(mercadopago, 'get_merchant_order', lambda merchant_order_id: {
        'id': int(merchant_order_id),
        'external_reference': online_order['id'],
        'payments': [{'id': 55, 'status': 'rejected'}, {'id': 56, 'status': 'approved'}]
    })
    response = make_request(chalice_gateway, endpoint='/payments/webhook', method='POST',
                            query='topic=merchant_order&id=777')
    assert response['statusCode'] == 200
    order = get_order(chalice_gateway, online_order['id'])
    assert order['status'] == 'confirmed'
    assert order['payment_id'] == '56'


def test_webhook_answers_ok_on_failures(chalice_gateway, online_order):
    response = make_request(chalice_gateway, endpoint='/payments/webhook', method='POST',
                            json_body={'type': 'payment', 'data': {'id': '125'}})
    assert response['statusCode'] == 200
    assert get_order(chalice_gateway, online_order['id'])['status'] == 'waiting_payment'


def test_webhook_ignores_other_notifications(chalice_gateway, online_order):
    response = make_request(chalice_gateway, endpoint='/payments/webhook', method='POST',
                            json_body={'type': 'plan', 'data': {'id': '1'}})
    assert response['statusCode'] == 200


def test_webhook_rejected_payment_keeps_order_waiting(chalice_gateway, online_order, monkeypatch):
    monkeypatch.setattr(mercadopago, 'get_payment', lambda payment_id: {
        'id': 126, 'status': 'rejected', 'external_reference': online_order['id']})
    make_request(chalice_gateway, endpoint='/payments/webhook', method='POST',
                 json_body={'type': 'payment', 'data': {'id': '126'}})
    order = get_order(chalice_gateway, online_order['id'])
    assert order['status'] == 'waiting_payment'
    assert order['payment_status'] == 'rejected'


def test_late_approval_does_not_reopen_cancelled_order(chalice_gateway, online_order, monkeypatch):
    make_request(chalice_gateway, endpoint=f"/orders/{online_order['id']}/cancel", method='POST',
                 token=client_token())
    monkeypatch.setattr(mercadopago, 'get_payment', lambda payment_id: {
        'id': 127, 'status': 'approved', 'external_reference': online_order['id']})
    make_request(chalice_gateway, endpoint='/payments/webhook', method='POST',
                 json_body={'type': 'payment', 'data': {'id': '127'}})
    order = get_order(chalice_gateway, online_order['id'])
    assert order['status'] == 'cancelled'
    assert order['payment_status'] == 'approved'
