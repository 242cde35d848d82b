"""
Mercado Pago client: PIX payments, checkout preferences for cards and the
lookups the webhook needs.
"""
import os
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Optional, Tuple

import requests

from chalicelib.constants.constants import PIX_EXPIRATION_MINUTES, DEFAULT_PAYER_EMAIL
from chalicelib.utils import exceptions
from chalicelib.utils.logger import logger
from chalicelib.utils.mapbox import http_timeout

BASE_URL = 'https://api.mercadopago.com'


def access_token() -> str:
    token = os.environ.get('MERCADO_PAGO_ACCESS_TOKEN')
    if not token:
        raise exceptions.ServiceNotConfigured('MERCADO_PAGO_ACCESS_TOKEN is not set')
    return token


def _headers(**extra) -> Dict[str, str]:
    return {'Authorization': f'Bearer {access_token()}', 'Content-Type': 'application/json', **extra}


def _request(method: str, path: str, **kwargs) -> Dict:
    try:
        response = requests.request(method, f'{BASE_URL}{path}', timeout=http_timeout(), **kwargs)
        data = response.json()
    except (requests.RequestException, ValueError) as error:
        raise exceptions.PaymentServiceError(f'Mercado Pago request {method} {path} failed: {error}')
    if not response.ok:
        logger.error(f"_request ::: {method} {path} answered {response.status_code}: {data}")
        raise exceptions.PaymentServiceError(
            f"Mercado Pago error {response.status_code}: {data.get('message') or data.get('error')}")
    return data


def create_pix_payment(order_id: str, amount: Decimal, description: str, payer_email: str = None,
                       now: datetime = None) -> Dict:
    expiration = (now or datetime.now(timezone.utc)) + timedelta(minutes=PIX_EXPIRATION_MINUTES)
    payload = {
        'transaction_amount': float(amount),
        'description': description,
        'payment_method_id': 'pix',
        'date_of_expiration': expiration.isoformat(timespec='milliseconds'),
        'payer': {'email': payer_email or DEFAULT_PAYER_EMAIL},
        'external_reference': order_id,
    }
    data = _request('POST', '/v1/payments', json=payload,
                    headers=_headers(**{'X-Idempotency-Key': f'{order_id}-{int(time.time() * 1000)}'}))
    transaction_data = (data.get('point_of_interaction') or {}).get('transaction_data') or {}
    logger.info(f"create_pix_payment ::: payment={data.get('id')} created for order={order_id}")
    return {
        'payment_id': str(data.get('id')),
        'status': data.get('status'),
        'qr_code': transaction_data.get('qr_code'),
        'qr_code_base64': transaction_data.get('qr_code_base64'),
        'expiration_date': data.get('date_of_expiration'),
    }


def create_checkout_preference(order_id: str, amount: Decimal, description: str, payer_email: str = None,
                               back_url: str = None, notification_url: str = None) -> Dict:
    payload = {
        'items': [{
            'title': description,
            'quantity': 1,
            'unit_price': float(amount),
            'currency_id': 'BRL',
        }],
        'payer': {'email': payer_email or DEFAULT_PAYER_EMAIL},
        'external_reference': order_id,
    }
    if back_url:
        payload['back_urls'] = {result: f'{back_url}?payment={result}' for result in ('success', 'failure', 'pending')}
        payload['auto_return'] = 'approved'
    if notification_url:
        payload['notification_url'] = notification_url
    data = _request('POST', '/checkout/preferences', json=payload, headers=_headers())
    logger.info(f"create_checkout_preference ::: preference={data.get('id')} created for order={order_id}")
    return {
        'preference_id': data.get('id'),
        'checkout_url': data.get('init_point'),
        'sandbox_checkout_url': data.get('sandbox_init_point'),
    }


def get_payment(payment_id) -> Dict:
    return _request('GET', f'/v1/payments/{payment_id}', headers=_headers())


def get_merchant_order(merchant_order_id) -> Dict:
    return _request('GET', f'/merchant_orders/{merchant_order_id}', headers=_headers())


def map_payment_status(status: str) -> Tuple[str, Optional[str]]:
    """
    Gateway status -> (payment_status, order status to move to)
    """
    if status == 'approved':
        return 'approved', 'confirmed'
    if status in ('pending', 'in_process'):
        return 'pending', None
    return status, None
