from typing import Dict

from chalice import Response

from chalicelib.constants.status_codes import http200, http201
from chalicelib.orders import Order
from chalicelib.utils import auth as utils_auth, data as utils_data, app as utils_app, exceptions, mercadopago
from chalicelib.utils.logger import logger, log_exception, set_request_id

PAYMENT_TYPES = ('pix', 'card')


@utils_app.request_exception_handler
@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_create_payment(request) -> Response:
    """
    Starts the online payment of an order waiting for it.
    The amount always comes from the stored order total.
    """
    auth_result = request.auth_result
    body = utils_data.parse_raw_body(request)
    if not body.get('order_id') or not body.get('payment_type'):
        raise exceptions.MandatoryFieldsAreNotFilled('order_id and payment_type are required')
    if body['payment_type'] not in PAYMENT_TYPES:
        raise exceptions.ValidationException(f'payment_type must be one of {PAYMENT_TYPES}')

    order = Order.init_get_by_id(auth_result['company_id'], body['order_id'])
    if auth_result['role'] != 'admin' and order.user_id != auth_result['user_id']:
        raise exceptions.OrderNotFound(f"Order {body['order_id']} not found")
    if order.status_ != 'waiting_payment':
        raise exceptions.InvalidStatusTransition(f'Order {order.order_number} is not waiting for a payment')
    order.request_data = {'auth_result': auth_result}

    description = body.get('description') or f'Pedido #{order.order_number}'
    if body['payment_type'] == 'pix':
        result = mercadopago.create_pix_payment(order.id_, order.total, description, body.get('customer_email'))
        order.payment_id = result['payment_id']
        order.payment_details = {'type': 'pix', 'qr_code': result['qr_code'],
                                 'expiration_date': result['expiration_date']}
    else:
        host = request.headers.get('host', '')
        result = mercadopago.create_checkout_preference(
            order.id_, order.total, description, body.get('customer_email'),
            back_url=request.headers.get('origin'),
            notification_url=f'https://{host}/payments/webhook' if host else None
        )
        order.payment_details = {'type': 'card', 'preference_id': result['preference_id'],
                                 'checkout_url': result['checkout_url']}
    order.payment_status = 'pending'
    order._update_db_record()
    return Response(status_code=http201, body={'success': True, 'order_id': order.id_, **result})


def _apply_payment(company_id, payment: Dict):
    order_id = payment.get('external_reference')
    if not order_id:
        logger.info('_apply_payment ::: payment without external_reference, skipping')
        return
    payment_status, order_status = mercadopago.map_payment_status(payment.get('status'))
    order = Order.init_get_by_id(company_id, order_id)
    order.apply_payment_status(payment_status, order_status, payment.get('id'))
    logger.info(f"_apply_payment ::: order={order_id} payment_status={payment_status} status={order.status_}")


def process_notification(company_id, notification: Dict):
    notification_type = notification.get('type') or notification.get('topic')
    action = notification.get('action') or ''
    resource_id = (notification.get('data') or {}).get('id') or notification.get('id')
    if notification_type == 'payment' or action.startswith('payment.'):
        if not resource_id:
            logger.info('process_notification ::: payment notification without id')
            return
        _apply_payment(company_id, mercadopago.get_payment(resource_id))
    elif notification_type == 'merchant_order':
        if not resource_id:
            return
        merchant_order = mercadopago.get_merchant_order(resource_id)
        approved = [payment for payment in merchant_order.get('payments') or [] if payment.get('status') == 'approved']
        if approved and merchant_order.get('external_reference'):
            _apply_payment(company_id, {**approved[0], 'external_reference': merchant_order['external_reference']})
    else:
        logger.info(f"process_notification ::: ignoring notification {notification_type=} {action=}")


def endpoint_webhook(request) -> Response:
    """
    Always answers 200, otherwise the gateway keeps retrying the notification
    """
    set_request_id(request)
    try:
        body = {**(request.query_params or {}), **utils_data.parse_raw_body(request)}
        logger.info(f"endpoint_webhook ::: notification={body}")
        process_notification(utils_auth.get_company_id_by_request(request), body)
    except Exception as error:
        log_exception(error, status_code=http200, msg='endpoint_webhook ::: notification was not processed')
    return Response(status_code=http200, body={'received': True})
