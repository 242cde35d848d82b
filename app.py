from chalice import Chalice, Rate, Response

from chalicelib import auth, delivery, eta, geocoding, orders, payments
from chalicelib.cash_registers import CashRegister
from chalicelib.delivery_zones import DeliveryZone
from chalicelib.establishments import Establishment
from chalicelib.products import Product
from chalicelib.utils.app import request_exception_handler
from chalicelib.utils.logger import logger

app = Chalice(app_name='deliveryos-functions')

app.debug = False


@app.authorizer()
def role_authorizer(auth_request):
    return auth.role_authorizer(auth_request)


@app.route('/health-check', methods=['GET'], cors=True)
def health_check():
    return Response(status_code=200, body={'status': 'ok'})


# DELIVERY LOGISTICS
@app.route('/delivery-fee', methods=['POST'], cors=True)
def calculate_delivery_fee():
    return delivery.endpoint_calculate_delivery_fee(app.current_request)


@app.route('/eta', methods=['POST'], cors=True)
def calculate_eta():
    return eta.endpoint_calculate_eta(app.current_request)


@app.route('/geocode', methods=['GET'], cors=True)
def geocode_address():
    return geocoding.endpoint_geocode(app.current_request)


@app.route('/cep/{cep}', methods=['GET'], cors=True)
def lookup_cep(cep):
    return geocoding.endpoint_lookup_cep(app.current_request, cep)


# ESTABLISHMENT
@app.route('/establishment', methods=['GET'], cors=True)
@request_exception_handler
def get_establishment():
    return Establishment.init_request_get(app.current_request).endpoint_get()


@app.route('/establishment', methods=['PUT'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def update_establishment():
    """
    admin operation
    """
    return Establishment.init_request_update(app.current_request).endpoint_update()


# DELIVERY ZONES
@app.route('/delivery-zones', methods=['GET'], cors=True)
def get_delivery_zones():
    """
    active zones for everybody, ?all=true with an admin token lists the inactive ones too
    """
    return DeliveryZone.endpoint_get_all(app.current_request)


@app.route('/delivery-zones', methods=['POST'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def create_delivery_zone():
    """
    admin operation
    """
    return DeliveryZone.init_request_create(app.current_request).endpoint_create()


@app.route('/delivery-zones/{zone_id}', methods=['PUT'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def update_delivery_zone(zone_id):
    """
    admin operation
    """
    return DeliveryZone.init_request_update(app.current_request, zone_id).endpoint_update()


@app.route('/delivery-zones/{zone_id}/toggle', methods=['POST'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def toggle_delivery_zone(zone_id):
    """
    admin operation
    """
    return DeliveryZone.init_request_admin(app.current_request, zone_id).endpoint_toggle()


@app.route('/delivery-zones/{zone_id}', methods=['DELETE'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def delete_delivery_zone(zone_id):
    """
    admin operation
    """
    return DeliveryZone.init_request_admin(app.current_request, zone_id).endpoint_delete()


# PRODUCTS
@app.route('/products', methods=['GET'], cors=True)
def get_products():
    return Product.endpoint_get_all(app.current_request)


@app.route('/products', methods=['POST'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def create_product():
    """
    admin operation
    """
    return Product.init_request_create(app.current_request).endpoint_create()


@app.route('/products/{product_id}', methods=['PUT'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def update_product(product_id):
    """
    admin operation
    """
    return Product.init_request_update(app.current_request, product_id).endpoint_update()


@app.route('/products/{product_id}', methods=['DELETE'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def archive_product(product_id):
    """
    admin operation
    """
    return Product.init_request_archive(app.current_request, product_id).endpoint_archive()


# ORDERS
@app.route('/orders', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_orders():
    """
    client gets his own orders
    staff gets all orders of the establishment
    """
    return orders.endpoint_get_orders(app.current_request)


@app.route('/orders', methods=['POST'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def create_order():
    return orders.Order.init_request_create(app.current_request).endpoint_create()


@app.route('/orders/{order_id}', methods=['GET'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def get_order_by_id(order_id):
    return orders.Order.init_request_get(app.current_request, order_id).endpoint_get_by_id()


@app.route('/orders/{order_id}/advance', methods=['POST'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def advance_order(order_id):
    """
    staff operation, ?flow=kitchen uses the kitchen flow
    """
    return orders.Order.init_request_get(app.current_request, order_id).endpoint_advance()


@app.route('/orders/{order_id}/cancel', methods=['POST'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def cancel_order(order_id):
    return orders.Order.init_request_get(app.current_request, order_id).endpoint_cancel()


@app.route('/orders/{order_id}', methods=['DELETE'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def delete_order(order_id):
    """
    admin operation, cancelled orders only
    """
    return orders.Order.init_request_get(app.current_request, order_id).endpoint_delete()


@app.route('/pdv/sales', methods=['POST'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def create_pdv_sale():
    """
    admin operation, requires an open cash register
    """
    return orders.Order.init_request_pdv_sale(app.current_request).endpoint_create_pdv_sale()


@app.schedule(Rate(5, unit=Rate.MINUTES))
def cancel_expired_payments(event):
    cancelled = orders.job_cancel_expired_payments()
    logger.info(f'cancel_expired_payments ::: {cancelled=}')
    return cancelled


# PAYMENTS
@app.route('/payments', methods=['POST'], authorizer=role_authorizer, cors=True)
def create_payment():
    return payments.endpoint_create_payment(app.current_request)


@app.route('/payments/webhook', methods=['POST'], cors=True)
def payment_webhook():
    return payments.endpoint_webhook(app.current_request)


# CASH REGISTERS
@app.route('/cash-registers', methods=['POST'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def open_cash_register():
    """
    admin operation
    """
    return CashRegister.init_request_open(app.current_request).endpoint_open()


@app.route('/cash-registers/current', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_current_cash_register():
    return CashRegister.endpoint_get_current(app.current_request)


@app.route('/cash-registers/current/transactions', methods=['POST'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def add_cash_transaction():
    return CashRegister.init_request_current(app.current_request).endpoint_add_transaction()


@app.route('/cash-registers/current/summary', methods=['GET'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def get_cash_register_summary():
    return CashRegister.init_request_current(app.current_request).endpoint_summary()


@app.route('/cash-registers/current/close', methods=['POST'], authorizer=role_authorizer, cors=True)
@request_exception_handler
def close_cash_register():
    return CashRegister.init_request_current(app.current_request).endpoint_close()


@app.route('/cash-registers/history', methods=['GET'], authorizer=role_authorizer, cors=True)
def get_cash_register_history():
    return CashRegister.endpoint_history(app.current_request)
