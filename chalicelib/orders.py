import os
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Tuple, List, Dict, Optional
from uuid import uuid4

from boto3.dynamodb.conditions import Key, Attr
from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.cash_registers import CashRegister, CashTransaction
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import ORDER_NUMBER_COUNTER, DEFAULT_PAYMENT_TIMEOUT_MINUTES
from chalicelib.constants.status_codes import http200, http201
from chalicelib.delivery import resolve_delivery_fee
from chalicelib.delivery_zones import DeliveryZone
from chalicelib.establishments import Establishment
from chalicelib.eta import estimate_for_establishment
from chalicelib.geo import optional_lat_lon
from chalicelib.products import Product
from chalicelib.utils import auth as utils_auth, \
    data as utils_data, \
    db as utils_db, \
    app as utils_app, \
    exceptions
from chalicelib.utils.exceptions import OrderNotFound
from chalicelib.utils.logger import logger

ORDER_STATUSES = ('waiting_payment', 'pending', 'confirmed', 'preparing', 'ready', 'out_for_delivery',
                  'delivered', 'cancelled')
FINAL_STATUSES = ('delivered', 'cancelled')

DEFAULT_FLOW = {
    'waiting_payment': None,
    'pending': 'preparing',
    'confirmed': 'preparing',
    'preparing': 'ready',
    'ready': 'out_for_delivery',
    'out_for_delivery': 'delivered',
    'delivered': None,
    'cancelled': None
}

KITCHEN_FLOW = {
    'pending': 'preparing',
    'confirmed': 'preparing',
    'preparing': 'ready'
}

ORDER_TYPES = ('delivery', 'pickup', 'pdv_counter', 'pdv_pickup', 'pdv_table')
ONLINE_ORDER_TYPES = ('delivery', 'pickup')
PDV_ORDER_TYPES = ('pdv_counter', 'pdv_pickup', 'pdv_table')

# paid through the payment gateway, the order waits for the confirmation
ONLINE_PAYMENT_METHODS = ('pix', 'credit')
CASH_PAYMENT_METHODS = ('cash', 'dinheiro')

# a client may still cancel before the kitchen picks the order up
CLIENT_CANCELLABLE_STATUSES = ('waiting_payment', 'pending')


def next_status(status: str, flow: str = 'default') -> Optional[str]:
    table = KITCHEN_FLOW if flow == 'kitchen' else DEFAULT_FLOW
    return table.get(status)


def calculate_change(total: Decimal, cash_received) -> Tuple[bool, Optional[Decimal], Optional[Decimal]]:
    """
    (needs_change, change_for, change_amount) for a cash payment
    """
    if cash_received is None:
        return False, None, None
    change_for = utils_data.to_money(utils_data.to_decimal(cash_received, 'change_for'))
    if change_for < total:
        raise exceptions.ValidationException(f'Cash received {change_for} is less than the order total {total}')
    change_amount = utils_data.to_money(change_for - total)
    return change_amount > 0, change_for, change_amount


def build_order_items(company_id, items) -> Tuple[List[Dict], Decimal]:
    """
    Prices every line from the catalogue, the client never sends prices
    """
    if not isinstance(items, list) or not items:
        raise exceptions.MandatoryFieldsAreNotFilled('Order must have at least one item')
    products = Product.get_products(company_id, [item.get('product_id') for item in items if isinstance(item, dict)])
    order_items, subtotal = [], Decimal('0')
    for item in items:
        if not isinstance(item, dict) or not item.get('product_id'):
            raise exceptions.ValidationException('Every item must have a product_id')
        quantity = utils_data.to_int(item.get('quantity'), 'quantity', 1)
        if quantity <= 0:
            raise exceptions.ValidationException('quantity must be positive')
        product = products.get(item['product_id'])
        if product is None:
            raise exceptions.SomeItemsAreNotAvailable(f"Product {item['product_id']} is not available")
        product.check_available()
        line_total = utils_data.to_money(product.price * quantity)
        order_items.append({
            'product_id': product.id_,
            'product_name': product.name_,
            'quantity': quantity,
            'unit_price': product.price,
            'total': line_total,
            'notes': item.get('notes') or ''
        })
        subtotal += line_total
    return order_items, utils_data.to_money(subtotal)


class Order(EntityBase):
    pk = keys_structure.orders_pk
    sk = keys_structure.orders_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'order_number': lambda x: isinstance(x, int) and x > 0,
        'user_id': lambda x: isinstance(x, str),
        'order_type': lambda x: x in ORDER_TYPES,
        'items': lambda x: isinstance(x, list) and len(x) > 0,
        'subtotal': lambda x: isinstance(x, Decimal) and x >= 0,
        'delivery_fee': lambda x: isinstance(x, Decimal) and x >= 0,
        'total': lambda x: isinstance(x, Decimal) and x >= 0,
        'payment_method': lambda x: isinstance(x, str) and len(x) > 0,
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'status_': lambda x: x in ORDER_STATUSES,
        'payment_status': lambda x: isinstance(x, str) and len(x) > 0,
        'history': lambda x: isinstance(x, list),
        'date_updated': lambda x: isinstance(x, str),
        'updated_by': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'customer_name': lambda x: isinstance(x, str),
        'customer_phone': lambda x: isinstance(x, str),
        'address': lambda x: isinstance(x, str),
        'table_number': lambda x: isinstance(x, str),
        'latitude': lambda x: isinstance(x, Decimal),
        'longitude': lambda x: isinstance(x, Decimal),
        'zone_id': lambda x: isinstance(x, str),
        'distance': lambda x: isinstance(x, Decimal),
        'needs_change': lambda x: isinstance(x, bool),
        'change_for': lambda x: isinstance(x, Decimal),
        'change_amount': lambda x: isinstance(x, Decimal),
        'notes_': lambda x: isinstance(x, str),
        'eta': lambda x: isinstance(x, dict),
        'payment_id': lambda x: isinstance(x, str),
        'payment_details': lambda x: isinstance(x, dict),
        'cancel_reason': lambda x: isinstance(x, str)
    }

    def __init__(self, company_id, id_, **kwargs):
        EntityBase.__init__(self, company_id, id_)

        self.request_data = kwargs.get('request_data', {})
        user_id = self.request_data.get('auth_result', {}).get('user_id')

        self.order_number: int = utils_data.to_int(kwargs.get('order_number'), 'order_number')
        self.user_id: str = kwargs.get('user_id') or user_id
        self.customer_name: str = kwargs.get('customer_name')
        self.customer_phone: str = kwargs.get('customer_phone')
        self.order_type: str = kwargs.get('order_type', 'delivery')
        self.address: str = kwargs.get('address')
        self.table_number: str = kwargs.get('table_number')
        self.latitude: Optional[Decimal] = utils_data.to_decimal(kwargs.get('latitude'), 'latitude')
        self.longitude: Optional[Decimal] = utils_data.to_decimal(kwargs.get('longitude'), 'longitude')
        self.zone_id: str = kwargs.get('zone_id')
        self.distance: Optional[Decimal] = utils_data.to_decimal(kwargs.get('distance'), 'distance')
        self.items: List[Dict] = kwargs.get('items', [])
        self.status_: str = kwargs.get('status') or kwargs.get('status_') or 'pending'
        self.payment_method: str = kwargs.get('payment_method')
        self.payment_status: str = kwargs.get('payment_status') or 'pending'
        self.payment_id: str = kwargs.get('payment_id')
        self.payment_details: Optional[Dict] = kwargs.get('payment_details')
        self.subtotal: Decimal = utils_data.to_decimal(kwargs.get('subtotal'), 'subtotal', Decimal('0'))
        self.delivery_fee: Decimal = utils_data.to_decimal(kwargs.get('delivery_fee'), 'delivery_fee', Decimal('0'))
        self.total: Decimal = utils_data.to_decimal(kwargs.get('total'), 'total', Decimal('0'))
        self.needs_change: bool = kwargs.get('needs_change', False)
        self.change_for: Optional[Decimal] = utils_data.to_decimal(kwargs.get('change_for'), 'change_for')
        self.change_amount: Optional[Decimal] = utils_data.to_decimal(kwargs.get('change_amount'), 'change_amount')
        self.notes_: str = kwargs.get('notes') or kwargs.get('notes_')
        self.eta: Optional[Dict] = kwargs.get('eta')
        self.cancel_reason: str = kwargs.get('cancel_reason')
        self.history: List[Dict] = kwargs.get('history', [])
        self.date_created: str = kwargs.get('date_created') or self.now()
        self.date_updated: str = kwargs.get('date_updated') or self.now()
        self.updated_by: str = kwargs.get('updated_by') or self.user_id
        self.record_type = 'order'

    # ------------------------------------------------------------------ initializers

    @classmethod
    def init_get_by_id(cls, company_id, order_id):
        c = cls(company_id, order_id)
        try:
            c.__init__(**c._get_db_item())
        except exceptions.RecordNotFound:
            raise OrderNotFound(f'Order {order_id} not found')
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request_get(cls, request, order_id):
        logger.info("init_request_get ::: started")
        auth_result = request.auth_result
        order = cls.init_get_by_id(auth_result['company_id'], order_id)
        if auth_result['role'] not in utils_auth.STAFF_ROLES and order.user_id != auth_result['user_id']:
            raise OrderNotFound(f'Order {order_id} not found')
        order.request_data = {'auth_result': auth_result, 'query_params': request.query_params or {}}
        return order

    @classmethod
    @utils_auth.authenticate_class
    def init_request_create(cls, request):
        logger.info("init_request_create ::: started")
        auth_result = request.auth_result
        company_id = auth_result['company_id']
        body = utils_data.parse_raw_body(request)
        order_type = body.get('order_type', 'delivery')
        if order_type not in ONLINE_ORDER_TYPES:
            raise exceptions.ValidationException(f'order_type must be one of {ONLINE_ORDER_TYPES}')
        payment_method = body.get('payment_method')
        if not payment_method:
            raise exceptions.MandatoryFieldsAreNotFilled('payment_method is required')

        establishment = Establishment.init_by_company_id(company_id)
        if not establishment.is_open:
            raise exceptions.ValidationException('The establishment is closed')

        items, subtotal = build_order_items(company_id, body.get('items'))
        if subtotal <= 0:
            raise exceptions.ValidationException('A PDV sale must have a positive total')
        order = cls(company_id, str(uuid4()),
                    request_data={'auth_result': auth_result},
                    user_id=auth_result['user_id'],
                    customer_name=body.get('customer_name'),
                    customer_phone=body.get('customer_phone'),
                    order_type=order_type,
                    items=items,
                    subtotal=subtotal,
                    payment_method=payment_method,
                    notes=body.get('notes'))

        if order_type == 'delivery':
            order._apply_delivery(establishment, body)

        order.total = utils_data.to_money(order.subtotal + order.delivery_fee)
        if payment_method in CASH_PAYMENT_METHODS:
            order.needs_change, order.change_for, order.change_amount = calculate_change(
                order.total, body.get('change_for'))

        if payment_method in ONLINE_PAYMENT_METHODS:
            order.status_, order.payment_status = 'waiting_payment', 'pending'
        else:
            order.status_, order.payment_status = 'pending', 'on_delivery'
        return order

    @classmethod
    @utils_auth.authenticate_class
    def init_request_pdv_sale(cls, request):
        """
        Counter sale: paid on the spot, registered in the operator's open cash register
        """
        logger.info("init_request_pdv_sale ::: started")
        auth_result = request.auth_result
        utils_auth.require_role(auth_result, 'admin')
        company_id = auth_result['company_id']
        register = CashRegister.get_open(company_id, auth_result['user_id'])
        body = utils_data.parse_raw_body(request)
        order_type = body.get('order_type', 'pdv_counter')
        if order_type not in PDV_ORDER_TYPES:
            raise exceptions.ValidationException(f'order_type must be one of {PDV_ORDER_TYPES}')
        if order_type == 'pdv_table' and not body.get('table_number'):
            raise exceptions.MandatoryFieldsAreNotFilled('table_number is required for table orders')
        payment_method = body.get('payment_method')
        if not payment_method:
            raise exceptions.MandatoryFieldsAreNotFilled('payment_method is required')

        items, subtotal = build_order_items(company_id, body.get('items'))
        order = cls(company_id, str(uuid4()),
                    request_data={'auth_result': auth_result},
                    user_id=auth_result['user_id'],
                    customer_name=body.get('customer_name'),
                    order_type=order_type,
                    table_number=str(body['table_number']) if body.get('table_number') else None,
                    items=items,
                    subtotal=subtotal,
                    total=subtotal,
                    payment_method=payment_method,
                    payment_status='approved',
                    status='confirmed',
                    notes=body.get('notes'))
        if payment_method in CASH_PAYMENT_METHODS:
            order.needs_change, order.change_for, order.change_amount = calculate_change(
                order.total, body.get('cash_received'))
        order.request_data['cash_transaction'] = register.build_transaction(
            'sale', order.total, payment_method, order_id=order.id_)
        return order

    # ------------------------------------------------------------------ creation

    def _apply_delivery(self, establishment: Establishment, body: Dict):
        if not establishment.is_delivery_enabled:
            raise exceptions.ValidationException('Delivery is currently disabled')
        if not body.get('address'):
            raise exceptions.MandatoryFieldsAreNotFilled('address is required for delivery orders')
        self.address = body['address']

        customer = optional_lat_lon(body.get('latitude'), body.get('longitude'), 'customer_')
        if customer:
            self.latitude, self.longitude = (utils_data.to_decimal(body['latitude']),
                                             utils_data.to_decimal(body['longitude']))

        zone = None
        if body.get('zone_id'):
            try:
                zone = DeliveryZone.init_get_by_id(self.company_id, body['zone_id'])
            except exceptions.RecordNotFound:
                raise exceptions.OutOfDeliveryArea(f"Delivery zone {body['zone_id']} does not exist")
            if not zone.is_active:
                raise exceptions.OutOfDeliveryArea(f'Delivery zone {zone.name_} is not served at the moment')
            self.zone_id = zone.id_

        terms = resolve_delivery_fee(establishment, zone, customer)
        if self.subtotal < terms.min_order:
            raise exceptions.MinimumOrderNotReached(
                f'Minimum order value for delivery is {terms.min_order}, the order subtotal is {self.subtotal}')
        self.delivery_fee = terms.fee
        self.distance = terms.distance

        if customer and establishment.coordinates:
            estimate = estimate_for_establishment(establishment, customer)
            self.eta = {
                'prep_time': estimate.prep_time,
                'travel_time': estimate.travel_time,
                'total_min': estimate.total_min,
                'total_max': estimate.total_max,
                'display_text': estimate.display_text
            }
        else:
            self.eta = {
                'total_min': terms.estimated_time,
                'total_max': terms.estimated_time,
                'display_text': f'{terms.estimated_time} min'
            }

    def _create_db_record(self):
        self.order_number = utils_db.increment_counter(
            keys_structure.counters_pk.format(company_id=self.company_id),
            keys_structure.counters_sk.format(counter_name=ORDER_NUMBER_COUNTER)
        )
        self._add_history(self.status_)
        EntityBase._create_db_record(self)

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_create(self) -> Response:
        self._create_db_record()
        logger.info(f"endpoint_create ::: order={self.id_} number={self.order_number} total={self.total} "
                    f"status={self.status_}")
        return Response(status_code=http201, body=self._to_ui())

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_create_pdv_sale(self) -> Response:
        transaction: CashTransaction = self.request_data['cash_transaction']
        self._create_db_record()
        transaction.save()
        logger.info(f"endpoint_create_pdv_sale ::: order={self.id_} number={self.order_number} "
                    f"register={transaction.register_id} total={self.total}")
        return Response(status_code=http201, body={**self._to_ui(), 'cash_transaction_id': transaction.id_})

    # ------------------------------------------------------------------ status changes

    def _add_history(self, status: str, note: str = None):
        entry = {'status': status, 'date': self.now(),
                 'by': self.request_data.get('auth_result', {}).get('user_id') or 'system'}
        if note:
            entry['note'] = note
        self.history = [*self.history, entry]

    def set_status(self, status: str, note: str = None):
        logger.info(f"set_status ::: order={self.id_} {self.status_} -> {status}")
        self.status_ = status
        self._add_history(status, note)

    def advance(self, flow: str = 'default') -> str:
        status = next_status(self.status_, flow)
        if status is None:
            raise exceptions.InvalidStatusTransition(
                f'Order {self.order_number} in status {self.status_} can not be advanced ({flow} flow)')
        self.set_status(status)
        self._update_db_record()
        return status

    def cancel(self, reason: str = None, payment_status: str = None):
        if self.status_ in FINAL_STATUSES:
            raise exceptions.InvalidStatusTransition(f'Order {self.order_number} is already {self.status_}')
        self.cancel_reason = reason
        if payment_status:
            self.payment_status = payment_status
        self.set_status('cancelled', reason)
        self._update_db_record()

    def apply_payment_status(self, payment_status: str, order_status: str = None, payment_id: str = None):
        """
        Gateway notifications: only an order still waiting for its payment moves to order_status
        """
        self.payment_status = payment_status
        if payment_id:
            self.payment_id = str(payment_id)
        if order_status and self.status_ == 'waiting_payment':
            self.set_status(order_status, f'Payment {payment_status}')
        self._update_db_record()

    def _update_fields_whitelist(self) -> List:
        return ['status_', 'payment_status', 'payment_id', 'payment_details', 'history', 'cancel_reason',
                'date_updated', 'updated_by']

    def _update_db_record(self):
        if not self.request_data:
            self.updated_by = 'system'
        EntityBase._update_db_record(self)

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_get_by_id(self) -> Response:
        return Response(status_code=http200, body=self._to_ui())

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_advance(self) -> Response:
        auth_result = self.request_data['auth_result']
        utils_auth.require_role(auth_result, *utils_auth.STAFF_ROLES)
        flow = 'kitchen' if auth_result['role'] == 'kitchen' else self.request_data['query_params'].get('flow',
                                                                                                         'default')
        self.updated_by = auth_result['user_id']
        self.advance(flow)
        return Response(status_code=http200, body=self._to_ui())

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_cancel(self) -> Response:
        auth_result = self.request_data['auth_result']
        if auth_result['role'] != 'admin':
            if auth_result['role'] != 'client':
                raise exceptions.AccessDenied('Only admins and the customer may cancel an order')
            if self.status_ not in CLIENT_CANCELLABLE_STATUSES:
                raise exceptions.InvalidStatusTransition(
                    f'Order {self.order_number} is already being prepared and can not be cancelled')
        self.updated_by = auth_result['user_id']
        self.cancel(self.request_data['query_params'].get('reason') or f"Cancelled by {auth_result['role']}")
        return Response(status_code=http200, body=self._to_ui())

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_delete(self) -> Response:
        utils_auth.require_role(self.request_data['auth_result'], 'admin')
        if self.status_ != 'cancelled':
            raise exceptions.InvalidStatusTransition(f'Only cancelled orders can be deleted, order is {self.status_}')
        self._delete_db_record()
        return Response(status_code=http200, body={'message': 'Order was successfully deleted', 'id': self.id_})

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id), self.sk.format(order_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'order_number': self.order_number,
            'user_id': self.user_id,
            'customer_name': self.customer_name,
            'customer_phone': self.customer_phone,
            'order_type': self.order_type,
            'address': self.address,
            'table_number': self.table_number,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'zone_id': self.zone_id,
            'distance': self.distance,
            'items': self.items,
            'status_': self.status_,
            'payment_method': self.payment_method,
            'payment_status': self.payment_status,
            'payment_id': self.payment_id,
            'payment_details': self.payment_details,
            'subtotal': self.subtotal,
            'delivery_fee': self.delivery_fee,
            'total': self.total,
            'needs_change': self.needs_change,
            'change_for': self.change_for,
            'change_amount': self.change_amount,
            'notes_': self.notes_,
            'eta': self.eta,
            'cancel_reason': self.cancel_reason,
            'history': self.history,
            'date_created': self.date_created,
            'date_updated': self.date_updated,
            'updated_by': self.updated_by
        }

    def _init_db_record(self) -> None:
        EntityBase._init_db_record(self)
        self.db_record = utils_data.cleanup_dict(self.db_record, [None])


def get_db_orders(company_id, user_id: str = None, statuses: List[str] = None) -> List[Dict]:
    filter_expression = None
    if user_id:
        filter_expression = Attr('user_id').eq(user_id)
    if statuses:
        status_filter = Attr('status_').is_in(statuses)
        filter_expression = status_filter if filter_expression is None else filter_expression & status_filter
    records = utils_db.query_items_paged(
        key_condition_expression=Key('partkey').eq(Order.pk.format(company_id=company_id)),
        filter_expression=filter_expression
    )
    return sorted(records, key=lambda record: record.get('date_created', ''), reverse=True)


@utils_app.request_exception_handler
@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_get_orders(request) -> Response:
    """
    Clients see their own orders, staff see every order of the tenant (?status=pending,preparing)
    """
    auth_result = request.auth_result
    company_id, user_id, role = auth_result['company_id'], auth_result['user_id'], auth_result['role']
    qp = request.query_params or {}
    statuses = [status for status in (qp.get('status') or '').split(',') if status]
    unknown = [status for status in statuses if status not in ORDER_STATUSES]
    if unknown:
        raise exceptions.ValidationException(f'Unknown order status {unknown}')
    if role in utils_auth.STAFF_ROLES:
        db_records = get_db_orders(company_id, statuses=statuses)
    else:
        db_records = get_db_orders(company_id, user_id=user_id, statuses=statuses)
    return Response(status_code=http200, body={'orders': [Order(**record)._to_ui() for record in db_records]})


def payment_timeout_minutes() -> int:
    return int(os.environ.get('PAYMENT_TIMEOUT_MINUTES') or DEFAULT_PAYMENT_TIMEOUT_MINUTES)


def cancel_expired_payments(company_id, timeout_minutes: int = None, now: datetime = None) -> List[Order]:
    """
    Orders still waiting for an online payment after the timeout are cancelled
    """
    timeout_minutes = timeout_minutes or payment_timeout_minutes()
    cutoff = ((now or datetime.now()) - timedelta(minutes=timeout_minutes)).isoformat(timespec='seconds')
    records = utils_db.query_items_paged(
        key_condition_expression=Key('partkey').eq(Order.pk.format(company_id=company_id)),
        filter_expression=Attr('status_').eq('waiting_payment') & Attr('payment_status').eq('pending') &
        Attr('date_created').lt(cutoff)
    )
    cancelled = []
    for record in records:
        order = Order(**record)
        order.cancel('Payment expired', payment_status='cancelled')
        cancelled.append(order)
    if cancelled:
        logger.info(f"cancel_expired_payments ::: {company_id=} cancelled orders="
                    f"{[order.order_number for order in cancelled]}")
    return cancelled


def job_cancel_expired_payments() -> Dict[str, int]:
    result = {}
    for company_id in utils_auth.company_ids():
        result[company_id] = len(cancel_expired_payments(company_id))
    return result
