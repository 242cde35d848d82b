"""
Cash register sessions of the point of sale.

A session starts with an opening float, collects sale/withdrawal/deposit
transactions and is reconciled on close: the operator counts the drawer and
the difference against the expected cash is stored with the session.
"""
from decimal import Decimal
from typing import Tuple, List, Dict, Optional
from uuid import uuid4

from boto3.dynamodb.conditions import Attr, Key
from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import CASH_REGISTER_HISTORY_LIMIT
from chalicelib.constants.status_codes import http200, http201
from chalicelib.utils import auth as utils_auth, data as utils_data, exceptions, db as utils_db, app as utils_app
from chalicelib.utils.logger import logger

TRANSACTION_TYPES = ('opening', 'sale', 'withdrawal', 'deposit')
MANUAL_TRANSACTION_TYPES = ('sale', 'withdrawal', 'deposit')

CASH_METHODS = ('cash', 'dinheiro')
PIX_METHODS = ('pix',)
CARD_METHODS = ('cartao', 'cartão', 'credit', 'debit')


def classify_payment_method(payment_method: str) -> str:
    """
    Groups the free-form payment method labels into cash / pix / card / other
    """
    method = (payment_method or '').strip().lower()
    if method in CASH_METHODS:
        return 'cash'
    if method in PIX_METHODS:
        return 'pix'
    if 'card' in method or method in CARD_METHODS:
        return 'card'
    return 'other'


def _sum(transactions: List['CashTransaction']) -> Decimal:
    return utils_data.to_money(sum((t.amount for t in transactions), Decimal('0')))


def summarize(transactions: List['CashTransaction']) -> Dict:
    sales = [t for t in transactions if t.type_ == 'sale']
    return {
        'total_sales': _sum(sales),
        'total_pix': _sum([t for t in sales if classify_payment_method(t.payment_method) == 'pix']),
        'total_card': _sum([t for t in sales if classify_payment_method(t.payment_method) == 'card']),
        'total_cash': _sum([t for t in sales if classify_payment_method(t.payment_method) == 'cash']),
        'transaction_count': len(sales),
        'total_withdrawals': _sum([t for t in transactions if t.type_ == 'withdrawal']),
        'total_deposits': _sum([t for t in transactions if t.type_ == 'deposit'])
    }


def expected_cash(opening_amount: Decimal, transactions: List['CashTransaction']) -> Decimal:
    """
    opening float + cash sales; withdrawals and deposits are reported apart
    """
    cash_sales = [t for t in transactions
                  if t.type_ == 'sale' and classify_payment_method(t.payment_method) == 'cash']
    return utils_data.to_money(opening_amount + _sum(cash_sales))


def _non_negative_money(value, field: str) -> Decimal:
    amount = utils_data.to_decimal(value, field)
    if amount is None:
        raise exceptions.MandatoryFieldsAreNotFilled(f'{field} is required')
    if amount < 0:
        raise exceptions.ValidationException(f'{field} must not be negative')
    return utils_data.to_money(amount)


class CashTransaction(EntityBase):
    pk = keys_structure.cash_transactions_pk
    sk = keys_structure.cash_transactions_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'register_id': lambda x: isinstance(x, str),
        'type_': lambda x: x in TRANSACTION_TYPES,
        'payment_method': lambda x: isinstance(x, str) and len(x) > 0,
        'amount': lambda x: isinstance(x, Decimal) and x >= 0,
        'created_at': lambda x: isinstance(x, str),
        'created_by': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'order_id': lambda x: isinstance(x, str),
        'notes_': lambda x: isinstance(x, str)
    }

    def __init__(self, company_id, id_, register_id, **kwargs):
        EntityBase.__init__(self, company_id, id_)
        self.register_id: str = register_id
        self.order_id: Optional[str] = kwargs.get('order_id')
        self.type_: str = kwargs.get('type') or kwargs.get('type_')
        self.payment_method: str = kwargs.get('payment_method') or 'cash'
        amount = utils_data.to_decimal(kwargs.get('amount'), 'amount')
        self.amount: Decimal = utils_data.to_money(amount) if amount is not None else None
        self.notes_: Optional[str] = kwargs.get('notes') or kwargs.get('notes_')
        self.created_at: str = kwargs.get('created_at') or self.now()
        self.created_by: str = kwargs.get('created_by')
        self.record_type = 'cash_transaction'

    def _get_pk_sk(self) -> Tuple[str, str]:
        return (self.pk.format(company_id=self.company_id, register_id=self.register_id),
                self.sk.format(created_at=self.created_at, transaction_id=self.id_))

    def _to_dict(self):
        return {
            'id_': self.id_,
            'register_id': self.register_id,
            'order_id': self.order_id,
            'type_': self.type_,
            'payment_method': self.payment_method,
            'amount': self.amount,
            'notes_': self.notes_,
            'created_at': self.created_at,
            'created_by': self.created_by
        }

    def _init_db_record(self) -> None:
        EntityBase._init_db_record(self)
        self.db_record = utils_data.cleanup_dict(self.db_record, [None])

    def _to_ui(self) -> Dict:
        item = EntityBase._to_ui(self)
        item['type'] = item.pop('type_')
        return item

    def save(self):
        self._create_db_record()
        return self


class CashRegister(EntityBase):
    pk = keys_structure.cash_registers_pk
    sk = keys_structure.cash_registers_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'user_id': lambda x: isinstance(x, str),
        'opening_amount': lambda x: isinstance(x, Decimal) and x >= 0,
        'opened_at': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'status_': lambda x: x in ('open', 'closed')
    }

    optional_fields_validation = {
        'closing_amount': lambda x: isinstance(x, Decimal) and x >= 0,
        'expected_amount': lambda x: isinstance(x, Decimal),
        'difference': lambda x: isinstance(x, Decimal),
        'notes_': lambda x: isinstance(x, str),
        'closed_at': lambda x: isinstance(x, str)
    }

    def __init__(self, company_id, id_, **kwargs):
        EntityBase.__init__(self, company_id, id_)
        self.request_data = kwargs.get('request_data', {})
        self.user_id: str = kwargs.get('user_id')
        self.status_: str = kwargs.get('status') or kwargs.get('status_') or 'open'
        self.opening_amount: Decimal = utils_data.to_decimal(kwargs.get('opening_amount'), 'opening_amount')
        self.closing_amount: Optional[Decimal] = utils_data.to_decimal(kwargs.get('closing_amount'), 'closing_amount')
        self.expected_amount: Optional[Decimal] = utils_data.to_decimal(
            kwargs.get('expected_amount'), 'expected_amount')
        self.difference: Optional[Decimal] = utils_data.to_decimal(kwargs.get('difference'), 'difference')
        self.notes_: Optional[str] = kwargs.get('notes') or kwargs.get('notes_')
        self.opened_at: str = kwargs.get('opened_at') or self.now()
        self.closed_at: Optional[str] = kwargs.get('closed_at')
        self.record_type = 'cash_register'

    # ------------------------------------------------------------------ lookups

    @classmethod
    def get_registers(cls, company_id, status: str = None, user_id: str = None) -> List['CashRegister']:
        filter_expression = None
        if status:
            filter_expression = Attr('status_').eq(status)
        if user_id:
            user_filter = Attr('user_id').eq(user_id)
            filter_expression = user_filter if filter_expression is None else filter_expression & user_filter
        records = utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.cash_registers_pk.format(company_id=company_id)),
            filter_expression=filter_expression
        )
        return [cls(**record) for record in records]

    @classmethod
    def find_open(cls, company_id, user_id) -> Optional['CashRegister']:
        registers = sorted(cls.get_registers(company_id, status='open', user_id=user_id),
                           key=lambda register: register.opened_at, reverse=True)
        return registers[0] if registers else None

    @classmethod
    def get_open(cls, company_id, user_id) -> 'CashRegister':
        register = cls.find_open(company_id, user_id)
        if register is None:
            raise exceptions.CashRegisterNotOpen(f'There is no open cash register for user={user_id}')
        return register

    def get_transactions(self, newest_first: bool = True) -> List[CashTransaction]:
        records = utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.cash_transactions_pk.format(
                company_id=self.company_id, register_id=self.id_)),
            scan_index_forward=not newest_first
        )
        return [CashTransaction(**record) for record in records]

    # ------------------------------------------------------------------ request initializers

    @classmethod
    @utils_auth.authenticate_class
    def init_request_open(cls, request):
        logger.info("init_request_open ::: started")
        auth_result = request.auth_result
        utils_auth.require_role(auth_result, 'admin')
        company_id, user_id = auth_result['company_id'], auth_result['user_id']
        if cls.find_open(company_id, user_id) is not None:
            raise exceptions.CashRegisterAlreadyOpen(f'user={user_id} already has an open cash register')
        request_body = utils_data.parse_raw_body(request)
        return cls(company_id, str(uuid4()), user_id=user_id, status='open',
                   opening_amount=_non_negative_money(request_body.get('opening_amount'), 'opening_amount'),
                   notes=request_body.get('notes'), request_data={'auth_result': auth_result})

    @classmethod
    @utils_auth.authenticate_class
    def init_request_current(cls, request):
        auth_result = request.auth_result
        utils_auth.require_role(auth_result, 'admin')
        register = cls.get_open(auth_result['company_id'], auth_result['user_id'])
        register.request_data = {'auth_result': auth_result, 'body': utils_data.parse_raw_body(request)}
        return register

    # ------------------------------------------------------------------ operations

    def open(self) -> CashTransaction:
        self._create_db_record()
        opening = CashTransaction(self.company_id, str(uuid4()), self.id_, type='opening', payment_method='cash',
                                  amount=self.opening_amount, notes='Opening float', created_by=self.user_id)
        logger.info(f"open ::: register={self.id_} opened by user={self.user_id} with {self.opening_amount}")
        return opening.save()

    def build_transaction(self, type_: str, amount, payment_method: str = 'cash', order_id: str = None,
                          notes: str = None) -> CashTransaction:
        """
        Validated transaction of this session, not saved yet
        """
        if self.status_ != 'open':
            raise exceptions.CashRegisterNotOpen(f'Cash register {self.id_} is closed')
        if type_ not in MANUAL_TRANSACTION_TYPES:
            raise exceptions.ValidationException(f'type must be one of {MANUAL_TRANSACTION_TYPES}')
        amount = _non_negative_money(amount, 'amount')
        if amount == 0:
            raise exceptions.ValidationException('amount must be positive')
        return CashTransaction(self.company_id, str(uuid4()), self.id_, type=type_, amount=amount,
                               payment_method=payment_method or 'cash', order_id=order_id, notes=notes,
                               created_by=self.user_id)

    def add_transaction(self, type_: str, amount, payment_method: str = 'cash', order_id: str = None,
                        notes: str = None) -> CashTransaction:
        transaction = self.build_transaction(type_, amount, payment_method, order_id, notes)
        logger.info(f"add_transaction ::: register={self.id_} {type_=} amount={transaction.amount} {payment_method=}")
        return transaction.save()

    def summary(self) -> Dict:
        transactions = self.get_transactions()
        return {
            **summarize(transactions),
            'opening_amount': self.opening_amount,
            'expected_amount': expected_cash(self.opening_amount, transactions)
        }

    def close(self, counted_amount, notes: str = None) -> 'CashRegister':
        if self.status_ != 'open':
            raise exceptions.CashRegisterNotOpen(f'Cash register {self.id_} is already closed')
        counted = _non_negative_money(counted_amount, 'closing_amount')
        self.expected_amount = expected_cash(self.opening_amount, self.get_transactions())
        self.closing_amount = counted
        self.difference = utils_data.to_money(counted - self.expected_amount)
        self.notes_ = notes or self.notes_
        self.status_ = 'closed'
        self.closed_at = self.now()
        self._create_db_record()
        logger.info(f"close ::: register={self.id_} expected={self.expected_amount} "
                    f"counted={self.closing_amount} difference={self.difference}")
        return self

    # ------------------------------------------------------------------ endpoints

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_open(self) -> Response:
        self.open()
        return Response(status_code=http201, body=self._to_ui())

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_add_transaction(self) -> Response:
        body = self.request_data.get('body', {})
        transaction = self.add_transaction(body.get('type'), body.get('amount'), body.get('payment_method'),
                                           body.get('order_id'), body.get('notes'))
        return Response(status_code=http201, body=transaction._to_ui())

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_summary(self) -> Response:
        return Response(status_code=http200, body={'register': self._to_ui(), 'summary': self.summary()})

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_close(self) -> Response:
        body = self.request_data.get('body', {})
        self.close(body.get('closing_amount'), body.get('notes'))
        return Response(status_code=http200, body=self._to_ui())

    @staticmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_get_current(request) -> Response:
        auth_result = request.auth_result
        utils_auth.require_role(auth_result, 'admin')
        register = CashRegister.find_open(auth_result['company_id'], auth_result['user_id'])
        if register is None:
            return Response(status_code=http200, body={'is_open': False, 'register': None, 'transactions': []})
        return Response(status_code=http200, body={
            'is_open': True,
            'register': register._to_ui(),
            'transactions': [transaction._to_ui() for transaction in register.get_transactions()]
        })

    @staticmethod
    @utils_app.request_exception_handler
    @utils_auth.authenticate
    @utils_app.log_start_finish
    def endpoint_history(request) -> Response:
        auth_result = request.auth_result
        utils_auth.require_role(auth_result, 'admin')
        limit = utils_data.to_int((request.query_params or {}).get('limit'), 'limit', CASH_REGISTER_HISTORY_LIMIT)
        if limit <= 0:
            raise exceptions.ValidationException('limit must be positive')
        registers = sorted(CashRegister.get_registers(auth_result['company_id'], status='closed'),
                           key=lambda register: register.closed_at or '', reverse=True)[:limit]
        return Response(status_code=http200, body=[register._to_ui() for register in registers])

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id), self.sk.format(register_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'user_id': self.user_id,
            'status_': self.status_,
            'opening_amount': self.opening_amount,
            'closing_amount': self.closing_amount,
            'expected_amount': self.expected_amount,
            'difference': self.difference,
            'notes_': self.notes_,
            'opened_at': self.opened_at,
            'closed_at': self.closed_at
        }

    def _init_db_record(self) -> None:
        EntityBase._init_db_record(self)
        self.db_record = utils_data.cleanup_dict(self.db_record, [None])
