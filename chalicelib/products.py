from decimal import Decimal
from typing import List, Dict, Tuple, Iterable
from uuid import uuid4

from boto3.dynamodb.conditions import Attr, Key
from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.status_codes import http200, http201
from chalicelib.utils import auth as utils_auth, data as utils_data, exceptions, db as utils_db, app as utils_app
from chalicelib.utils.auth import get_company_id_by_request
from chalicelib.utils.logger import logger


class Product(EntityBase):
    pk = keys_structure.products_pk
    sk = keys_structure.products_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'created_by': lambda x: isinstance(x, str),
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'name_': lambda x: isinstance(x, str) and len(x.strip()) > 0,
        'category': lambda x: isinstance(x, str),
        'description': lambda x: isinstance(x, str),
        'price': lambda x: isinstance(x, Decimal) and x >= 0,
        'is_available': lambda x: isinstance(x, bool),
        'date_updated': lambda x: isinstance(x, str),
        'updated_by': lambda x: isinstance(x, str),
        'archived': lambda x: isinstance(x, bool)
    }

    optional_fields_validation = {
        'image': lambda x: isinstance(x, str),
        'tag': lambda x: isinstance(x, str)
    }

    fields_allowed_to_delete = ['image', 'tag']

    def __init__(self, company_id, id_, **kwargs):
        EntityBase.__init__(self, company_id, id_)

        self.request_data = kwargs.get('request_data', {})
        user_id = self.request_data.get('auth_result', {}).get('user_id')

        self.name_: str = kwargs.get('name') or kwargs.get('name_')
        self.category: str = kwargs.get('category', '')
        self.description: str = kwargs.get('description', '')
        price = utils_data.to_decimal(kwargs.get('price'), 'price')
        self.price: Decimal = utils_data.to_money(price) if price is not None else None
        self.image: str = kwargs.get('image')
        self.tag: str = kwargs.get('tag')
        self.is_available: bool = kwargs.get('is_available', True)
        self.created_by: str = kwargs.get('created_by') or user_id
        self.updated_by: str = kwargs.get('updated_by') or user_id
        self.date_created: str = kwargs.get('date_created') or self.now()
        self.date_updated: str = kwargs.get('date_updated') or self.now()
        self.archived: bool = kwargs.get('archived', False)
        self.record_type = 'product'

    @classmethod
    @utils_auth.authenticate_class
    def init_request_create(cls, request):
        logger.info("init_request_create ::: started")
        auth_result = request.auth_result
        utils_auth.require_role(auth_result, 'admin')
        request_body = utils_data.parse_raw_body(request)
        for key in ('id', 'id_', 'company_id', 'archived'):
            request_body.pop(key, None)
        return cls(auth_result['company_id'], str(uuid4()), request_data={'auth_result': auth_result},
                   **request_body)

    @classmethod
    @utils_auth.authenticate_class
    def init_request_update(cls, request, product_id):
        logger.info("init_request_update ::: started")
        auth_result = request.auth_result
        utils_auth.require_role(auth_result, 'admin')
        current = cls.init_get_by_id(auth_result['company_id'], product_id)
        request_body = utils_data.parse_raw_body(request)
        for key in ('id', 'id_', 'company_id', 'created_by', 'date_created'):
            request_body.pop(key, None)
        current_values = current._to_dict()
        current_values.pop('id_')
        updated = cls(auth_result['company_id'], product_id, **{
            **current_values,
            **request_body,
            'request_data': {'auth_result': auth_result}
        })
        updated._validate_update_record()
        return updated

    @classmethod
    @utils_auth.authenticate_class
    def init_request_archive(cls, request, product_id):
        auth_result = request.auth_result
        utils_auth.require_role(auth_result, 'admin')
        product = cls.init_get_by_id(auth_result['company_id'], product_id)
        product.request_data = {'auth_result': auth_result}
        return product

    @classmethod
    def init_get_by_id(cls, company_id, product_id):
        logger.info("init_get_by_id ::: started")
        c = cls(company_id, product_id)
        c.__init__(**c._get_db_item())
        return c

    @classmethod
    def get_products(cls, company_id, product_ids: Iterable[str] = None) -> Dict[str, 'Product']:
        records: List[Dict] = utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.products_pk.format(company_id=company_id)),
            filter_expression=Attr('archived').eq(False)
        )
        products = {record['id_']: cls(**record) for record in records}
        if product_ids is not None:
            wanted = set(product_ids)
            products = {id_: product for id_, product in products.items() if id_ in wanted}
        return products

    @staticmethod
    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_get_all(request) -> Response:
        company_id = get_company_id_by_request(request)
        category = (request.query_params or {}).get('category')
        products = sorted(Product.get_products(company_id).values(),
                          key=lambda product: (product.category or '', product.name_ or ''))
        if category:
            products = [product for product in products if product.category == category]
        logger.info(f"endpoint_get_all ::: returning products={[product.id_ for product in products]}")
        return Response(status_code=http200, body=[product._to_ui() for product in products])

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_create(self) -> Response:
        self._create_db_record()
        return Response(status_code=http201, body={'message': 'Product successfully created', 'id': self.id_})

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_update(self) -> Response:
        self._update_db_record()
        return Response(status_code=http200, body={'message': 'Product was successfully updated', 'id': self.id_})

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_archive(self) -> Response:
        """
        Products are archived, not deleted, past orders keep referencing them
        """
        self.archived = True
        self._update_db_record()
        return Response(status_code=http200, body={'message': 'Product was successfully archived', 'id': self.id_})

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id), self.sk.format(product_id=self.id_)

    def check_available(self):
        if self.archived or not self.is_available:
            raise exceptions.SomeItemsAreNotAvailable(f'Product {self.name_} is not available')

    def _to_dict(self):
        return {
            'id_': self.id_,
            'name_': self.name_,
            'category': self.category,
            'description': self.description,
            'price': self.price,
            'image': self.image,
            'tag': self.tag,
            'is_available': self.is_available,
            'date_created': self.date_created,
            'date_updated': self.date_updated,
            'created_by': self.created_by,
            'updated_by': self.updated_by,
            'archived': self.archived
        }

    def _init_db_record(self) -> None:
        EntityBase._init_db_record(self)
        self.db_record = utils_data.cleanup_dict(self.db_record, [None])
