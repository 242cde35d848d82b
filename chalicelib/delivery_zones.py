from decimal import Decimal
from typing import Tuple, List, Dict, Optional
from uuid import uuid4

from boto3.dynamodb.conditions import Key
from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.status_codes import http200, http201
from chalicelib.utils import auth as utils_auth, data as utils_data, db as utils_db, app as utils_app
from chalicelib.utils.auth import get_company_id_by_request
from chalicelib.utils.logger import logger


def _optional_decimal(value, field):
    # '' removes the override on update
    return value if value == '' else utils_data.to_decimal(value, field)


def _optional_int(value, field):
    return value if value == '' else utils_data.to_int(value, field)


class DeliveryZone(EntityBase):
    """
    A named neighbourhood/region with its own fee, minimum order and delivery time.
    Values left empty fall back to the establishment settings.
    """
    pk = keys_structure.delivery_zones_pk
    sk = keys_structure.delivery_zones_sk

    required_immutable_fields_validation = {
        'id_': lambda x: isinstance(x, str),
        'created_by': lambda x: isinstance(x, str),
        'date_created': lambda x: isinstance(x, str)
    }

    required_mutable_fields_validation = {
        'name_': lambda x: isinstance(x, str) and len(x.strip()) > 0,
        'is_active': lambda x: isinstance(x, bool),
        'sort_order': lambda x: isinstance(x, int) and not isinstance(x, bool),
        'date_updated': lambda x: isinstance(x, str),
        'updated_by': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'fee': lambda x: isinstance(x, Decimal) and x >= 0,
        'min_order': lambda x: isinstance(x, Decimal) and x >= 0,
        'estimated_time': lambda x: isinstance(x, int) and not isinstance(x, bool) and x >= 0
    }

    fields_allowed_to_delete = ['fee', 'min_order', 'estimated_time']

    def __init__(self, company_id, id_, **kwargs):
        EntityBase.__init__(self, company_id, id_)

        self.request_data = kwargs.get('request_data', {})
        user_id = self.request_data.get('auth_result', {}).get('user_id')

        self.name_: str = kwargs.get('name') or kwargs.get('name_')
        self.fee: Optional[Decimal] = _optional_decimal(kwargs.get('fee'), 'fee')
        self.min_order: Optional[Decimal] = _optional_decimal(kwargs.get('min_order'), 'min_order')
        self.estimated_time: Optional[int] = _optional_int(kwargs.get('estimated_time'), 'estimated_time')
        self.is_active: bool = kwargs.get('is_active', True)
        self.sort_order: int = utils_data.to_int(kwargs.get('sort_order'), 'sort_order', 0)
        self.created_by: str = kwargs.get('created_by') or user_id
        self.updated_by: str = kwargs.get('updated_by') or user_id
        self.date_created: str = kwargs.get('date_created') or self.now()
        self.date_updated: str = kwargs.get('date_updated') or self.now()
        self.record_type = 'delivery_zone'

    @classmethod
    def init_get_by_id(cls, company_id, zone_id):
        c = cls(company_id, zone_id)
        c.__init__(**c._get_db_item())
        return c

    @classmethod
    @utils_auth.authenticate_class
    def init_request_create(cls, request):
        logger.info("init_request_create ::: started")
        auth_result = request.auth_result
        utils_auth.require_role(auth_result, 'admin')
        request_body = utils_data.parse_raw_body(request)
        for key in ('id', 'id_', 'company_id', 'sort_order'):
            request_body.pop(key, None)
        zones = cls.get_zones(auth_result['company_id'])
        sort_order = max(zone.sort_order for zone in zones) + 1 if zones else 0
        return cls(auth_result['company_id'], str(uuid4()), request_data={'auth_result': auth_result},
                   sort_order=sort_order, **request_body)

    @classmethod
    @utils_auth.authenticate_class
    def init_request_update(cls, request, zone_id):
        logger.info("init_request_update ::: started")
        auth_result = request.auth_result
        utils_auth.require_role(auth_result, 'admin')
        current = cls.init_get_by_id(auth_result['company_id'], zone_id)
        request_body = utils_data.parse_raw_body(request)
        for key in ('id', 'id_', 'company_id', 'created_by', 'date_created'):
            request_body.pop(key, None)
        current_values = current._to_dict()
        current_values.pop('id_')
        updated = cls(auth_result['company_id'], zone_id, **{
            **current_values,
            **request_body,
            'request_data': {'auth_result': auth_result}
        })
        updated._validate_update_record()
        return updated

    @classmethod
    @utils_auth.authenticate_class
    def init_request_admin(cls, request, zone_id):
        auth_result = request.auth_result
        utils_auth.require_role(auth_result, 'admin')
        zone = cls.init_get_by_id(auth_result['company_id'], zone_id)
        zone.request_data = {'auth_result': auth_result}
        return zone

    @classmethod
    def get_zones(cls, company_id, active_only: bool = False) -> List['DeliveryZone']:
        records: List[Dict] = utils_db.query_items_paged(
            Key('partkey').eq(keys_structure.delivery_zones_pk.format(company_id=company_id))
        )
        zones = [cls(**record) for record in records]
        if active_only:
            zones = [zone for zone in zones if zone.is_active]
        return sorted(zones, key=lambda zone: (zone.sort_order, zone.name_ or ''))

    @staticmethod
    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_get_all(request) -> Response:
        """
        Customers see active zones only, admins may ask for all of them with ?all=true
        """
        params = request.query_params or {}
        if params.get('all') == 'true':
            auth_result = utils_auth.get_auth_result(request)
            utils_auth.require_role(auth_result, 'admin')
            zones = DeliveryZone.get_zones(auth_result['company_id'])
        else:
            zones = DeliveryZone.get_zones(get_company_id_by_request(request), active_only=True)
        logger.info(f"endpoint_get_all ::: returning zones={[zone.id_ for zone in zones]}")
        return Response(status_code=http200, body=[zone._to_ui() for zone in zones])

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_create(self) -> Response:
        self._create_db_record()
        return Response(status_code=http201, body=self._to_ui())

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_update(self) -> Response:
        self._update_db_record()
        for field in self.fields_allowed_to_delete:
            if getattr(self, field) == '':
                setattr(self, field, None)
        return Response(status_code=http200, body=self._to_ui())

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_toggle(self) -> Response:
        self.is_active = not self.is_active
        self._update_db_record()
        logger.info(f"endpoint_toggle ::: zone={self.id_} is_active={self.is_active}")
        return Response(status_code=http200, body=self._to_ui())

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_delete(self) -> Response:
        self._delete_db_record()
        return Response(status_code=http200, body={'message': 'Delivery zone was successfully deleted', 'id': self.id_})

    def resolve_terms(self, establishment) -> Tuple[Decimal, Decimal, int]:
        """
        (fee, min_order, estimated_time), each falling back to the establishment default
        """
        return (
            self.fee if self.fee is not None else establishment.delivery_fee,
            self.min_order if self.min_order is not None else establishment.min_order_value,
            self.estimated_time if self.estimated_time is not None else establishment.estimated_delivery_time
        )

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id), self.sk.format(zone_id=self.id_)

    def _to_dict(self):
        return {
            'id_': self.id_,
            'name_': self.name_,
            'fee': self.fee,
            'min_order': self.min_order,
            'estimated_time': self.estimated_time,
            'is_active': self.is_active,
            'sort_order': self.sort_order,
            'date_created': self.date_created,
            'date_updated': self.date_updated,
            'created_by': self.created_by,
            'updated_by': self.updated_by
        }

    def _init_db_record(self) -> None:
        EntityBase._init_db_record(self)
        self.db_record = utils_data.cleanup_dict(self.db_record, [None, ''])
