from datetime import datetime, time
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from chalice import Response

from chalicelib.base_class_entity import EntityBase
from chalicelib.constants import keys_structure
from chalicelib.constants.constants import DEFAULT_DELIVERY_FEE, DEFAULT_BASE_FEE, DEFAULT_PRICE_PER_KM, \
    DEFAULT_MIN_DISTANCE_INCLUDED, DEFAULT_AVERAGE_PREP_TIME, DEFAULT_ESTIMATED_DELIVERY_TIME
from chalicelib.constants.status_codes import http200
from chalicelib.geo import LatLon, optional_lat_lon
from chalicelib.utils import auth as utils_auth, data as utils_data, app as utils_app, exceptions
from chalicelib.utils.logger import logger

DEFAULT_TIMEZONE = 'America/Sao_Paulo'


def _non_negative_decimal(x):
    return isinstance(x, Decimal) and x >= 0


def _non_negative_int(x):
    return isinstance(x, int) and not isinstance(x, bool) and x >= 0


def parse_clock(value: str) -> time:
    try:
        return datetime.strptime(value, '%H:%M').time()
    except (TypeError, ValueError):
        raise exceptions.ValidationException(f'Time {value!r} must have HH:MM format')


def _valid_peak_hours(peak_hours) -> bool:
    if not isinstance(peak_hours, list):
        return False
    for window in peak_hours:
        if not isinstance(window, dict):
            return False
        parse_clock(window.get('start'))
        parse_clock(window.get('end'))
    return True


def _valid_timezone(name) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        return False
    return True


def in_peak_window(peak_hours: List[Dict], moment: time) -> bool:
    """
    Windows are [start, end); a window whose end is before its start spans midnight
    """
    for window in peak_hours:
        start, end = parse_clock(window['start']), parse_clock(window['end'])
        if start <= end:
            if start <= moment < end:
                return True
        elif moment >= start or moment < end:
            return True
    return False


class Establishment(EntityBase):
    pk = keys_structure.establishments_pk
    sk = keys_structure.establishments_sk

    required_mutable_fields_validation = {
        'name_': lambda x: isinstance(x, str),
        'is_open': lambda x: isinstance(x, bool),
        'is_delivery_enabled': lambda x: isinstance(x, bool),
        'delivery_fee': _non_negative_decimal,
        'min_order_value': _non_negative_decimal,
        'estimated_delivery_time': _non_negative_int,
        'distance_fee_enabled': lambda x: isinstance(x, bool),
        'base_delivery_fee': _non_negative_decimal,
        'price_per_km': _non_negative_decimal,
        'min_distance_included': _non_negative_decimal,
        'average_prep_time': _non_negative_int,
        'peak_time_adjustment': _non_negative_int,
        'peak_hours': _valid_peak_hours,
        'timezone': _valid_timezone,
        'date_updated': lambda x: isinstance(x, str)
    }

    optional_fields_validation = {
        'address': lambda x: isinstance(x, str),
        'phone': lambda x: isinstance(x, str),
        'latitude': lambda x: isinstance(x, Decimal) and -90 <= x <= 90,
        'longitude': lambda x: isinstance(x, Decimal) and -180 <= x <= 180,
        'max_delivery_radius': lambda x: isinstance(x, Decimal) and x > 0,
        'updated_by': lambda x: isinstance(x, str)
    }

    def __init__(self, company_id, **kwargs):
        EntityBase.__init__(self, company_id, 'settings')

        self.request_data = kwargs.get('request_data', {})

        self.name_: str = kwargs.get('name') or kwargs.get('name_') or ''
        self.address: str = kwargs.get('address')
        self.phone: str = kwargs.get('phone')
        self.is_open: bool = kwargs.get('is_open', True)
        self.is_delivery_enabled: bool = kwargs.get('is_delivery_enabled', True)
        self.delivery_fee: Decimal = utils_data.to_decimal(
            kwargs.get('delivery_fee'), 'delivery_fee', DEFAULT_DELIVERY_FEE)
        self.min_order_value: Decimal = utils_data.to_decimal(
            kwargs.get('min_order_value'), 'min_order_value', Decimal('0'))
        self.estimated_delivery_time: int = utils_data.to_int(
            kwargs.get('estimated_delivery_time'), 'estimated_delivery_time', DEFAULT_ESTIMATED_DELIVERY_TIME)
        # distance based fee
        self.distance_fee_enabled: bool = kwargs.get('distance_fee_enabled', False)
        self.base_delivery_fee: Decimal = utils_data.to_decimal(
            kwargs.get('base_delivery_fee'), 'base_delivery_fee', DEFAULT_BASE_FEE)
        self.price_per_km: Decimal = utils_data.to_decimal(
            kwargs.get('price_per_km'), 'price_per_km', DEFAULT_PRICE_PER_KM)
        self.min_distance_included: Decimal = utils_data.to_decimal(
            kwargs.get('min_distance_included'), 'min_distance_included', DEFAULT_MIN_DISTANCE_INCLUDED)
        self.latitude: Optional[Decimal] = utils_data.to_decimal(kwargs.get('latitude'), 'latitude')
        self.longitude: Optional[Decimal] = utils_data.to_decimal(kwargs.get('longitude'), 'longitude')
        self.max_delivery_radius: Optional[Decimal] = utils_data.to_decimal(
            kwargs.get('max_delivery_radius'), 'max_delivery_radius')
        # ETA
        self.average_prep_time: int = utils_data.to_int(
            kwargs.get('average_prep_time'), 'average_prep_time', DEFAULT_AVERAGE_PREP_TIME)
        self.peak_time_adjustment: int = utils_data.to_int(
            kwargs.get('peak_time_adjustment'), 'peak_time_adjustment', 0)
        self.peak_hours: List[Dict] = kwargs.get('peak_hours', [])
        self.timezone: str = kwargs.get('timezone') or DEFAULT_TIMEZONE
        self.date_updated: str = kwargs.get('date_updated') or self.now()
        self.updated_by: str = kwargs.get('updated_by')
        self.record_type = 'establishment'

    @classmethod
    def init_by_company_id(cls, company_id):
        """
        A tenant without a stored settings record works with the defaults
        """
        c = cls(company_id)
        try:
            c.__init__(**c._get_db_item())
        except exceptions.RecordNotFound:
            logger.info(f"init_by_company_id ::: no settings stored for {company_id=}, using defaults")
        return c

    @classmethod
    def init_request_get(cls, request):
        return cls.init_by_company_id(utils_auth.get_company_id_by_request(request))

    @classmethod
    @utils_auth.authenticate_class
    def init_request_update(cls, request):
        logger.info("init_request_update ::: started")
        auth_result = request.auth_result
        utils_auth.require_role(auth_result, 'admin')
        current = cls.init_by_company_id(auth_result['company_id'])
        request_body = utils_data.parse_raw_body(request)
        request_body.pop('company_id', None)
        return cls(auth_result['company_id'], **{
            **current._to_dict(),
            **request_body,
            'request_data': {'auth_result': auth_result},
            'updated_by': auth_result['user_id'],
            'date_updated': None
        })

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_get(self) -> Response:
        return Response(status_code=http200, body=self._to_ui())

    @utils_app.request_exception_handler
    @utils_app.log_start_finish
    def endpoint_update(self) -> Response:
        self._create_db_record()
        return Response(status_code=http200, body=self._to_ui())

    def _get_pk_sk(self) -> Tuple[str, str]:
        return self.pk.format(company_id=self.company_id), self.sk

    @property
    def coordinates(self) -> Optional[LatLon]:
        return optional_lat_lon(self.latitude, self.longitude, 'establishment_')

    def is_peak_time(self, moment: datetime = None) -> bool:
        if not self.peak_hours:
            return True
        moment = moment or datetime.now(ZoneInfo(self.timezone))
        return in_peak_window(self.peak_hours, moment.time())

    def current_peak_adjustment(self, moment: datetime = None) -> int:
        if not self.peak_time_adjustment:
            return 0
        return self.peak_time_adjustment if self.is_peak_time(moment) else 0

    def _to_dict(self):
        return {
            'name_': self.name_,
            'address': self.address,
            'phone': self.phone,
            'is_open': self.is_open,
            'is_delivery_enabled': self.is_delivery_enabled,
            'delivery_fee': self.delivery_fee,
            'min_order_value': self.min_order_value,
            'estimated_delivery_time': self.estimated_delivery_time,
            'distance_fee_enabled': self.distance_fee_enabled,
            'base_delivery_fee': self.base_delivery_fee,
            'price_per_km': self.price_per_km,
            'min_distance_included': self.min_distance_included,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'max_delivery_radius': self.max_delivery_radius,
            'average_prep_time': self.average_prep_time,
            'peak_time_adjustment': self.peak_time_adjustment,
            'peak_hours': self.peak_hours,
            'timezone': self.timezone,
            'date_updated': self.date_updated,
            'updated_by': self.updated_by
        }

    def _init_db_record(self) -> None:
        EntityBase._init_db_record(self)
        self.db_record = utils_data.cleanup_dict(self.db_record, [None])
