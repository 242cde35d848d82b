"""
Delivery fee calculation.

Distance pricing is tiered: the base fee covers everything up to the
included radius, every kilometre beyond it is charged at price_per_km.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Dict

from chalice import Response

from chalicelib.constants.constants import DEFAULT_BASE_FEE, DEFAULT_PRICE_PER_KM, DEFAULT_MIN_DISTANCE_INCLUDED
from chalicelib.constants.status_codes import http200
from chalicelib.establishments import Establishment
from chalicelib.geo import LatLon, haversine_distance, rounded_distance, to_lat_lon, optional_lat_lon
from chalicelib.utils import app as utils_app, data as utils_data, exceptions
from chalicelib.utils.logger import logger, set_request_id


@dataclass(frozen=True)
class FeeQuote:
    distance: Decimal  # km
    fee: Decimal
    base_fee: Decimal
    extra_distance: Decimal
    extra_fee: Decimal

    def to_ui(self) -> Dict:
        return {
            'success': True,
            'distance': self.distance,
            'fee': self.fee,
            'breakdown': {
                'base_fee': self.base_fee,
                'extra_distance': self.extra_distance,
                'extra_fee': self.extra_fee
            }
        }


@dataclass(frozen=True)
class DeliveryTerms:
    """
    What a delivery costs and promises once zone overrides and establishment defaults are merged
    """
    fee: Decimal
    min_order: Decimal
    estimated_time: int
    distance: Optional[Decimal] = None
    source: str = 'flat'


def _fee_parameter(value, field: str, default: Decimal) -> Decimal:
    parameter = utils_data.to_decimal(value, field, default)
    if parameter < 0:
        raise exceptions.ValidationException(f'{field} must not be negative')
    return parameter


def calculate_delivery_fee(distance_km, base_fee=None, price_per_km=None,
                           min_distance_included=None) -> FeeQuote:
    base_fee = _fee_parameter(base_fee, 'base_fee', DEFAULT_BASE_FEE)
    price_per_km = _fee_parameter(price_per_km, 'price_per_km', DEFAULT_PRICE_PER_KM)
    min_distance_included = _fee_parameter(min_distance_included, 'min_distance_included',
                                           DEFAULT_MIN_DISTANCE_INCLUDED)
    distance = utils_data.to_decimal(distance_km, 'distance')
    if distance < 0:
        raise exceptions.ValidationException('distance must not be negative')

    if distance <= min_distance_included:
        return FeeQuote(distance=distance, fee=utils_data.to_money(base_fee), base_fee=utils_data.to_money(base_fee),
                        extra_distance=Decimal('0'), extra_fee=utils_data.to_money(0))

    extra_distance = distance - min_distance_included
    extra_fee = utils_data.to_money(extra_distance * price_per_km)
    return FeeQuote(
        distance=distance,
        fee=utils_data.to_money(base_fee + extra_fee),
        base_fee=utils_data.to_money(base_fee),
        extra_distance=extra_distance,
        extra_fee=extra_fee
    )


def quote_distance_fee(origin: LatLon, destination: LatLon, base_fee=None, price_per_km=None,
                       min_distance_included=None, max_delivery_radius=None) -> FeeQuote:
    distance = rounded_distance(haversine_distance(origin, destination))
    if max_delivery_radius is not None and distance > utils_data.to_decimal(max_delivery_radius):
        raise exceptions.OutOfDeliveryArea(
            f'Address is {distance} km away, the delivery radius is {max_delivery_radius} km')
    quote = calculate_delivery_fee(distance, base_fee, price_per_km, min_distance_included)
    logger.info(f"quote_distance_fee ::: distance={quote.distance}km, fee={quote.fee}")
    return quote


def resolve_delivery_fee(establishment: Establishment, zone=None, customer: Optional[LatLon] = None) -> DeliveryTerms:
    """
    Distance pricing wins when it is enabled and both ends are geolocated,
    otherwise the zone fee, otherwise the establishment flat fee.
    Minimum order and estimated time always come from the zone when it overrides them.
    """
    if zone is not None:
        fee, min_order, estimated_time = zone.resolve_terms(establishment)
        source = 'zone'
    else:
        fee, min_order, estimated_time = (establishment.delivery_fee, establishment.min_order_value,
                                          establishment.estimated_delivery_time)
        source = 'flat'

    if establishment.distance_fee_enabled and establishment.coordinates and customer:
        quote = quote_distance_fee(
            establishment.coordinates, customer,
            base_fee=establishment.base_delivery_fee,
            price_per_km=establishment.price_per_km,
            min_distance_included=establishment.min_distance_included,
            max_delivery_radius=establishment.max_delivery_radius
        )
        return DeliveryTerms(fee=quote.fee, min_order=min_order, estimated_time=estimated_time,
                             distance=quote.distance, source='distance')

    return DeliveryTerms(fee=utils_data.to_money(fee), min_order=min_order, estimated_time=estimated_time,
                         source=source)


@utils_app.request_exception_handler
@utils_app.log_start_finish
def endpoint_calculate_delivery_fee(request) -> Response:
    """
    Body values win over the stored establishment settings, so the admin panel
    can preview a configuration before saving it
    """
    set_request_id(request)
    body = utils_data.parse_raw_body(request)
    customer = to_lat_lon(body.get('customer_latitude'), body.get('customer_longitude'), 'customer_')

    establishment = Establishment.init_request_get(request)
    origin = optional_lat_lon(body.get('establishment_latitude'), body.get('establishment_longitude'),
                              'establishment_') or establishment.coordinates
    if origin is None:
        raise exceptions.InvalidCoordinates('establishment coordinates are not configured')

    quote = quote_distance_fee(
        origin, customer,
        base_fee=body.get('base_fee', establishment.base_delivery_fee),
        price_per_km=body.get('price_per_km', establishment.price_per_km),
        min_distance_included=body.get('min_distance_included', establishment.min_distance_included),
        max_delivery_radius=body.get('max_delivery_radius', establishment.max_delivery_radius)
    )
    return Response(status_code=http200, body=quote.to_ui())
