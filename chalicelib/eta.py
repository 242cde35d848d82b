"""
Delivery ETA estimation.

total = preparation time (with peak adjustment) + travel time, shown as a
window with a fixed buffer on top.
"""
import math
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Tuple

from chalice import Response

from chalicelib.constants.constants import FALLBACK_SPEED_KMH, FALLBACK_TRAVEL_TIME, ETA_BUFFER_MINUTES
from chalicelib.constants.status_codes import http200
from chalicelib.establishments import Establishment
from chalicelib.geo import LatLon, haversine_distance, rounded_distance, to_lat_lon, optional_lat_lon
from chalicelib.utils import app as utils_app, data as utils_data, exceptions, mapbox
from chalicelib.utils.logger import logger, set_request_id

SOURCE_ROUTING_API = 'routing_api'
SOURCE_HAVERSINE = 'haversine'
SOURCE_DEFAULT = 'default'


@dataclass(frozen=True)
class EtaEstimate:
    prep_time: int
    travel_time: int
    total_min: int
    total_max: int
    distance: Decimal
    source: str

    @property
    def display_text(self) -> str:
        return f'{self.total_min}-{self.total_max} min'

    def to_ui(self) -> Dict:
        return {
            'success': True,
            'eta': asdict(self),
            'display_text': self.display_text
        }


def _non_negative_minutes(value, field: str) -> int:
    minutes = utils_data.to_int(value, field, 0)
    if minutes < 0:
        raise exceptions.ValidationException(f'{field} must not be negative')
    return minutes


def travel_time_from_route(route: Dict) -> Tuple[int, Decimal]:
    return math.ceil(route['duration'] / 60), rounded_distance(route['distance'] / 1000, 1)


def travel_time_from_distance(origin: LatLon, destination: LatLon) -> Tuple[int, Decimal]:
    distance = haversine_distance(origin, destination)
    return math.ceil(distance / FALLBACK_SPEED_KMH * 60), rounded_distance(distance, 1)


def estimate_travel(origin: Optional[LatLon], destination: LatLon) -> Tuple[int, Decimal, str]:
    """
    Routing API first, straight-line distance at city speed when it is not
    configured or fails, a fixed travel time without an origin
    """
    if origin is None:
        return FALLBACK_TRAVEL_TIME, Decimal('0'), SOURCE_DEFAULT
    try:
        travel_time, distance = travel_time_from_route(mapbox.get_route(origin, destination))
        return travel_time, distance, SOURCE_ROUTING_API
    except exceptions.ServiceNotConfigured:
        logger.info('estimate_travel ::: routing is not configured, using straight-line distance')
    except exceptions.RoutingServiceError as error:
        logger.warning(f'estimate_travel ::: routing failed ({error}), using straight-line distance')
    travel_time, distance = travel_time_from_distance(origin, destination)
    return travel_time, distance, SOURCE_HAVERSINE


def estimate_eta(average_prep_time, peak_time_adjustment, origin: Optional[LatLon],
                 destination: LatLon) -> EtaEstimate:
    prep_time = (_non_negative_minutes(average_prep_time, 'average_prep_time') +
                 _non_negative_minutes(peak_time_adjustment, 'peak_time_adjustment'))
    travel_time, distance, source = estimate_travel(origin, destination)
    total_min = prep_time + travel_time
    estimate = EtaEstimate(
        prep_time=prep_time,
        travel_time=travel_time,
        total_min=total_min,
        total_max=total_min + ETA_BUFFER_MINUTES,
        distance=distance,
        source=source
    )
    logger.info(f"estimate_eta ::: prep={prep_time}min, travel={travel_time}min, "
                f"total={estimate.display_text}, {source=}")
    return estimate


def estimate_for_establishment(establishment: Establishment, destination: LatLon,
                               moment: datetime = None) -> EtaEstimate:
    return estimate_eta(
        establishment.average_prep_time,
        establishment.current_peak_adjustment(moment),
        establishment.coordinates,
        destination
    )


@utils_app.request_exception_handler
@utils_app.log_start_finish
def endpoint_calculate_eta(request) -> Response:
    set_request_id(request)
    body = utils_data.parse_raw_body(request)
    customer = to_lat_lon(body.get('customer_latitude'), body.get('customer_longitude'), 'customer_')

    establishment = Establishment.init_request_get(request)
    origin = optional_lat_lon(body.get('establishment_latitude'), body.get('establishment_longitude'),
                              'establishment_') or establishment.coordinates
    estimate = estimate_eta(
        body.get('average_prep_time', establishment.average_prep_time),
        body.get('peak_time_adjustment', establishment.current_peak_adjustment()),
        origin,
        customer
    )
    return Response(status_code=http200, body=estimate.to_ui())
