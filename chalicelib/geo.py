import math
from decimal import Decimal
from typing import Tuple, Optional, Any

from chalicelib.constants.constants import EARTH_RADIUS_KM
from chalicelib.utils.exceptions import InvalidCoordinates

# Internal coordinate type: (lat, lon)
LatLon = Tuple[float, float]


def _to_degrees(value: Any, field: str) -> float:
    if value is None or isinstance(value, bool):
        raise InvalidCoordinates(f'{field} is required')
    try:
        degrees = float(value)
    except (TypeError, ValueError):
        raise InvalidCoordinates(f'{field} must be a number')
    if math.isnan(degrees) or math.isinf(degrees):
        raise InvalidCoordinates(f'{field} must be a finite number')
    return degrees


def to_lat_lon(latitude: Any, longitude: Any, prefix: str = '') -> LatLon:
    lat = _to_degrees(latitude, f'{prefix}latitude')
    lon = _to_degrees(longitude, f'{prefix}longitude')
    if not -90 <= lat <= 90:
        raise InvalidCoordinates(f'{prefix}latitude={lat} is out of range [-90, 90]')
    if not -180 <= lon <= 180:
        raise InvalidCoordinates(f'{prefix}longitude={lon} is out of range [-180, 180]')
    return lat, lon


def optional_lat_lon(latitude: Any, longitude: Any, prefix: str = '') -> Optional[LatLon]:
    """
    None when either coordinate is missing, an establishment without a pinned
    location is a valid configuration
    """
    if latitude is None or longitude is None:
        return None
    return to_lat_lon(latitude, longitude, prefix)


def haversine_distance(origin: LatLon, destination: LatLon) -> float:
    """
    Great-circle distance in kilometres between two (lat, lon) points.

    The result does not depend on the order of the arguments and is 0 for
    identical points.
    """
    lat1, lon1 = origin
    lat2, lon2 = destination
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # rounding noise can push a slightly above 1 for antipodal points
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def rounded_distance(distance_km: float, places: int = 2) -> Decimal:
    return Decimal(str(round(distance_km, places)))
