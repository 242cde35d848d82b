"""
Mapbox client.

Talks to the Directions and Geocoding APIs over HTTP and returns normalized
outputs, internal coordinates are (lat, lon) and Mapbox expects lon,lat.
"""
import os
import re
from typing import Dict, List, Optional, Tuple

import requests

from chalicelib.utils import exceptions
from chalicelib.utils.logger import logger

BASE_URL = 'https://api.mapbox.com'

LatLon = Tuple[float, float]


def access_token() -> Optional[str]:
    return os.environ.get('MAPBOX_ACCESS_TOKEN') or None


def http_timeout() -> float:
    return float(os.environ.get('HTTP_TIMEOUT', 5))


def format_coordinates(coords: List[LatLon]) -> str:
    """Convert list of (lat, lon) to 'lon,lat;lon,lat;...'"""
    return ';'.join([f"{lon},{lat}" for lat, lon in coords])


def get_route(origin: LatLon, destination: LatLon, profile: str = 'driving') -> Dict[str, float]:
    """
    Returns:
        {
            "distance": float, # in meters
            "duration": float, # in seconds
        }
    """
    token = access_token()
    if not token:
        raise exceptions.ServiceNotConfigured('MAPBOX_ACCESS_TOKEN is not set')

    url = f"{BASE_URL}/directions/v5/mapbox/{profile}/{format_coordinates([origin, destination])}"
    try:
        response = requests.get(
            url,
            params={'access_token': token, 'overview': 'false'},
            timeout=http_timeout()
        )
        data = response.json()
    except (requests.RequestException, ValueError) as error:
        raise exceptions.RoutingServiceError(f'Directions request failed: {error}')

    if not response.ok or data.get('code') != 'Ok' or not data.get('routes'):
        raise exceptions.RoutingServiceError(
            f"Directions error: {data.get('message') or data.get('code') or response.status_code}")

    route = data['routes'][0]
    logger.debug(f"get_route ::: distance={route['distance']}m, duration={route['duration']}s")
    return {
        'distance': route['distance'],
        'duration': route['duration'],
    }


def _context_entry(context: List[Dict], kind: str) -> Optional[Dict]:
    for entry in context:
        if entry.get('id', '').startswith(f'{kind}.'):
            return entry
    return None


def parse_feature(feature: Dict) -> Dict:
    context = feature.get('context') or []
    neighborhood = _context_entry(context, 'neighborhood') or _context_entry(context, 'locality') or {}
    place = _context_entry(context, 'place') or {}
    region = _context_entry(context, 'region') or {}
    postcode = _context_entry(context, 'postcode') or {}
    longitude, latitude = (feature.get('center') or [None, None])[:2]
    return {
        'place_id': feature.get('id'),
        'place_name': feature.get('place_name'),
        'street': feature.get('text', ''),
        'number': feature.get('address', ''),
        'neighborhood': neighborhood.get('text', ''),
        'city': place.get('text', ''),
        'state': (region.get('short_code') or '').upper().replace('BR-', ''),
        'postcode': re.sub(r'\D', '', postcode.get('text', '')),
        'latitude': latitude,
        'longitude': longitude,
    }


def search_addresses(query: str, limit: int = 5) -> List[Dict]:
    token = access_token()
    if not token:
        raise exceptions.ServiceNotConfigured('MAPBOX_ACCESS_TOKEN is not set')

    url = f"{BASE_URL}/geocoding/v5/mapbox.places/{requests.utils.quote(query)}.json"
    try:
        response = requests.get(
            url,
            params={
                'access_token': token,
                'country': 'BR',
                'language': 'pt',
                'types': 'address,poi',
                'limit': limit,
            },
            timeout=http_timeout()
        )
        data = response.json()
    except (requests.RequestException, ValueError) as error:
        raise exceptions.GeocodingServiceError(f'Geocoding request failed: {error}')

    if not response.ok:
        raise exceptions.GeocodingServiceError(f"Geocoding error: {data.get('message') or response.status_code}")

    return [parse_feature(feature) for feature in data.get('features', [])]
