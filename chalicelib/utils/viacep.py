import re
from typing import Dict

import requests

from chalicelib.utils import exceptions
from chalicelib.utils.mapbox import http_timeout

BASE_URL = 'https://viacep.com.br/ws'


def normalize_cep(cep: str) -> str:
    digits = re.sub(r'\D', '', cep or '')
    if len(digits) != 8:
        raise exceptions.ValidationException(f'CEP {cep!r} must have 8 digits')
    return digits


def lookup_cep(cep: str) -> Dict:
    """
    Brazilian postal code lookup, a CEP without a street is a city-wide CEP and is marked partial
    """
    cep = normalize_cep(cep)
    try:
        response = requests.get(f'{BASE_URL}/{cep}/json/', timeout=http_timeout())
        data = response.json()
    except (requests.RequestException, ValueError) as error:
        raise exceptions.GeocodingServiceError(f'CEP lookup failed: {error}')

    if not response.ok:
        raise exceptions.GeocodingServiceError(f'CEP lookup failed with status {response.status_code}')
    if data.get('erro'):
        raise exceptions.CepNotFound(f'CEP {cep} not found')

    return {
        'cep': cep,
        'street': data.get('logradouro') or '',
        'neighborhood': data.get('bairro') or '',
        'city': data.get('localidade') or '',
        'state': data.get('uf') or '',
        'is_partial': not data.get('logradouro'),
    }
