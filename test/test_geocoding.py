import pytest
import requests

from chalicelib.utils import exceptions, mapbox, viacep
from test.utils.request_utils import make_request, body_of

FEATURE = {
    'id': 'address.123',
    'place_name': 'Avenida Paulista 1578, Bela Vista, São Paulo - São Paulo, 01310-200, Brasil',
    'text': 'Avenida Paulista',
    'address': '1578',
    'center': [-46.6559, -23.5614],
    'context': [
        {'id': 'neighborhood.1', 'text': 'Bela Vista'},
        {'id': 'postcode.2', 'text': '01310-200'},
        {'id': 'place.3', 'text': 'São Paulo'},
        {'id': 'region.4', 'text': 'São Paulo', 'short_code': 'br-sp'},
        {'id': 'country.5', 'text': 'Brasil', 'short_code': 'br'}
    ]
}


class FakeResponse:
    def __init__(self, data, status_code=200):
        self._data = data
        self.status_code = status_code

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._data


@pytest.fixture
def http_get(monkeypatch):
    """Replaces requests.get, the queued responses are returned in order"""
    calls, responses = [], []

    def get(url, params=None, timeout=None):
        calls.append({'url': url, 'params': params, 'timeout': timeout})
        response = responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(requests, 'get', get)
    return calls, responses


def test_parse_feature():
    assert mapbox.parse_feature(FEATURE) == {
        'place_id': 'address.123',
        'place_name': FEATURE['place_name'],
        'street': 'Avenida Paulista',
        'number': '1578',
        'neighborhood': 'Bela Vista',
        'city': 'São Paulo',
        'state': 'SP',
        'postcode': '01310200',
        'latitude': -23.5614,
        'longitude': -46.6559
    }


def test_parse_feature_uses_locality_without_neighborhood():
    feature = {**FEATURE, 'context': [{'id': 'locality.9', 'text': 'Centro'}]}
    parsed = mapbox.parse_feature(feature)
    assert parsed['neighborhood'] == 'Centro'
    assert parsed['city'] == ''
    assert parsed['state'] == ''


def test_get_route_sends_lon_lat(monkeypatch, http_get):
    calls, responses = http_get
    monkeypatch.setenv('MAPBOX_ACCESS_TOKEN', 'pk.test')
    responses.append(FakeResponse({'code': 'Ok', 'routes': [{'distance': 2500.5, 'duration': 420.0}]}))
    assert mapbox.get_route((-23.5505, -46.6333), (-23.5614, -46.6559)) == {'distance': 2500.5, 'duration': 420.0}
    assert calls[0]['url'].endswith('/directions/v5/mapbox/driving/-46.6333,-23.5505;-46.6559,-23.5614')
    assert calls[0]['params']['access_token'] == 'pk.test'
    assert calls[0]['timeout'] == 5.0


def test_get_route_without_token():
    with pytest.raises(exceptions.ServiceNotConfigured):
        mapbox.get_route((0, 0), (0, 1))


@pytest.mark.parametrize('response', [
    FakeResponse({'code': 'NoRoute', 'routes': []}),
    FakeResponse({'message': 'Not Authorized - Invalid Token'}, status_code=401),
    requests.ConnectionError('connection refused')
])
def test_get_route_errors(monkeypatch, http_get, response):
    monkeypatch.setenv('MAPBOX_ACCESS_TOKEN', 'pk.test')
    http_get[1].append(response)
    with pytest.raises(exceptions.RoutingServiceError):
        mapbox.get_route((0, 0), (0, 1))


def test_normalize_cep():
    assert viacep.normalize_cep('01310-200') == '01310200'
    with pytest.raises(exceptions.ValidationException):
        viacep.normalize_cep('1234')


def test_lookup_cep(http_get):
    calls, responses = http_get
    responses.append(FakeResponse({'cep': '01310-200', 'logradouro': 'Avenida Paulista', 'bairro': 'Bela Vista',
                                   'localidade': 'São Paulo', 'uf': 'SP'}))
    assert viacep.lookup_cep('01310-200') == {
        'cep': '01310200',
        'street': 'Avenida Paulista',
        'neighborhood': 'Bela Vista',
        'city': 'São Paulo',
        'state': 'SP',
        'is_partial': False
    }
    assert calls[0]['url'] == 'https://viacep.com.br/ws/01310200/json/'


def test_lookup_city_wide_cep_is_partial(http_get):
    http_get[1].append(FakeResponse({'cep': '13165-000', 'logradouro': '', 'bairro': '',
                                     'localidade': 'Engenheiro Coelho', 'uf': 'SP'}))
    assert viacep.lookup_cep('13165000')['is_partial'] is True


def test_geocode_endpoint(chalice_gateway, monkeypatch, http_get):
    calls, responses = http_get
    monkeypatch.setenv('MAPBOX_ACCESS_TOKEN', 'pk.test')
    responses.append(FakeResponse({'features': [FEATURE]}))
    response = make_request(chalice_gateway, endpoint='/geocode', query='q=Avenida%20Paulista')
    assert response['statusCode'] == 200
    body = body_of(response)
    assert body['success'] is True
    assert body['suggestions'][0]['street'] == 'Avenida Paulista'
    assert calls[0]['params']['country'] == 'BR'
    assert calls[0]['params']['types'] == 'address,poi'
    assert calls[0]['params']['limit'] == 5


def test_geocode_short_query(chalice_gateway):
    response = make_request(chalice_gateway, endpoint='/geocode', query='q=ab')
    assert response['statusCode'] == 400


def test_geocode_without_token(chalice_gateway):
    response = make_request(chalice_gateway, endpoint='/geocode', query='q=Avenida')
    assert response['statusCode'] == 500
    assert body_of(response)['exception'] == 'ServiceNotConfigured'


def test_geocode_upstream_error(chalice_gateway, monkeypatch, http_get):
    monkeypatch.setenv('MAPBOX_ACCESS_TOKEN', 'pk.test')
    http_get[1].append(FakeResponse({'message': 'Rate limit exceeded'}, status_code=429))
    response = make_request(chalice_gateway, endpoint='/geocode', query='q=Avenida')
    assert response['statusCode'] == 502


def test_cep_endpoint(chalice_gateway, http_get):
    http_get[1].append(FakeResponse({'cep': '01310-200', 'logradouro': 'Avenida Paulista', 'bairro': 'Bela Vista',
                                     'localidade': 'São Paulo', 'uf': 'SP'}))
    response = make_request(chalice_gateway, endpoint='/cep/01310-200')
    assert response['statusCode'] == 200
    assert body_of(response)['address']['city'] == 'São Paulo'


def test_cep_endpoint_not_found(chalice_gateway, http_get):
    http_get[1].append(FakeResponse({'erro': True}))
    response = make_request(chalice_gateway, endpoint='/cep/99999999')
    assert response['statusCode'] == 404
    assert body_of(response)['exception'] == 'CepNotFound'


def test_cep_endpoint_invalid(chalice_gateway):
    response = make_request(chalice_gateway, endpoint='/cep/123')
    assert response['statusCode'] == 400
