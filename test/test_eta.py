from datetime import datetime
from decimal import Decimal

import pytest

from chalicelib import eta
from chalicelib.establishments import Establishment, in_peak_window, parse_clock
from chalicelib.utils import exceptions, mapbox
from test.utils.request_utils import make_request, body_of, COMPANY_ID

ESTABLISHMENT = (-23.5505, -46.6333)
CUSTOMER = (-23.5614, -46.6559)


@pytest.fixture
def routing(monkeypatch):
    calls = []

    def get_route(origin, destination, profile='driving'):
        calls.append((origin, destination))
        return {'distance': 3456.0, 'duration': 601.0}

    monkeypatch.setattr(mapbox, 'get_route', get_route)
    return calls


def test_travel_time_without_origin_is_default():
    assert eta.estimate_travel(None, CUSTOMER) == (20, Decimal('0'), 'default')


def test_travel_time_from_routing_api(routing):
    travel_time, distance, source = eta.estimate_travel(ESTABLISHMENT, CUSTOMER)
    assert (travel_time, distance, source) == (11, Decimal('3.5'), 'routing_api')
    assert routing == [(ESTABLISHMENT, CUSTOMER)]


def test_travel_time_falls_back_to_haversine_without_token():
    travel_time, distance, source = eta.estimate_travel(ESTABLISHMENT, CUSTOMER)
    assert (travel_time, distance, source) == (6, Decimal('2.6'), 'haversine')


def test_travel_time_falls_back_to_haversine_on_routing_error(monkeypatch):
    def broken_route(origin, destination, profile='driving'):
        raise exceptions.RoutingServiceError('NoRoute')

    monkeypatch.setattr(mapbox, 'get_route', broken_route)
    assert eta.estimate_travel(ESTABLISHMENT, CUSTOMER)[2] == 'haversine'


def test_estimate_window(routing):
    estimate = eta.estimate_eta(25, 5, ESTABLISHMENT, CUSTOMER)
    assert estimate.prep_time == 30
    assert estimate.travel_time == 11
    assert (estimate.total_min, estimate.total_max) == (41, 51)
    assert estimate.display_text == '41-51 min'
    assert estimate.to_ui()['eta']['source'] == 'routing_api'


@pytest.mark.parametrize('prep, adjustment', [(0, 0), (1, 0), (30, 15), (90, 30)])
def test_window_bounds_hold(prep, adjustment):
    estimate = eta.estimate_eta(prep, adjustment, ESTABLISHMENT, CUSTOMER)
    assert estimate.total_max >= estimate.total_min >= estimate.prep_time


@pytest.mark.parametrize('prep, adjustment', [(-1, 0), (10, -5)])
def test_negative_minutes_are_rejected(prep, adjustment):
    with pytest.raises(exceptions.ValidationException):
        eta.estimate_eta(prep, adjustment, ESTABLISHMENT, CUSTOMER)


@pytest.mark.parametrize('prep, adjustment', [(Decimal('12.9'), 0), (20, 0.5), ('15.2', 0)])
def test_fractional_minutes_are_rejected(prep, adjustment):
    with pytest.raises(exceptions.ValidationException):
        eta.estimate_eta(prep, adjustment, None, CUSTOMER)


def test_whole_minutes_in_any_number_form():
    estimate = eta.estimate_eta(Decimal('12'), '5', None, CUSTOMER)
    assert estimate.prep_time == 17
    assert estimate.display_text == '37-47 min'


def test_peak_windows():
    windows = [{'start': '18:00', 'end': '21:00'}, {'start': '23:00', 'end': '01:30'}]
    assert in_peak_window(windows, parse_clock('18:00'))
    assert in_peak_window(windows, parse_clock('20:59'))
    assert not in_peak_window(windows, parse_clock('21:00'))
    assert in_peak_window(windows, parse_clock('00:45'))
    assert not in_peak_window(windows, parse_clock('12:00'))


def test_peak_adjustment_applies_inside_windows_only():
    establishment = Establishment(COMPANY_ID, average_prep_time=20, peak_time_adjustment=10,
                                  peak_hours=[{'start': '18:00', 'end': '21:00'}])
    assert establishment.current_peak_adjustment(datetime(2026, 3, 6, 19, 30)) == 10
    assert establishment.current_peak_adjustment(datetime(2026, 3, 6, 15, 0)) == 0


def test_peak_adjustment_without_windows_always_applies():
    establishment = Establishment(COMPANY_ID, peak_time_adjustment=10)
    assert establishment.current_peak_adjustment(datetime(2026, 3, 6, 4, 0)) == 10


def test_estimate_for_establishment():
    establishment = Establishment(COMPANY_ID, average_prep_time=20, peak_time_adjustment=10,
                                  peak_hours=[{'start': '18:00', 'end': '21:00'}],
                                  latitude=ESTABLISHMENT[0], longitude=ESTABLISHMENT[1])
    estimate = eta.estimate_for_establishment(establishment, CUSTOMER, datetime(2026, 3, 6, 19, 30))
    assert estimate.prep_time == 30
    assert estimate.display_text == '36-46 min'


def test_invalid_clock_is_rejected():
    with pytest.raises(exceptions.ValidationException):
        parse_clock('25:99')


def test_endpoint(chalice_gateway):
    response = make_request(chalice_gateway, endpoint='/eta', method='POST', json_body={
        'customer_latitude': CUSTOMER[0],
        'customer_longitude': CUSTOMER[1],
        'establishment_latitude': ESTABLISHMENT[0],
        'establishment_longitude': ESTABLISHMENT[1],
        'average_prep_time': 20,
        'peak_time_adjustment': 0
    })
    assert response['statusCode'] == 200
    body = body_of(response)
    assert body['success'] is True
    assert body['display_text'] == '26-36 min'
    assert body['eta']['source'] == 'haversine'
    assert body['eta']['distance'] == 2.6


def test_endpoint_without_establishment_location(chalice_gateway):
    response = make_request(chalice_gateway, endpoint='/eta', method='POST', json_body={
        'customer_latitude': CUSTOMER[0], 'customer_longitude': CUSTOMER[1]})
    assert response['statusCode'] == 200
    body = body_of(response)
    assert body['eta']['source'] == 'default'
    assert body['display_text'] == '50-60 min'


def test_endpoint_with_invalid_coordinates(chalice_gateway):
    response = make_request(chalice_gateway, endpoint='/eta', method='POST', json_body={
        'customer_latitude': 123, 'customer_longitude': CUSTOMER[1]})
    assert response['statusCode'] == 400
    assert body_of(response)['exception'] == 'InvalidCoordinates'


def test_endpoint_with_fractional_prep_time(chalice_gateway):
    response = make_request(chalice_gateway, endpoint='/eta', method='POST', json_body={
        'customer_latitude': CUSTOMER[0], 'customer_longitude': CUSTOMER[1], 'average_prep_time': 12.9})
    assert response['statusCode'] == 400
    assert body_of(response)['exception'] == 'ValidationException'
