from decimal import Decimal

import pytest

from chalicelib.constants import keys_structure
from chalicelib.delivery_zones import DeliveryZone
from chalicelib.establishments import Establishment
from test.utils.fixtures import create_test_zone
from test.utils.request_utils import make_request, body_of, admin_token, client_token, COMPANY_ID


def test_create_zone(chalice_gateway, fake_table):
    zone = create_test_zone(chalice_gateway, name='Centro', fee=4.5, min_order=20, estimated_time=35)
    assert zone['name'] == 'Centro'
    assert zone['fee'] == 4.5
    assert zone['is_active'] is True
    assert zone['sort_order'] == 0

    record = fake_table.items[(keys_structure.delivery_zones_pk.format(company_id=COMPANY_ID), zone['id'])]
    assert record['name_'] == 'Centro'
    assert record['fee'] == Decimal('4.5')


def test_new_zones_go_to_the_end(chalice_gateway):
    create_test_zone(chalice_gateway, name='Centro')
    create_test_zone(chalice_gateway, name='Bela Vista')
    third = create_test_zone(chalice_gateway, name='Pinheiros', sort_order=0)
    assert third['sort_order'] == 2

    response = make_request(chalice_gateway, endpoint='/delivery-zones')
    assert [zone['name'] for zone in body_of(response)] == ['Centro', 'Bela Vista', 'Pinheiros']


def test_zone_without_name_is_rejected(chalice_gateway):
    response = make_request(chalice_gateway, endpoint='/delivery-zones', method='POST', json_body={'fee': 3},
                            token=admin_token())
    assert response['statusCode'] == 400


def test_zone_with_negative_fee_is_rejected(chalice_gateway):
    response = make_request(chalice_gateway, endpoint='/delivery-zones', method='POST',
                            json_body={'name': 'Centro', 'fee': -3}, token=admin_token())
    assert response['statusCode'] == 400


def test_clients_can_not_manage_zones(chalice_gateway):
    response = make_request(chalice_gateway, endpoint='/delivery-zones', method='POST',
                            json_body={'name': 'Centro'}, token=client_token())
    assert response['statusCode'] == 403


def test_toggle_hides_zone_from_customers(chalice_gateway):
    centro = create_test_zone(chalice_gateway, name='Centro')
    create_test_zone(chalice_gateway, name='Bela Vista')

    response = make_request(chalice_gateway, endpoint=f"/delivery-zones/{centro['id']}/toggle", method='POST',
                            token=admin_token())
    assert response['statusCode'] == 200
    assert body_of(response)['is_active'] is False

    public = body_of(make_request(chalice_gateway, endpoint='/delivery-zones'))
    assert [zone['name'] for zone in public] == ['Bela Vista']

    everything = body_of(make_request(chalice_gateway, endpoint='/delivery-zones', query='all=true',
                                      token=admin_token()))
    assert [zone['name'] for zone in everything] == ['Centro', 'Bela Vista']


def test_listing_inactive_zones_requires_admin(chalice_gateway):
    response = make_request(chalice_gateway, endpoint='/delivery-zones', query='all=true', token=client_token())
    assert response['statusCode'] == 403
    response = make_request(chalice_gateway, endpoint='/delivery-zones', query='all=true')
    assert response['statusCode'] == 401


def test_update_zone_and_clear_override(chalice_gateway, fake_table):
    zone = create_test_zone(chalice_gateway, name='Centro', fee=4.5, min_order=20)

    response = make_request(chalice_gateway, endpoint=f"/delivery-zones/{zone['id']}", method='PUT',
                            json_body={'name': 'Centro Histórico', 'fee': ''}, token=admin_token())
    assert response['statusCode'] == 200, response['body']
    body = body_of(response)
    assert body['name'] == 'Centro Histórico'
    assert body['fee'] is None
    assert body['min_order'] == 20

    stored = DeliveryZone.init_get_by_id(COMPANY_ID, zone['id'])
    assert stored.name_ == 'Centro Histórico'
    assert stored.fee is None
    assert stored.min_order == Decimal('20')


@pytest.mark.parametrize('body', [{'fee': -3}, {'min_order': -1}, {'estimated_time': -5}, {'is_active': 'yes'}])
def test_invalid_zone_update_is_rejected(chalice_gateway, body):
    zone = create_test_zone(chalice_gateway, name='Centro', fee=4, min_order=20, estimated_time=35)
    response = make_request(chalice_gateway, endpoint=f"/delivery-zones/{zone['id']}", method='PUT',
                            json_body=body, token=admin_token())
    assert response['statusCode'] == 400
    assert body_of(response)['exception'] == 'ValidationException'

    stored = DeliveryZone.init_get_by_id(COMPANY_ID, zone['id'])
    assert stored.fee == Decimal('4')
    assert stored.min_order == Decimal('20')
    assert stored.estimated_time == 35
    assert stored.is_active is True


def test_update_unknown_zone(chalice_gateway):
    response = make_request(chalice_gateway, endpoint='/delivery-zones/unknown', method='PUT',
                            json_body={'name': 'Centro'}, token=admin_token())
    assert response['statusCode'] == 404


def test_delete_zone(chalice_gateway):
    zone = create_test_zone(chalice_gateway, name='Centro')
    response = make_request(chalice_gateway, endpoint=f"/delivery-zones/{zone['id']}", method='DELETE',
                            token=admin_token())
    assert response['statusCode'] == 200
    assert body_of(make_request(chalice_gateway, endpoint='/delivery-zones')) == []


def test_resolve_terms_falls_back_to_establishment():
    establishment = Establishment(COMPANY_ID, delivery_fee='6', min_order_value='25', estimated_delivery_time=50)
    zone = DeliveryZone(COMPANY_ID, 'zone-1', name='Centro', min_order='0', estimated_time=30)
    assert zone.resolve_terms(establishment) == (Decimal('6'), Decimal('0'), 30)
