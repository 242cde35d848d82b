import os
from typing import Dict

import pytest
from chalice.cli import factory
from chalice.local import LocalGateway

from chalicelib.utils import db
from chalicelib.utils.logger import log_message
from test.utils.fake_table import FakeTable
from test.utils.request_utils import make_request, body_of, admin_token

PROJECT_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

TEST_ENV = {
    'GEN_TABLE_NAME': 'deliveryos-test',
    'JWT_SECRET': 'test-secret',
    'JWT_AUDIENCE': 'authenticated',
    'COMPANY_HOSTS': '{"test-domain.com": "company-test", "other-domain.com": "company-other"}',
    'PAYMENT_TIMEOUT_MINUTES': '30',
    'HTTP_TIMEOUT': '5'
}


def local_gateway() -> LocalGateway:
    stage = os.environ.get('stage', 'test')
    config = factory.CLIFactory(
        project_dir=PROJECT_DIR, environ=dict(os.environ)).create_config_obj(chalice_stage_name=stage)
    log_message(f'local_gateway stage = {stage}')
    return LocalGateway(config.chalice_app, config)


@pytest.fixture(scope='session')
def chalice_gateway() -> LocalGateway:
    yield local_gateway()


@pytest.fixture(autouse=True)
def environment(monkeypatch):
    for name, value in TEST_ENV.items():
        monkeypatch.setenv(name, value)
    for name in ('DEFAULT_COMPANY_ID', 'MAPBOX_ACCESS_TOKEN', 'MERCADO_PAGO_ACCESS_TOKEN'):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def fake_table(monkeypatch) -> FakeTable:
    table = FakeTable()
    monkeypatch.setattr(db, '_DB', table)
    return table


def create_test_product(chalice_gateway, **product) -> str:
    response = make_request(chalice_gateway, endpoint='/products', method='POST', json_body=product,
                            token=admin_token())
    assert response['statusCode'] == 201, response['body']
    return body_of(response)['id']


def create_test_menu(chalice_gateway) -> Dict[str, str]:
    return {
        'burger': create_test_product(chalice_gateway, name='X-Burger', category='lanches',
                                      description='Pão e carne', price=25.9),
        'fries': create_test_product(chalice_gateway, name='Batata frita', category='porções', price=12),
        'soda': create_test_product(chalice_gateway, name='Refrigerante', category='bebidas', price=6.5,
                                    tag='gelado')
    }


def create_test_zone(chalice_gateway, **zone) -> Dict:
    response = make_request(chalice_gateway, endpoint='/delivery-zones', method='POST', json_body=zone,
                            token=admin_token())
    assert response['statusCode'] == 201, response['body']
    return body_of(response)


def update_test_establishment(chalice_gateway, **settings) -> Dict:
    response = make_request(chalice_gateway, endpoint='/establishment', method='PUT', json_body=settings,
                            token=admin_token())
    assert response['statusCode'] == 200, response['body']
    return body_of(response)


def open_test_cash_register(chalice_gateway, opening_amount=100, token=None) -> Dict:
    response = make_request(chalice_gateway, endpoint='/cash-registers', method='POST',
                            json_body={'opening_amount': opening_amount}, token=token or admin_token())
    assert response['statusCode'] == 201, response['body']
    return body_of(response)
