"""
Health endpoints and request correlation headers.
"""
import pytest

pytestmark = pytest.mark.django_db


def test_healthz(client, settings):
    response = client.get('/healthz')

    assert response.status_code == 200
    assert response.json() == {'status': 'ok', 'version': settings.VERSION}


def test_healthz_includes_commit(client, settings):
    settings.COMMIT_HASH = 'abc1234'

    assert client.get('/healthz').json()['commit'] == 'abc1234'


def test_readyz_checks_database(client):
    response = client.get('/readyz')

    assert response.status_code == 200
    assert response.json() == {'status': 'ready', 'checks': {'database': True}}


def test_request_id_is_propagated(client):
    response = client.get('/healthz', HTTP_X_REQUEST_ID='req-42')

    assert response['X-Request-ID'] == 'req-42'


def test_request_id_is_generated(client):
    assert client.get('/healthz')['X-Request-ID']
