"""Connection store behaviour, run against both backends."""
import json
import logging

import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from backend import create_app
from connectors.config import AppConfig
from connectors.connection_store import (
    InMemoryConnectionStore, JsonFileConnectionStore, build_connection_store,
)
from connectors.crypto import TokenCipher
from connectors.models import ConnectionStatus, Platform


@pytest.fixture(params=['memory', 'file'])
def any_store(request, cipher, tmp_path):
    if request.param == 'memory':
        return InMemoryConnectionStore(cipher)
    return JsonFileConnectionStore(cipher, str(tmp_path / 'connections.json'))


def test_new_shop_is_not_connected(any_store, shop):
    assert not any_store.is_connected('google', shop)
    assert any_store.get_google_auth(shop) is None
    assert any_store.list_connections(shop) == []


def test_set_connected_flips_status_without_deleting(any_store, shop):
    any_store.set_connected('meta', True, shop)
    assert any_store.is_connected(Platform.META, shop)

    any_store.set_connected('meta', False, shop)
    assert not any_store.is_connected(Platform.META, shop)
    record = any_store.get_connection(Platform.META, shop)
    assert record.status == ConnectionStatus.DISCONNECTED
    assert record.updated_at


def test_save_google_auth_encrypts_at_rest(any_store, shop):
    any_store.save_google_auth(shop, 'plain-refresh', email='owner@example.com', manager_id='111-222-3333',
                               selected_external_id='1234567890', selected_name='Main', currency_code='USD')

    assert any_store.is_connected('google', shop)
    stored = any_store.get_connection('google', shop)
    assert stored.google.refresh_token != 'plain-refresh'

    auth = any_store.get_google_auth(shop)
    assert auth.refresh_token == 'plain-refresh'
    assert auth.selected_external_id == '1234567890'
    assert auth.currency_code == 'USD'


def test_save_meta_auth_encrypts_at_rest(any_store, shop):
    any_store.save_meta_auth(shop, 'long-token', meta_account_id='42', meta_ad_name='Store Ads')

    stored = any_store.get_connection('meta', shop)
    assert stored.meta.long_lived_token != 'long-token'
    auth = any_store.get_meta_auth(shop)
    assert auth.long_lived_token == 'long-token'
    assert auth.meta_account_id == '42'
    assert auth.meta_ad_id is None


def test_reconnect_overwrites(any_store, shop):
    any_store.save_meta_auth(shop, 'first')
    any_store.set_connected('meta', False, shop)
    any_store.save_meta_auth(shop, 'second')

    assert any_store.is_connected('meta', shop)
    assert any_store.get_meta_auth(shop).long_lived_token == 'second'


def test_empty_shop_is_ignored(any_store):
    any_store.set_connected('google', True, '')
    any_store.save_google_auth(None, 'token')
    assert not any_store.is_connected('google', '')
    assert any_store.get_google_auth('') is None


def test_shops_are_isolated(any_store, shop):
    any_store.save_meta_auth(shop, 'token')
    assert not any_store.is_connected('meta', 'other-shop.myshopify.com')
    assert len(any_store.list_connections(shop)) == 1


def test_undecryptable_token_reads_back_empty(cipher, tmp_path, shop):
    path = str(tmp_path / 'connections.json')
    JsonFileConnectionStore(cipher, path).save_google_auth(shop, 'plain-refresh')

    rekeyed = JsonFileConnectionStore(TokenCipher(Fernet.generate_key().decode()), path)
    assert rekeyed.is_connected('google', shop)
    assert rekeyed.get_google_auth(shop).refresh_token == ''


def test_json_file_persists_without_plaintext(cipher, tmp_path, shop):
    path = tmp_path / 'connections.json'
    JsonFileConnectionStore(cipher, str(path)).save_meta_auth(shop, 'very-secret-token', meta_account_id='42')

    raw = path.read_text(encoding='utf-8')
    assert 'very-secret-token' not in raw
    assert json.loads(raw)[shop]['meta']['status'] == 'connected'

    reopened = JsonFileConnectionStore(cipher, str(path))
    assert reopened.get_meta_auth(shop).long_lived_token == 'very-secret-token'


def test_build_connection_store(cipher, tmp_path):
    file_store = build_connection_store(AppConfig(connection_store='file', data_dir=str(tmp_path)), cipher)
    assert isinstance(file_store, JsonFileConnectionStore)
    assert file_store.path == str(tmp_path / 'connections.json')

    assert isinstance(build_connection_store(AppConfig(connection_store='memory'), cipher), InMemoryConnectionStore)
    assert isinstance(build_connection_store(AppConfig(connection_store='redis'), cipher), InMemoryConnectionStore)


def test_corrupt_file_is_set_aside(cipher, tmp_path, shop, caplog):
    path = tmp_path / 'connections.json'
    path.write_text('{"test-shop.myshopify.com": {', encoding='utf-8')
    store = JsonFileConnectionStore(cipher, str(path))

    with caplog.at_level(logging.ERROR, logger='campaign_pulse'):
        assert store.list_connections(shop) == []
    assert 'not valid JSON' in caplog.text
    assert (tmp_path / 'connections.json.corrupt').read_text(encoding='utf-8').startswith('{')

    store.save_meta_auth(shop, 'token')
    assert store.get_meta_auth(shop).long_lived_token == 'token'


def test_connections_route_survives_a_corrupt_file(cipher, tmp_path, shop):
    path = tmp_path / 'connections.json'
    path.write_text('not json', encoding='utf-8')
    client = TestClient(create_app(AppConfig(log_file=None), JsonFileConnectionStore(cipher, str(path))))

    response = client.get('/connections', headers={'X-Shop-Domain': shop})
    assert response.status_code == 200
    assert response.json()['connections']['google']['connected'] is False
