import json
import os

# no log file during tests; must be set before `backend` is imported
os.environ.setdefault('LOG_FILE', '')

import pytest
from cryptography.fernet import Fernet

from connectors.config import AppConfig, PlatformCredentials
from connectors.connection_store import InMemoryConnectionStore
from connectors.crypto import TokenCipher

SHOP = 'test-shop.myshopify.com'


class FakeResponse:
    """Just enough of `requests.Response` for the connectors."""

    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload if payload is not None else {})

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError('No JSON object could be decoded')
        return self._payload


@pytest.fixture
def make_response():
    return FakeResponse


@pytest.fixture
def shop():
    return SHOP


@pytest.fixture
def cipher():
    return TokenCipher(Fernet.generate_key().decode())


@pytest.fixture
def store(cipher):
    return InMemoryConnectionStore(cipher)


@pytest.fixture
def mock_config():
    return AppConfig(log_file=None, hmac_key='test-hmac-key')


@pytest.fixture
def live_config():
    return AppConfig(
        environment='production',
        test_mode=False,
        mock_data_enabled=False,
        mock_connections_enabled=False,
        google=PlatformCredentials(client_id='google-id', client_secret='google-secret',
                                   redirect_uri='http://testserver/connections/google/callback'),
        meta=PlatformCredentials(client_id='meta-id', client_secret='meta-secret',
                                 redirect_uri='http://testserver/connections/meta/callback'),
        google_ads_developer_token='dev-token',
        hmac_key='test-hmac-key',
        log_file=None,
    )
