"""Process configuration, read once from the environment.

Test mode (anything but `APP_ENV=production`, or `APP_TEST_MODE=true`) turns
on mock metrics and mock connections and lets OAuth credentials fall back to
placeholder values. The resulting `AppConfig` is passed into the services
that need it instead of being read from globals.
"""
import os
from typing import Optional

from pydantic import BaseModel

from connectors.models import Platform

GOOGLE_ADS_API_VERSION = 'v14'
META_API_VERSION = 'v18.0'
DEFAULT_APP_URL = 'http://localhost:8000'


def _truthy(value: Optional[str]) -> bool:
    return str(value or '').strip().lower() in ('1', 'true', 'yes', 'on')


class PlatformCredentials(BaseModel):
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: str

    @property
    def is_complete(self) -> bool:
        return bool(self.client_id and self.client_secret)


class AppConfig(BaseModel):
    environment: str = 'development'
    test_mode: bool = True
    mock_data_enabled: bool = True
    mock_connections_enabled: bool = True

    app_url: str = DEFAULT_APP_URL
    google: PlatformCredentials = PlatformCredentials(
        redirect_uri=f'{DEFAULT_APP_URL}/connections/google/callback')
    meta: PlatformCredentials = PlatformCredentials(
        redirect_uri=f'{DEFAULT_APP_URL}/connections/meta/callback')
    google_ads_developer_token: Optional[str] = None
    google_ads_api_version: str = GOOGLE_ADS_API_VERSION
    meta_api_version: str = META_API_VERSION

    encryption_key: Optional[str] = None
    hmac_key: Optional[str] = None

    data_dir: str = 'data'
    connection_store: str = 'memory'
    log_file: Optional[str] = os.path.join('logs', 'campaign_pulse.log')
    request_timeout_seconds: float = 15.0

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == 'production'

    def get_credentials(self, platform) -> Optional[PlatformCredentials]:
        """OAuth client credentials for `platform`, or None when they are unusable."""
        creds = self.google if Platform(platform) == Platform.GOOGLE else self.meta
        return creds if creds.is_complete else None


def _platform_credentials(prefix: str, platform: str, app_url: str, test_mode: bool) -> PlatformCredentials:
    client_id = os.environ.get(f'{prefix}_CLIENT_ID')
    client_secret = os.environ.get(f'{prefix}_CLIENT_SECRET')
    if test_mode:
        client_id = client_id or f'test_{platform}_client_id'
        client_secret = client_secret or f'test_{platform}_client_secret'
    redirect_uri = os.environ.get(f'{prefix}_REDIRECT_URI') or f'{app_url}/connections/{platform}/callback'
    return PlatformCredentials(client_id=client_id, client_secret=client_secret, redirect_uri=redirect_uri)


def load_config() -> AppConfig:
    environment = os.environ.get('APP_ENV', 'development')
    test_mode = environment.lower() != 'production' or _truthy(os.environ.get('APP_TEST_MODE'))
    app_url = (os.environ.get('APP_URL') or DEFAULT_APP_URL).rstrip('/')

    mock_data = os.environ.get('MOCK_DATA')
    mock_connections = os.environ.get('MOCK_CONNECTIONS')

    return AppConfig(
        environment=environment,
        test_mode=test_mode,
        mock_data_enabled=_truthy(mock_data) if mock_data is not None else test_mode,
        mock_connections_enabled=_truthy(mock_connections) if mock_connections is not None else test_mode,
        app_url=app_url,
        google=_platform_credentials('GOOGLE', 'google', app_url, test_mode),
        meta=_platform_credentials('META', 'meta', app_url, test_mode),
        google_ads_developer_token=os.environ.get('GOOGLE_ADS_DEVELOPER_TOKEN'),
        google_ads_api_version=os.environ.get('GOOGLE_ADS_API_VERSION', GOOGLE_ADS_API_VERSION),
        meta_api_version=os.environ.get('META_API_VERSION', META_API_VERSION),
        encryption_key=os.environ.get('APP_ENCRYPTION_KEY'),
        hmac_key=os.environ.get('DASHBOARD_HMAC_KEY') or os.environ.get('APP_ENCRYPTION_KEY'),
        data_dir=os.environ.get('DATA_DIR', 'data'),
        connection_store=os.environ.get('CONNECTION_STORE', 'memory' if test_mode else 'file'),
        log_file=os.environ.get('LOG_FILE', os.path.join('logs', 'campaign_pulse.log')),
        request_timeout_seconds=float(os.environ.get('REQUEST_TIMEOUT_SECONDS', '15')),
    )
