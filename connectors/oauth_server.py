"""OAuth start/callback routes for the Google Ads and Meta connections.

Mounted by `backend.py`:

  GET /connections/{platform}/start     -> redirect to the provider consent page
  GET /connections/{platform}/callback  -> exchange the code, store the credential

Every outcome ends in a redirect back to `/connections` with either
`?{platform}_status=connected` or `?{platform}_error=<reason>`.

With mock connections enabled (test mode) `start` skips the provider and marks
the platform connected straight away.
"""
import urllib.parse
from typing import Optional

import requests
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from connectors import google_ads, meta_ads
from connectors import state as state_helper
from connectors.config import AppConfig
from connectors.connection_store import ConnectionStore
from connectors.dependencies import get_config, get_shop_domain, get_store
from connectors.errors import ConnectorError
from connectors.http import redact
from connectors.logs import get_logger
from connectors.models import Platform

logger = get_logger('oauth_server')

router = APIRouter(prefix='/connections', tags=['oauth'])

PROVIDER_ERRORS = (ConnectorError, requests.RequestException)


def _back_to_connections(platform: Platform, error: Optional[str] = None) -> RedirectResponse:
    if error:
        query = urllib.parse.urlencode({f'{platform.value}_error': error})
    else:
        query = urllib.parse.urlencode({f'{platform.value}_status': 'connected'})
    return RedirectResponse(f'/connections?{query}', status_code=302)


def build_authorize_url(platform: Platform, config: AppConfig, state: str) -> Optional[str]:
    """Provider consent URL, or None when the platform has no usable client credentials."""
    creds = config.get_credentials(platform)
    if creds is None:
        return None
    if platform == Platform.GOOGLE:
        params = {
            'client_id': creds.client_id,
            'redirect_uri': creds.redirect_uri,
            'response_type': 'code',
            'access_type': 'offline',
            'include_granted_scopes': 'true',
            'prompt': 'consent',
            'scope': ' '.join(google_ads.GOOGLE_OAUTH_SCOPES),
            'state': state,
        }
        return f'{google_ads.GOOGLE_OAUTH_AUTHORIZE_URL}?{urllib.parse.urlencode(params)}'
    params = {
        'client_id': creds.client_id,
        'redirect_uri': creds.redirect_uri,
        'response_type': 'code',
        'scope': ','.join(meta_ads.META_OAUTH_SCOPES),
        'state': state,
    }
    base = meta_ads.META_OAUTH_DIALOG_URL.format(version=config.meta_api_version)
    return f'{base}?{urllib.parse.urlencode(params)}'


@router.get('/{platform}/start')
def start_oauth(platform: Platform, shop_domain: Optional[str] = Depends(get_shop_domain),
                config: AppConfig = Depends(get_config), store: ConnectionStore = Depends(get_store)):
    if not shop_domain:
        return _back_to_connections(platform, 'missing_shop')

    if config.mock_connections_enabled:
        store.set_connected(platform, True, shop_domain)
        logger.info('Mock connections enabled; marked %s connected for %s.', platform.value, shop_domain)
        return _back_to_connections(platform)

    token = state_helper.make_state_token(shop_domain, config.hmac_key)
    url = build_authorize_url(platform, config, token)
    if url is None:
        logger.error('%s OAuth credentials not configured.', platform.value)
        return _back_to_connections(platform, 'missing_credentials')
    return RedirectResponse(url, status_code=302)


def _complete_google(code: str, shop_domain: str, config: AppConfig, store: ConnectionStore) -> Optional[str]:
    """Store the Google refresh token. Returns an error reason, or None on success."""
    creds = config.get_credentials(Platform.GOOGLE)
    if creds is None:
        logger.error('Google credentials not found in configuration.')
        return 'missing_credentials'
    timeout = config.request_timeout_seconds
    try:
        tokens = google_ads.exchange_google_code(code, creds, timeout=timeout)
    except PROVIDER_ERRORS as ex:
        logger.error('Google code exchange failed for %s: %s', shop_domain, redact(ex))
        return 'token_exchange_failed'

    refresh_token = tokens.get('refresh_token')
    if not refresh_token:
        # Google omits it when the user already granted offline access
        return 'missing_refresh_token'

    account = None
    if tokens.get('access_token'):
        client = google_ads.GoogleAdsClient(tokens['access_token'], developer_token=config.google_ads_developer_token,
                                            api_version=config.google_ads_api_version, timeout=timeout)
        try:
            accounts = client.list_accessible_customers()
            account = accounts[0] if accounts else None
        except PROVIDER_ERRORS as ex:
            logger.warning('Could not list Google Ads accounts for %s: %s', shop_domain, redact(ex))

    store.save_google_auth(
        shop_domain,
        refresh_token,
        selected_external_id=account['customer_id'] if account else None,
        selected_name=account['name'] if account else None,
        currency_code=account['currency_code'] if account else None,
    )
    return None


def _complete_meta(code: str, shop_domain: str, config: AppConfig, store: ConnectionStore) -> Optional[str]:
    """Store the Meta long-lived token. Returns an error reason, or None on success."""
    creds = config.get_credentials(Platform.META)
    if creds is None:
        logger.error('Meta credentials not found in configuration.')
        return 'missing_credentials'
    timeout = config.request_timeout_seconds
    api_version = config.meta_api_version
    try:
        short_lived = meta_ads.exchange_meta_code(code, creds, api_version, timeout)
    except PROVIDER_ERRORS as ex:
        logger.error('Meta code exchange failed for %s: %s', shop_domain, redact(ex))
        return 'token_exchange_failed'

    try:
        token = meta_ads.exchange_for_long_lived_token(short_lived, creds, api_version, timeout)
    except PROVIDER_ERRORS as ex:
        logger.warning('Meta long-lived exchange failed for %s, storing short-lived token: %s',
                       shop_domain, redact(ex))
        token = short_lived

    account = None
    try:
        accounts = meta_ads.MetaAdsClient(token, api_version, timeout).list_ad_accounts()
        account = accounts[0] if accounts else None
    except PROVIDER_ERRORS as ex:
        logger.warning('Could not list Meta ad accounts for %s: %s', shop_domain, redact(ex))

    store.save_meta_auth(
        shop_domain,
        token,
        meta_account_id=account['account_id'] if account else None,
        meta_ad_name=account['name'] if account else None,
    )
    return None


@router.get('/{platform}/callback')
def oauth_callback(platform: Platform, code: Optional[str] = None, state: Optional[str] = None,
                   error: Optional[str] = None, config: AppConfig = Depends(get_config),
                   store: ConnectionStore = Depends(get_store)):
    if error:
        return _back_to_connections(platform, error)
    shop_domain = state_helper.verify_state_token(state, config.hmac_key)
    if not shop_domain:
        return _back_to_connections(platform, 'invalid_state')
    if not code:
        return _back_to_connections(platform, 'missing_code')

    if platform == Platform.GOOGLE:
        reason = _complete_google(code, shop_domain, config, store)
    else:
        reason = _complete_meta(code, shop_domain, config, store)
    if reason:
        return _back_to_connections(platform, reason)

    logger.info('Connected %s for %s.', platform.value, shop_domain)
    return _back_to_connections(platform)
