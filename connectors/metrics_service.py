"""Metrics aggregation: one entry point for every metrics request.

`MetricsService.fetch_metrics` decides between mock and live data, loads the
shop's stored credential, calls the provider client and returns a
`MetricsEnvelope`. Failures never escape; they come back as an envelope with
`error` set.
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import requests

from connectors import google_ads, meta_ads
from connectors.config import AppConfig
from connectors.connection_store import ConnectionStore
from connectors.date_ranges import THIS_MONTH, previous_period, resolve_preset
from connectors.errors import ConnectorError, CredentialsNotConfiguredError, ProviderFetchError, TokenExchangeError
from connectors.http import redact
from connectors.logs import get_logger
from connectors.mock_data import generate_mock_metrics
from connectors.models import PLATFORM_NAMES, AccountInfo, DateRange, MetricsEnvelope, Platform

logger = get_logger('metrics_service')

DEFAULT_CURRENCY = 'USD'


def error_envelope(message: str) -> MetricsEnvelope:
    return MetricsEnvelope(error=message, is_test_data=False)


def describe_failure(ex: Exception) -> str:
    """Fixed, user-facing reason for a failed fetch; never echoes the exception text."""
    if isinstance(ex, ProviderFetchError):
        if ex.status_code is None:
            return 'the provider returned an invalid response'
        return f'the provider returned HTTP {ex.status_code}'
    if isinstance(ex, TokenExchangeError):
        return 'the stored credential was rejected; reconnect the account'
    if isinstance(ex, CredentialsNotConfiguredError):
        return 'OAuth credentials are not configured'
    if isinstance(ex, requests.Timeout):
        return 'the provider did not respond in time'
    if isinstance(ex, requests.RequestException):
        return 'the provider could not be reached'
    return 'unexpected error'


def not_connected_envelope(platform: Platform, message: str) -> MetricsEnvelope:
    empty = google_ads.empty_metrics() if platform == Platform.GOOGLE else meta_ads.empty_metrics()
    return MetricsEnvelope(key_metrics=empty, error=message, is_test_data=False)


class MetricsService:
    def __init__(self, config: AppConfig, store: ConnectionStore):
        self.config = config
        self.store = store

    def fetch_metrics(self, platform, date_range: Optional[DateRange], shop_domain: Optional[str]) -> MetricsEnvelope:
        if self.config.mock_data_enabled:
            try:
                return generate_mock_metrics(platform, date_range)
            except ValueError as ex:
                return MetricsEnvelope(error=str(ex), is_test_data=True)

        try:
            platform = Platform(platform)
        except ValueError:
            return error_envelope(f'Unsupported platform: {platform}')

        if date_range is None:
            date_range = resolve_preset(THIS_MONTH)

        try:
            if platform == Platform.GOOGLE:
                envelope = self._fetch_google(date_range, shop_domain)
            else:
                envelope = self._fetch_meta(date_range, shop_domain)
        except (ConnectorError, requests.RequestException) as ex:
            logger.error('Fetching %s metrics for %s failed: %s', platform.value, shop_domain, redact(ex))
            return error_envelope(f'Failed to fetch {PLATFORM_NAMES[platform]} metrics: {describe_failure(ex)}')
        except Exception as ex:
            logger.exception('Fetching %s metrics for %s failed.', platform.value, shop_domain)
            return error_envelope(f'Failed to fetch {PLATFORM_NAMES[platform]} metrics: {describe_failure(ex)}')

        if envelope.error is None:
            logger.info('Fetched %s metrics for %s (%s to %s): %d campaigns.', platform.value, shop_domain,
                        date_range.start, date_range.end, len(envelope.campaigns))
        return envelope

    def _gather(self, client, account_id: str, date_range: DateRange):
        """Current metrics, previous-period metrics and campaigns, fetched side by side."""
        with ThreadPoolExecutor(max_workers=3) as pool:
            current = pool.submit(client.fetch_metrics, account_id, date_range)
            previous = pool.submit(client.fetch_metrics, account_id, previous_period(date_range))
            campaigns = pool.submit(client.fetch_campaigns, account_id, date_range)
            return current.result(), previous.result(), campaigns.result()

    def _fetch_google(self, date_range: DateRange, shop_domain: Optional[str]) -> MetricsEnvelope:
        if not self.store.is_connected(Platform.GOOGLE, shop_domain):
            return not_connected_envelope(Platform.GOOGLE, 'Google Ads is not connected')
        auth = self.store.get_google_auth(shop_domain)
        if auth is None or not auth.refresh_token:
            return not_connected_envelope(Platform.GOOGLE, 'No Google Ads credentials stored for this shop')
        account_id = auth.selected_external_id or auth.manager_id
        if not account_id:
            return not_connected_envelope(Platform.GOOGLE, 'No Google Ads account selected')

        timeout = self.config.request_timeout_seconds
        access_token = google_ads.refresh_google_access_token(
            auth.refresh_token, self.config.get_credentials(Platform.GOOGLE), timeout=timeout)
        client = google_ads.GoogleAdsClient(
            access_token,
            manager_id=auth.manager_id,
            developer_token=self.config.google_ads_developer_token,
            api_version=self.config.google_ads_api_version,
            timeout=timeout,
        )
        current, previous, campaigns = self._gather(client, account_id, date_range)

        return MetricsEnvelope(
            key_metrics=google_ads.normalize_metrics(current, previous),
            campaigns=google_ads.normalize_campaigns(campaigns),
            account_info=AccountInfo(
                account_name=auth.selected_name or auth.manager_name or 'Google Ads Account',
                account_id=account_id,
                currency=auth.currency_code or DEFAULT_CURRENCY,
            ),
            is_test_data=False,
        )

    def _fetch_meta(self, date_range: DateRange, shop_domain: Optional[str]) -> MetricsEnvelope:
        if not self.store.is_connected(Platform.META, shop_domain):
            return not_connected_envelope(Platform.META, 'Meta Ads is not connected')
        auth = self.store.get_meta_auth(shop_domain)
        if auth is None or not auth.long_lived_token:
            return not_connected_envelope(Platform.META, 'No Meta Ads credentials stored for this shop')
        if not auth.meta_account_id:
            return not_connected_envelope(Platform.META, 'No Meta ad account selected')

        timeout = self.config.request_timeout_seconds
        api_version = self.config.meta_api_version
        if not meta_ads.validate_meta_access_token(auth.long_lived_token, api_version, timeout):
            logger.warning('Stored Meta token for %s was rejected.', shop_domain)
            return error_envelope('Meta access token is invalid or expired; reconnect Meta Ads')

        client = meta_ads.MetaAdsClient(auth.long_lived_token, api_version=api_version, timeout=timeout)
        current, previous, campaigns = self._gather(client, auth.meta_account_id, date_range)

        return MetricsEnvelope(
            key_metrics=meta_ads.normalize_metrics(current, previous),
            campaigns=meta_ads.normalize_campaigns(campaigns),
            account_info=AccountInfo(
                account_name=auth.meta_ad_name or 'Meta Ads Account',
                account_id=auth.meta_account_id,
                currency=DEFAULT_CURRENCY,
            ),
            is_test_data=False,
        )
