"""Google Ads connector: REST client, OAuth token helpers and response normalizer.

Talks to the Google Ads REST API directly (`googleAds:search` with GAQL) using
a short-lived access token obtained from the stored refresh token on every
metrics request. The normalizer reduces the search results to the canonical
metric set:

    clicks, impressions, cost, conversions, revenue, roas, ctr, cpc

The REST API spells fields in camelCase (`costMicros`); the snake_case names
used in GAQL (`cost_micros`) are accepted too.
"""
from typing import Dict, List, Optional, Union

import pandas as pd
import requests

from connectors.errors import CredentialsNotConfiguredError, TokenExchangeError
from connectors.formatting import (
    build_key_metrics, format_count, format_currency, format_number, format_percentage, format_ratio, safe_divide,
    to_number,
)
from connectors.http import is_success, read_json, redact
from connectors.logs import get_logger
from connectors.models import CampaignRow, CampaignStatus, DateRange, MetricKey, MetricPoint

logger = get_logger('google_ads')

PLATFORM = 'google'
GOOGLE_ADS_BASE_URL = 'https://googleads.googleapis.com'
GOOGLE_OAUTH_TOKEN_URL = 'https://oauth2.googleapis.com/token'
GOOGLE_OAUTH_AUTHORIZE_URL = 'https://accounts.google.com/o/oauth2/v2/auth'
GOOGLE_OAUTH_SCOPES = ('openid', 'email', 'profile', 'https://www.googleapis.com/auth/adwords')
MICROS = 1_000_000
CAMPAIGN_LIMIT = 20

STATUS_MAP = {
    'ENABLED': CampaignStatus.ACTIVE,
    'PAUSED': CampaignStatus.PAUSED,
    'REMOVED': CampaignStatus.REMOVED,
}

METRIC_ORDER = (
    MetricKey.CLICKS, MetricKey.IMPRESSIONS, MetricKey.COST, MetricKey.CONVERSIONS,
    MetricKey.REVENUE, MetricKey.ROAS, MetricKey.CTR, MetricKey.CPC,
)

METRIC_FORMATS = {
    MetricKey.CLICKS: format_number,
    MetricKey.IMPRESSIONS: format_number,
    MetricKey.COST: format_currency,
    MetricKey.CONVERSIONS: format_count,
    MetricKey.REVENUE: format_currency,
    MetricKey.ROAS: format_ratio,
    MetricKey.CTR: format_percentage,
    MetricKey.CPC: format_currency,
}

# summed column -> the json_normalize column names it may arrive under
SUM_COLUMNS = {
    'clicks': ('metrics.clicks',),
    'impressions': ('metrics.impressions',),
    'cost_micros': ('metrics.cost_micros', 'metrics.costMicros'),
    'conversions': ('metrics.conversions',),
    'conversions_value': ('metrics.conversions_value', 'metrics.conversionsValue'),
}


def map_campaign_status(status: Optional[str]) -> CampaignStatus:
    return STATUS_MAP.get(status or '', CampaignStatus.UNKNOWN)


def _results(payload: Union[Dict, List, None]) -> List[Dict]:
    if payload is None:
        return []
    if isinstance(payload, list):
        return payload
    return payload.get('results') or []


def _field(section: Dict, snake: str):
    """Read `snake` from a REST result section, falling back to its camelCase spelling."""
    if snake in section:
        return section[snake]
    head, *rest = snake.split('_')
    return section.get(head + ''.join(part.title() for part in rest))


def summarize_results(results: List[Dict]) -> Dict[str, float]:
    """Sum the raw metric columns over every result row."""
    frame = pd.json_normalize(results) if results else pd.DataFrame()
    totals = {}
    for name, columns in SUM_COLUMNS.items():
        total = 0.0
        for column in columns:
            if column in frame.columns:
                total += float(pd.to_numeric(frame[column], errors='coerce').fillna(0).sum())
        totals[name] = total
    return totals


def metric_values(totals: Dict[str, float]) -> Dict[MetricKey, float]:
    """Raw sums -> currency units and derived ratios (0 on a zero denominator)."""
    cost = totals['cost_micros'] / MICROS
    revenue = totals['conversions_value']
    clicks = totals['clicks']
    impressions = totals['impressions']
    return {
        MetricKey.CLICKS: clicks,
        MetricKey.IMPRESSIONS: impressions,
        MetricKey.COST: cost,
        MetricKey.CONVERSIONS: totals['conversions'],
        MetricKey.REVENUE: revenue,
        MetricKey.ROAS: safe_divide(revenue, cost),
        MetricKey.CTR: safe_divide(clicks, impressions) * 100,
        MetricKey.CPC: safe_divide(cost, clicks),
    }


def empty_metrics() -> List[MetricPoint]:
    return build_key_metrics(METRIC_ORDER, {}, METRIC_FORMATS)


def normalize_metrics(payload: Union[Dict, List, None],
                      previous_payload: Union[Dict, List, None] = None) -> List[MetricPoint]:
    """Canonical key metrics for a `googleAds:search` response.

    No result rows means "no activity", which is reported as the zeroed set.
    With `previous_payload` the deltas compare against that period.
    """
    results = _results(payload)
    if not results:
        return empty_metrics()
    values = metric_values(summarize_results(results))
    previous = None
    if previous_payload is not None:
        previous = metric_values(summarize_results(_results(previous_payload)))
    return build_key_metrics(METRIC_ORDER, values, METRIC_FORMATS, previous)


def normalize_campaigns(payload: Union[Dict, List, None]) -> List[CampaignRow]:
    rows = []
    for result in _results(payload):
        campaign = result.get('campaign') or {}
        metrics = result.get('metrics') or {}
        cost = to_number(_field(metrics, 'cost_micros')) / MICROS
        clicks = to_number(_field(metrics, 'clicks'))
        revenue = to_number(_field(metrics, 'conversions_value'))
        if clicks:
            cpc = cost / clicks
        else:
            cpc = to_number(_field(metrics, 'average_cpc')) / MICROS
        rows.append(CampaignRow(
            name=campaign.get('name') or 'Unnamed Campaign',
            spend=format_currency(cost),
            cpc=format_currency(cpc),
            revenue=format_currency(revenue),
            roas=format_ratio(safe_divide(revenue, cost)),
            status=map_campaign_status(campaign.get('status')),
        ))
    return rows


def clean_customer_id(customer_id: Optional[str]) -> Optional[str]:
    return customer_id.replace('-', '') if customer_id else customer_id


def format_customer_id(customer_id: str) -> str:
    cid = clean_customer_id(customer_id)
    return f'{cid[:3]}-{cid[3:6]}-{cid[6:]}'


class GoogleAdsClient:
    def __init__(self, access_token: str, manager_id: Optional[str] = None, developer_token: Optional[str] = None,
                 api_version: str = 'v14', timeout: float = 15.0):
        self.access_token = access_token
        self.manager_id = clean_customer_id(manager_id)
        self.developer_token = developer_token
        self.base_url = f'{GOOGLE_ADS_BASE_URL}/{api_version}'
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {
            'Authorization': f'Bearer {self.access_token}',
            'Content-Type': 'application/json',
            'developer-token': self.developer_token or '',
        }
        if self.manager_id:
            headers['login-customer-id'] = self.manager_id
        return headers

    def execute_query(self, account_id: str, query: str) -> Dict:
        """Run a GAQL query, following `nextPageToken` until all rows are in."""
        url = f'{self.base_url}/customers/{clean_customer_id(account_id)}/googleAds:search'
        results = []
        page_token = None
        while True:
            body = {'query': query}
            if page_token:
                body['pageToken'] = page_token
            r = requests.post(url, headers=self._headers(), json=body, timeout=self.timeout)
            data = read_json(r, PLATFORM, 'Google Ads search')
            results.extend(data.get('results', []))
            page_token = data.get('nextPageToken')
            if not page_token:
                break
        return {'results': results}

    def fetch_metrics(self, account_id: str, date_range: DateRange) -> Dict:
        query = f"""
            SELECT
                metrics.clicks,
                metrics.impressions,
                metrics.cost_micros,
                metrics.conversions,
                metrics.conversions_value,
                metrics.ctr,
                metrics.average_cpc
            FROM customer
            WHERE segments.date BETWEEN '{date_range.start.isoformat()}' AND '{date_range.end.isoformat()}'
        """
        return self.execute_query(account_id, query)

    def fetch_campaigns(self, account_id: str, date_range: DateRange) -> Dict:
        query = f"""
            SELECT
                campaign.name,
                campaign.status,
                metrics.cost_micros,
                metrics.clicks,
                metrics.average_cpc,
                metrics.conversions_value
            FROM campaign
            WHERE segments.date BETWEEN '{date_range.start.isoformat()}' AND '{date_range.end.isoformat()}'
                AND campaign.status = 'ENABLED'
            ORDER BY metrics.cost_micros DESC
            LIMIT {CAMPAIGN_LIMIT}
        """
        return self.execute_query(account_id, query)

    def get_customer(self, customer_id: str) -> Optional[Dict]:
        query = """
            SELECT
                customer.id,
                customer.descriptive_name,
                customer.currency_code,
                customer.time_zone
            FROM customer
            LIMIT 1
        """
        results = self.execute_query(customer_id, query)['results']
        return results[0].get('customer') if results else None

    def list_accessible_customers(self) -> List[Dict]:
        """Accounts reachable with this token, e.g. [{'id': '123-456-7890', 'name': ..., 'customer_id': ...}]."""
        r = requests.get(f'{self.base_url}/customers:listAccessibleCustomers', headers=self._headers(),
                         timeout=self.timeout)
        data = read_json(r, PLATFORM, 'Listing accessible customers')
        accounts = []
        for resource_name in data.get('resourceNames', []):
            cid = resource_name.split('/')[-1]
            account = {'id': format_customer_id(cid), 'name': f'Account {format_customer_id(cid)}',
                       'customer_id': cid, 'currency_code': None, 'time_zone': None}
            try:
                details = self.get_customer(cid)
            except Exception as ex:
                # still list the account, just without its name
                logger.warning('Could not load details for Google Ads customer %s: %s', cid, redact(ex))
                details = None
            if details:
                account['name'] = _field(details, 'descriptive_name') or account['name']
                account['currency_code'] = _field(details, 'currency_code')
                account['time_zone'] = _field(details, 'time_zone')
            accounts.append(account)
        return accounts


def refresh_google_access_token(refresh_token: str, credentials, timeout: float = 15.0) -> str:
    """Trade the stored refresh token for a fresh short-lived access token."""
    if credentials is None:
        raise CredentialsNotConfiguredError(PLATFORM)
    r = requests.post(GOOGLE_OAUTH_TOKEN_URL, data={
        'grant_type': 'refresh_token',
        'refresh_token': refresh_token,
        'client_id': credentials.client_id,
        'client_secret': credentials.client_secret,
    }, timeout=timeout)
    if not is_success(r):
        raise TokenExchangeError(PLATFORM, f'Failed to refresh Google access token: {r.text[:500]}')
    access_token = read_json(r, PLATFORM, 'Google token refresh').get('access_token')
    if not access_token:
        raise TokenExchangeError(PLATFORM, 'Google token refresh returned no access_token')
    return access_token


def exchange_google_code(code: str, credentials, timeout: float = 15.0) -> Dict:
    """Authorization code -> token response (holds `refresh_token` on first consent)."""
    if credentials is None:
        raise CredentialsNotConfiguredError(PLATFORM)
    r = requests.post(GOOGLE_OAUTH_TOKEN_URL, data={
        'code': code,
        'client_id': credentials.client_id,
        'client_secret': credentials.client_secret,
        'redirect_uri': credentials.redirect_uri,
        'grant_type': 'authorization_code',
    }, timeout=timeout)
    if not is_success(r):
        raise TokenExchangeError(PLATFORM, f'Failed to exchange Google code: {r.text[:500]}')
    return read_json(r, PLATFORM, 'Google code exchange')


def validate_google_ads_connection(access_token: str, manager_id: str, developer_token: Optional[str] = None,
                                   api_version: str = 'v14', timeout: float = 15.0) -> bool:
    client = GoogleAdsClient(access_token, manager_id, developer_token, api_version=api_version, timeout=timeout)
    try:
        client.execute_query(manager_id, 'SELECT customer.id FROM customer LIMIT 1')
        return True
    except Exception:
        logger.exception('Google Ads connection validation failed.')
        return False
