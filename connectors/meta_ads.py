"""Meta (Facebook) Marketing API connector.

Reads account-level insights for the canonical metric set

    reach, impressions, cost, clicks, conversions, revenue, roas, ctr, cpm, cpc

and per-campaign insights for the campaign table. Meta returns the account
row already aggregated for the requested `time_range`, so no summing happens
here apart from the `actions` / `action_values` lists:

* conversions = purchase + lead + complete_registration actions
* revenue     = purchase action values

The stored credential is a long-lived user token sent as a bearer header,
never in the query string. It is checked against
`/me` before each metrics request.
"""
import json
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Union

import requests

from connectors.errors import CredentialsNotConfiguredError, TokenExchangeError
from connectors.formatting import (
    build_key_metrics, format_count, format_currency, format_number, format_percentage, format_ratio, safe_divide,
    to_number,
)
from connectors.http import is_success, read_json, redact
from connectors.logs import get_logger
from connectors.models import CampaignRow, CampaignStatus, DateRange, MetricKey, MetricPoint

logger = get_logger('meta_ads')

PLATFORM = 'meta'
META_GRAPH_URL = 'https://graph.facebook.com'
META_OAUTH_DIALOG_URL = 'https://www.facebook.com/{version}/dialog/oauth'
META_OAUTH_SCOPES = ('ads_read', 'business_management')
CAMPAIGN_LIMIT = 20

CONVERSION_ACTION_TYPES = ('purchase', 'lead', 'complete_registration')
REVENUE_ACTION_TYPE = 'purchase'

ACCOUNT_INSIGHT_FIELDS = ('clicks', 'impressions', 'spend', 'reach', 'actions', 'action_values', 'ctr', 'cpm', 'cpc')
CAMPAIGN_INSIGHT_FIELDS = ('campaign_name', 'spend', 'cpc', 'action_values', 'actions')

STATUS_MAP = {
    'ACTIVE': CampaignStatus.ACTIVE,
    'PAUSED': CampaignStatus.PAUSED,
    'DELETED': CampaignStatus.DELETED,
    'ARCHIVED': CampaignStatus.ARCHIVED,
}

METRIC_ORDER = (
    MetricKey.REACH, MetricKey.IMPRESSIONS, MetricKey.COST, MetricKey.CLICKS, MetricKey.CONVERSIONS,
    MetricKey.REVENUE, MetricKey.ROAS, MetricKey.CTR, MetricKey.CPM, MetricKey.CPC,
)

METRIC_FORMATS = {
    MetricKey.REACH: format_number,
    MetricKey.IMPRESSIONS: format_number,
    MetricKey.COST: format_currency,
    MetricKey.CLICKS: format_number,
    MetricKey.CONVERSIONS: format_count,
    MetricKey.REVENUE: format_currency,
    MetricKey.ROAS: format_ratio,
    MetricKey.CTR: format_percentage,
    MetricKey.CPM: format_currency,
    MetricKey.CPC: format_currency,
}


def map_campaign_status(status: Optional[str]) -> CampaignStatus:
    return STATUS_MAP.get(status or '', CampaignStatus.UNKNOWN)


def extract_conversions(actions: Optional[List[Dict]]) -> int:
    """Total purchase, lead and registration actions."""
    if not isinstance(actions, list):
        return 0
    return sum(int(to_number(a.get('value'))) for a in actions
               if isinstance(a, dict) and a.get('action_type') in CONVERSION_ACTION_TYPES)


def extract_revenue(action_values: Optional[List[Dict]]) -> float:
    if not isinstance(action_values, list):
        return 0.0
    return sum(to_number(a.get('value')) for a in action_values
               if isinstance(a, dict) and a.get('action_type') == REVENUE_ACTION_TYPE)


def _first_row(payload: Union[Dict, None]) -> Dict:
    if not payload:
        return {}
    rows = payload.get('data') or []
    return rows[0] if rows and isinstance(rows[0], dict) else {}


def metric_values(row: Dict) -> Dict[MetricKey, float]:
    spend = to_number(row.get('spend'))
    revenue = extract_revenue(row.get('action_values'))
    return {
        MetricKey.REACH: to_number(row.get('reach')),
        MetricKey.IMPRESSIONS: to_number(row.get('impressions')),
        MetricKey.COST: spend,
        MetricKey.CLICKS: to_number(row.get('clicks')),
        MetricKey.CONVERSIONS: float(extract_conversions(row.get('actions'))),
        MetricKey.REVENUE: revenue,
        MetricKey.ROAS: safe_divide(revenue, spend),
        MetricKey.CTR: to_number(row.get('ctr')),
        MetricKey.CPM: to_number(row.get('cpm')),
        MetricKey.CPC: to_number(row.get('cpc')),
    }


def empty_metrics() -> List[MetricPoint]:
    return build_key_metrics(METRIC_ORDER, {}, METRIC_FORMATS)


def normalize_metrics(payload: Union[Dict, None], previous_payload: Union[Dict, None] = None) -> List[MetricPoint]:
    """Canonical key metrics for an account-level insights response."""
    row = _first_row(payload)
    if not row:
        return empty_metrics()
    previous = metric_values(_first_row(previous_payload)) if previous_payload is not None else None
    return build_key_metrics(METRIC_ORDER, metric_values(row), METRIC_FORMATS, previous)


def normalize_campaigns(campaign_insights: List[Dict]) -> List[CampaignRow]:
    """Rows from `[{'campaign': {...}, 'insights': {...}}, ...]` as built by `MetaAdsClient.fetch_campaigns`."""
    rows = []
    for item in campaign_insights or []:
        campaign = item.get('campaign') or {}
        insights = item.get('insights') or {}
        spend = to_number(insights.get('spend'))
        revenue = extract_revenue(insights.get('action_values'))
        rows.append(CampaignRow(
            name=campaign.get('name') or insights.get('campaign_name') or 'Unnamed Campaign',
            spend=format_currency(spend),
            cpc=format_currency(to_number(insights.get('cpc'))),
            revenue=format_currency(revenue),
            roas=format_ratio(safe_divide(revenue, spend)),
            status=map_campaign_status(campaign.get('status')),
        ))
    return rows


def _time_range(date_range: DateRange) -> str:
    return json.dumps({'since': date_range.start.isoformat(), 'until': date_range.end.isoformat()},
                      separators=(',', ':'))


def _bearer(access_token: str) -> Dict[str, str]:
    return {'Authorization': f'Bearer {access_token}'}


def clean_account_id(account_id: str) -> str:
    account_id = str(account_id or '')
    return account_id[len('act_'):] if account_id.startswith('act_') else account_id


class MetaAdsClient:
    def __init__(self, access_token: str, api_version: str = 'v18.0', timeout: float = 15.0):
        self.access_token = access_token
        self.base_url = f'{META_GRAPH_URL}/{api_version}'
        self.timeout = timeout

    def _get(self, path: str, params: Dict, action: str) -> Dict:
        r = requests.get(f'{self.base_url}/{path}', params=params, headers=_bearer(self.access_token),
                         timeout=self.timeout)
        return read_json(r, PLATFORM, action)

    def get_campaigns(self, account_id: str) -> List[Dict]:
        data = self._get(f'act_{clean_account_id(account_id)}/campaigns', {
            'fields': 'id,name,status,objective',
            'limit': str(CAMPAIGN_LIMIT),
        }, 'Listing Meta campaigns')
        return data.get('data', [])

    def fetch_insights(self, object_id: str, params: Dict) -> Dict:
        """Insights for an ad account (`act_<id>`) or a campaign id."""
        return self._get(f'{object_id}/insights', params, 'Fetching Meta insights')

    def fetch_metrics(self, account_id: str, date_range: DateRange) -> Dict:
        return self.fetch_insights(f'act_{clean_account_id(account_id)}', {
            'fields': ','.join(ACCOUNT_INSIGHT_FIELDS),
            'time_range': _time_range(date_range),
            'level': 'account',
        })

    def _campaign_insights(self, campaign: Dict, date_range: DateRange) -> Dict:
        try:
            insights = self.fetch_insights(campaign['id'], {
                'fields': ','.join(CAMPAIGN_INSIGHT_FIELDS),
                'time_range': _time_range(date_range),
                'level': 'campaign',
            })
            return {'campaign': campaign, 'insights': _first_row(insights)}
        except Exception as ex:
            # one broken campaign should not blank the whole table
            logger.warning('Error fetching insights for Meta campaign %s: %s', campaign.get('id'), redact(ex))
            return {'campaign': campaign, 'insights': {}}

    def fetch_campaigns(self, account_id: str, date_range: DateRange) -> List[Dict]:
        campaigns = self.get_campaigns(account_id)[:CAMPAIGN_LIMIT]
        if not campaigns:
            return []
        with ThreadPoolExecutor(max_workers=min(len(campaigns), 8)) as pool:
            return list(pool.map(lambda c: self._campaign_insights(c, date_range), campaigns))

    def list_ad_accounts(self) -> List[Dict]:
        """Ad accounts visible to the token, e.g. [{'id': 'act_123', 'name': ..., 'account_id': '123'}]."""
        data = self._get('me/adaccounts', {'fields': 'id,name,account_id,currency,timezone_name'},
                         'Listing Meta ad accounts')
        accounts = []
        for acc in data.get('data', []):
            accounts.append({
                'id': acc.get('id', ''),
                'name': acc.get('name', 'Unnamed Account'),
                'account_id': clean_account_id(acc.get('account_id', '')),
                'currency': acc.get('currency'),
                'timezone_name': acc.get('timezone_name'),
            })
        return accounts


def validate_meta_access_token(access_token: str, api_version: str = 'v18.0', timeout: float = 15.0) -> bool:
    if not access_token:
        return False
    try:
        r = requests.get(f'{META_GRAPH_URL}/{api_version}/me', headers=_bearer(access_token), timeout=timeout)
    except requests.RequestException as ex:
        logger.error('Meta access token validation failed: %s', redact(ex))
        return False
    return is_success(r)


def exchange_meta_code(code: str, credentials, api_version: str = 'v18.0', timeout: float = 15.0) -> str:
    """Authorization code -> short-lived user token."""
    if credentials is None:
        raise CredentialsNotConfiguredError(PLATFORM)
    r = requests.get(f'{META_GRAPH_URL}/{api_version}/oauth/access_token', params={
        'client_id': credentials.client_id,
        'client_secret': credentials.client_secret,
        'redirect_uri': credentials.redirect_uri,
        'code': code,
    }, timeout=timeout)
    if not is_success(r):
        raise TokenExchangeError(PLATFORM, f'Failed to exchange Meta code: {r.text[:500]}')
    token = read_json(r, PLATFORM, 'Meta code exchange').get('access_token')
    if not token:
        raise TokenExchangeError(PLATFORM, 'Meta code exchange returned no access_token')
    return token


def exchange_for_long_lived_token(short_lived_token: str, credentials, api_version: str = 'v18.0',
                                  timeout: float = 15.0) -> str:
    if credentials is None:
        raise CredentialsNotConfiguredError(PLATFORM)
    r = requests.get(f'{META_GRAPH_URL}/{api_version}/oauth/access_token', params={
        'grant_type': 'fb_exchange_token',
        'client_id': credentials.client_id,
        'client_secret': credentials.client_secret,
        'fb_exchange_token': short_lived_token,
    }, timeout=timeout)
    if not is_success(r):
        raise TokenExchangeError(PLATFORM, f'Failed to exchange token: {r.text[:500]}')
    token = read_json(r, PLATFORM, 'Meta long-lived token exchange').get('access_token')
    if not token:
        raise TokenExchangeError(PLATFORM, 'Meta long-lived token exchange returned no access_token')
    return token
