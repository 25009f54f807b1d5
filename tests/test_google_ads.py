"""Google Ads normalizer, REST client and token helpers."""
from datetime import date
from unittest.mock import patch

import pytest

from connectors import google_ads, meta_ads
from connectors.config import PlatformCredentials
from connectors.errors import CredentialsNotConfiguredError, ProviderFetchError, TokenExchangeError
from connectors.models import CampaignStatus, DateRange, MetricKey

CREDS = PlatformCredentials(client_id='cid', client_secret='secret', redirect_uri='http://testserver/cb')
MARCH = DateRange(start=date(2024, 3, 1), end=date(2024, 3, 7))


def _values(points):
    return {p.metric.value: p.value for p in points}


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

def test_normalize_metrics_reference_example():
    payload = {'results': [{'metrics': {
        'clicks': '1000', 'impressions': '50000', 'cost_micros': '2000000',
        'conversions': 10, 'conversions_value': 500,
    }}]}
    values = _values(google_ads.normalize_metrics(payload))

    assert values['roas'] == '250.00'
    assert values['cost'] == '$2.00'
    assert values['revenue'] == '$500.00'
    assert values['cpc'] == '$0.00'
    assert values['ctr'] == '2.00%'
    assert values['clicks'] == '1.0k'
    assert values['impressions'] == '50.0k'
    assert values['conversions'] == '10'


def test_normalize_metrics_order():
    points = google_ads.normalize_metrics({'results': [{'metrics': {'clicks': '1'}}]})
    assert [p.metric.value for p in points] == [
        'clicks', 'impressions', 'cost', 'conversions', 'revenue', 'roas', 'ctr', 'cpc']


def test_normalize_metrics_sums_rows_in_either_spelling():
    payload = {'results': [
        {'metrics': {'clicks': '40', 'impressions': '1000', 'costMicros': '1500000', 'conversionsValue': 3}},
        {'metrics': {'clicks': '60', 'impressions': '1000', 'cost_micros': '500000', 'conversions_value': 1}},
    ]}
    values = _values(google_ads.normalize_metrics(payload))

    assert values['clicks'] == '100'
    assert values['cost'] == '$2.00'
    assert values['revenue'] == '$4.00'
    assert values['cpc'] == '$0.02'
    assert values['ctr'] == '5.00%'
    assert values['roas'] == '2.00'


def test_zero_cost_and_zero_impressions_do_not_divide():
    payload = {'results': [{'metrics': {'clicks': '100', 'impressions': '0', 'costMicros': '0'}}]}
    values = _values(google_ads.normalize_metrics(payload))

    assert values['cpc'] == '$0.00'
    assert values['roas'] == '0.00'
    assert values['ctr'] == '0.00%'


@pytest.mark.parametrize('payload', [None, {}, {'results': []}, []])
def test_empty_results_give_the_zeroed_set(payload):
    points = google_ads.normalize_metrics(payload)
    assert [p.value for p in points] == ['0', '0', '$0.00', '0', '$0.00', '0.00', '0.00%', '$0.00']
    assert all(p.delta_pct == 0 for p in points)


def test_previous_period_drives_deltas():
    current = {'results': [{'metrics': {'clicks': '150', 'impressions': '1000'}}]}
    previous = {'results': [{'metrics': {'clicks': '100', 'impressions': '1000'}}]}
    deltas = {p.metric.value: p.delta_pct for p in google_ads.normalize_metrics(current, previous)}

    assert deltas['clicks'] == 50.0
    assert deltas['impressions'] == 0.0


@pytest.mark.parametrize('raw, expected', [
    ('ENABLED', CampaignStatus.ACTIVE),
    ('PAUSED', CampaignStatus.PAUSED),
    ('REMOVED', CampaignStatus.REMOVED),
    ('SOMETHING_NEW', CampaignStatus.UNKNOWN),
    (None, CampaignStatus.UNKNOWN),
])
def test_map_campaign_status(raw, expected):
    assert google_ads.map_campaign_status(raw) == expected


def test_normalize_campaigns():
    payload = {'results': [
        {'campaign': {'name': 'Brand | Search', 'status': 'ENABLED'},
         'metrics': {'costMicros': '420500000', 'clicks': '50', 'conversionsValue': 1842}},
        {'campaign': {'name': 'Quiet', 'status': 'PAUSED'},
         'metrics': {'costMicros': '0', 'clicks': '0', 'averageCpc': '2500000'}},
    ]}
    rows = [row.as_row() for row in google_ads.normalize_campaigns(payload)]

    assert rows[0] == ['Brand | Search', '$420.50', '$8.41', '$1842.00', '4.38', 'Active']
    assert rows[1] == ['Quiet', '$0.00', '$2.50', '$0.00', '0.00', 'Paused']


def test_customer_id_helpers():
    assert google_ads.clean_customer_id('123-456-7890') == '1234567890'
    assert google_ads.format_customer_id('1234567890') == '123-456-7890'


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

def test_execute_query_follows_pages_and_sends_headers(make_response):
    pages = [
        make_response(200, {'results': [{'metrics': {'clicks': '1'}}], 'nextPageToken': 'p2'}),
        make_response(200, {'results': [{'metrics': {'clicks': '2'}}]}),
    ]
    client = google_ads.GoogleAdsClient('access', manager_id='111-222-3333', developer_token='dev')

    with patch('connectors.google_ads.requests.post', side_effect=pages) as post:
        data = client.execute_query('123-456-7890', 'SELECT metrics.clicks FROM customer')

    assert len(data['results']) == 2
    first, second = post.call_args_list
    assert first.args[0] == 'https://googleads.googleapis.com/v14/customers/1234567890/googleAds:search'
    headers = first.kwargs['headers']
    assert headers['Authorization'] == 'Bearer access'
    assert headers['developer-token'] == 'dev'
    assert headers['login-customer-id'] == '1112223333'
    assert 'pageToken' not in first.kwargs['json']
    assert second.kwargs['json']['pageToken'] == 'p2'
    assert first.kwargs['timeout'] == 15.0


def test_fetch_metrics_filters_by_date(make_response):
    client = google_ads.GoogleAdsClient('access')
    with patch('connectors.google_ads.requests.post', return_value=make_response(200, {'results': []})) as post:
        client.fetch_metrics('123', MARCH)

    query = post.call_args.kwargs['json']['query']
    assert "BETWEEN '2024-03-01' AND '2024-03-07'" in query
    assert 'login-customer-id' not in post.call_args.kwargs['headers']


def test_provider_500_raises_fetch_error(make_response):
    client = google_ads.GoogleAdsClient('access')
    with patch('connectors.google_ads.requests.post', return_value=make_response(500, text='backend error')):
        with pytest.raises(ProviderFetchError) as excinfo:
            client.fetch_metrics('123', MARCH)

    assert excinfo.value.status_code == 500
    assert excinfo.value.platform == 'google'


def test_malformed_json_raises_fetch_error(make_response):
    client = google_ads.GoogleAdsClient('access')
    with patch('connectors.google_ads.requests.post', return_value=make_response(200, None, text='<html>')):
        with pytest.raises(ProviderFetchError):
            client.fetch_campaigns('123', MARCH)


def test_list_accessible_customers_survives_a_failing_detail_lookup(make_response):
    listing = make_response(200, {'resourceNames': ['customers/1234567890', 'customers/9876543210']})
    details = [
        make_response(200, {'results': [{'customer': {'id': '1234567890', 'descriptiveName': 'Main Store',
                                                      'currencyCode': 'EUR', 'timeZone': 'Europe/Paris'}}]}),
        make_response(403, text='denied'),
    ]
    client = google_ads.GoogleAdsClient('access')

    with patch('connectors.google_ads.requests.get', return_value=listing), \
            patch('connectors.google_ads.requests.post', side_effect=details):
        accounts = client.list_accessible_customers()

    assert accounts[0]['id'] == '123-456-7890'
    assert accounts[0]['name'] == 'Main Store'
    assert accounts[0]['currency_code'] == 'EUR'
    assert accounts[1]['name'] == 'Account 987-654-3210'
    assert accounts[1]['currency_code'] is None


# ---------------------------------------------------------------------------
# Token helpers
# ---------------------------------------------------------------------------

def test_refresh_access_token(make_response):
    with patch('connectors.google_ads.requests.post',
               return_value=make_response(200, {'access_token': 'fresh'})) as post:
        assert google_ads.refresh_google_access_token('refresh', CREDS) == 'fresh'

    assert post.call_args.args[0] == google_ads.GOOGLE_OAUTH_TOKEN_URL
    data = post.call_args.kwargs['data']
    assert data['grant_type'] == 'refresh_token'
    assert data['refresh_token'] == 'refresh'
    assert data['client_id'] == 'cid'


def test_refresh_access_token_rejected(make_response):
    with patch('connectors.google_ads.requests.post',
               return_value=make_response(400, {'error': 'invalid_grant'})):
        with pytest.raises(TokenExchangeError):
            google_ads.refresh_google_access_token('refresh', CREDS)


def test_refresh_access_token_needs_credentials():
    with pytest.raises(CredentialsNotConfiguredError):
        google_ads.refresh_google_access_token('refresh', None)


def test_exchange_code(make_response):
    tokens = {'access_token': 'a', 'refresh_token': 'r'}
    with patch('connectors.google_ads.requests.post', return_value=make_response(200, tokens)) as post:
        assert google_ads.exchange_google_code('the-code', CREDS) == tokens

    data = post.call_args.kwargs['data']
    assert data['grant_type'] == 'authorization_code'
    assert data['redirect_uri'] == 'http://testserver/cb'


def test_validate_connection(make_response):
    with patch('connectors.google_ads.requests.post', return_value=make_response(200, {'results': []})):
        assert google_ads.validate_google_ads_connection('access', '123-456-7890')
    with patch('connectors.google_ads.requests.post', return_value=make_response(401, text='nope')):
        assert not google_ads.validate_google_ads_connection('access', '123-456-7890')


def test_fractional_conversions_round_like_meta():
    payload = {'results': [{'metrics': {'conversions': 10.5}}, {'metrics': {'conversions': 0.0}}]}
    assert _values(google_ads.normalize_metrics(payload))['conversions'] == '11'
    assert google_ads.METRIC_FORMATS[MetricKey.CONVERSIONS] is meta_ads.METRIC_FORMATS[MetricKey.CONVERSIONS]
