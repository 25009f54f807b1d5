"""Deterministic mock metrics for test mode and demos.

The base data below is scaled by a factor derived from the requested date
range, so the same range always renders the same numbers while different
ranges look different. A range carrying a `variation` token uses that token
instead of the date hash, which is how an explicit refresh gets fresh values.
"""
import copy
import math
import re
from typing import Dict, Optional

from connectors.formatting import clamp
from connectors.models import (
    AccountInfo, CampaignRow, DateRange, MetricKey, MetricPoint, MetricsEnvelope, Platform,
)

MOCK_DATA = {
    Platform.GOOGLE: {
        'keyMetrics': [
            {'metric': 'clicks', 'value': '25.4k', 'deltaPct': 15.2},
            {'metric': 'impressions', 'value': '892.1k', 'deltaPct': 8.7},
            {'metric': 'cost', 'value': '$1,247.89', 'deltaPct': -3.2},
            {'metric': 'conversions', 'value': '189', 'deltaPct': 12.8},
            {'metric': 'revenue', 'value': '$7,234.56', 'deltaPct': 18.9},
            {'metric': 'roas', 'value': '5.80', 'deltaPct': 22.4},
            {'metric': 'ctr', 'value': '2.85%', 'deltaPct': 5.1},
            {'metric': 'cpc', 'value': '$6.60', 'deltaPct': -8.4},
        ],
        'campaigns': [
            ['Black Friday Electronics Sale | Search', '$420.50', '$3.20', '$1,842.00', '4.38', 'Active'],
            ['Smart Home Devices | Display Network', '$318.75', '$2.85', '$1,156.00', '3.63', 'Active'],
            ['iPhone 15 Pro Max | YouTube Video', '$287.60', '$4.12', '$978.00', '3.40', 'Paused'],
            ['Holiday Gift Guide | Shopping Ads', '$502.90', '$2.95', '$2,156.00', '4.29', 'Active'],
            ['Brand Awareness | Google Search', '$156.30', '$1.85', '$687.00', '4.40', 'Active'],
            ['Winter Collection 2024 | Performance Max', '$678.20', '$2.10', '$3,245.00', '4.78', 'Active'],
            ['Retargeting - Cart Abandoners | Display', '$234.80', '$4.56', '$892.00', '3.80', 'Active'],
        ],
        'accountInfo': {
            'accountName': 'Test Google Ads Account',
            'accountId': '123-456-7890',
            'currency': 'USD',
            'timeZone': 'America/New_York',
        },
    },
    Platform.META: {
        'keyMetrics': [
            {'metric': 'reach', 'value': '156.8k', 'deltaPct': 18.9},
            {'metric': 'impressions', 'value': '743.2k', 'deltaPct': 12.4},
            {'metric': 'cost', 'value': '$986.45', 'deltaPct': -5.8},
            {'metric': 'clicks', 'value': '12.7k', 'deltaPct': 9.6},
            {'metric': 'conversions', 'value': '234', 'deltaPct': 22.3},
            {'metric': 'revenue', 'value': '$4,567.89', 'deltaPct': 28.7},
            {'metric': 'roas', 'value': '4.63', 'deltaPct': 15.4},
            {'metric': 'ctr', 'value': '1.71%', 'deltaPct': 8.3},
            {'metric': 'cpm', 'value': '$1.33', 'deltaPct': -12.1},
            {'metric': 'cpc', 'value': '$0.78', 'deltaPct': -15.2},
        ],
        'campaigns': [
            ['Holiday Sale 2024 | Facebook Feed', '$245.80', '$0.85', '$1,456.00', '3.12', 'Active'],
            ['New Product Launch | Instagram Stories', '$198.30', '$1.12', '$987.00', '2.89', 'Active'],
            ['Tutorial Series | Facebook Video', '$312.75', '$0.95', '$1,678.00', '3.58', 'Active'],
            ['Lifestyle Content | Instagram Reels', '$167.90', '$0.72', '$823.00', '2.95', 'Paused'],
            ['Product Catalog | Facebook Carousel', '$423.15', '$1.05', '$2,134.00', '4.02', 'Active'],
            ['Black Friday Countdown | Meta Advantage+', '$589.40', '$0.67', '$2,845.00', '4.83', 'Active'],
            ['Customer Testimonials | Instagram Feed', '$134.20', '$1.23', '$654.00', '4.87', 'Active'],
        ],
        'accountInfo': {
            'accountName': 'Test Meta Business Account',
            'accountId': '987654321',
            'currency': 'USD',
            'timeZone': 'America/New_York',
        },
    },
}

_NUMERIC_JUNK = re.compile(r'[$,kM%]')


def simple_hash(text: str) -> int:
    """Non-negative 32-bit string hash (h = h * 31 + c, wrapped to a signed int32)."""
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def seeded_random(seed: int) -> float:
    x = math.sin(seed) * 10000
    return x - math.floor(x)


def date_variation(date_range: Optional[DateRange]) -> float:
    """Scale factor for `date_range`; 1.0 when there is no range."""
    if date_range is None:
        return 1.0
    if date_range.variation:
        r = date_range.variation
    else:
        r = seeded_random(simple_hash(f'{date_range.start.isoformat()}-{date_range.end.isoformat()}'))

    # shorter spans swing harder
    span = (date_range.end - date_range.start).days
    if span <= 7:
        return 0.7 + r * 0.6
    if span <= 30:
        return 0.8 + r * 0.4
    return 0.9 + r * 0.2


def adjust_metric_value(value: str, factor: float) -> str:
    """Scale a display string by `factor`, keeping its suffix style."""
    if not isinstance(value, str):
        return value
    try:
        number = float(_NUMERIC_JUNK.sub('', value))
    except ValueError:
        return value
    adjusted = number * factor

    if value.endswith('M'):
        return f'{adjusted:.1f}M'
    if 'k' in value:
        return f'{adjusted:.1f}k'
    if '$' in value:
        return f'${adjusted:.2f}'
    if '%' in value:
        return f'{adjusted:.2f}%'
    if value.strip().isdigit():
        return str(int(round(adjusted)))
    return f'{adjusted:.2f}'


def adjust_delta_percent(delta_pct: float, factor: float) -> float:
    return round(clamp(delta_pct * factor + (factor - 1) * 5, -99, 99), 2)


def _apply_variation(data: Dict, factor: float) -> Dict:
    adjusted = copy.deepcopy(data)
    adjusted['keyMetrics'] = [
        dict(point,
             value=adjust_metric_value(point['value'], factor),
             deltaPct=adjust_delta_percent(point['deltaPct'], factor))
        for point in data['keyMetrics']
    ]
    adjusted['campaigns'] = [
        [name] + [adjust_metric_value(v, factor) for v in (spend, cpc, revenue, roas)] + [status]
        for name, spend, cpc, revenue, roas, status in data['campaigns']
    ]
    return adjusted


def generate_mock_metrics(platform, date_range: Optional[DateRange] = None) -> MetricsEnvelope:
    try:
        base = MOCK_DATA[Platform(platform)]
    except ValueError:
        raise ValueError(f'No mock data for platform {platform!r}') from None

    data = _apply_variation(base, date_variation(date_range)) if date_range is not None else base
    return MetricsEnvelope(
        key_metrics=[MetricPoint(metric=MetricKey(p['metric']), value=p['value'], delta_pct=p['deltaPct'])
                     for p in data['keyMetrics']],
        campaigns=[CampaignRow.from_row(row) for row in data['campaigns']],
        account_info=AccountInfo.model_validate(data['accountInfo']),
        is_test_data=True,
    )
