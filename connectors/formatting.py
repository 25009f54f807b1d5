"""Display formatting shared by the Google/Meta normalizers and the mock data.

Every value in a `MetricPoint` or `CampaignRow` is a pre-formatted string, so
both providers must format the same magnitude the same way.
"""
import math
from typing import Callable, Dict, List, Optional, Sequence

from connectors.models import MetricKey, MetricPoint


def to_number(value, default: float = 0.0) -> float:
    """Coerce a provider value (often a numeric string) to float; junk becomes `default`."""
    if value is None or isinstance(value, bool):
        return default
    try:
        num = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(num) or math.isinf(num):
        return default
    return num


def safe_divide(numerator: float, denominator: float) -> float:
    if not denominator:
        return 0.0
    return numerator / denominator


def format_number(num: Optional[float]) -> str:
    """Compact a count: 1.2M, 25.4k, or a plain integer below 1,000."""
    num = to_number(num)
    if num >= 1_000_000:
        return f'{num / 1_000_000:.1f}M'
    if num >= 1_000:
        return f'{num / 1_000:.1f}k'
    return f'{num:.0f}'


def format_count(num: Optional[float]) -> str:
    """Whole count, halves rounded away from zero (10.5 -> "11")."""
    num = to_number(num)
    return str(int(math.copysign(math.floor(abs(num) + 0.5), num)))


def format_currency(amount: Optional[float]) -> str:
    return f'${to_number(amount):.2f}'


def format_percentage(percentage: Optional[float], decimals: int = 2) -> str:
    return f'{to_number(percentage):.{decimals}f}%'


def format_ratio(value: Optional[float]) -> str:
    return f'{to_number(value):.2f}'


def calculate_percentage_change(current: float, previous: float) -> float:
    """Period-over-period change in percent.

    A zero previous period reports +100 when there is now activity, 0 otherwise.
    """
    if not previous:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def build_key_metrics(order: Sequence[MetricKey], values: Dict[MetricKey, float],
                      formats: Dict[MetricKey, Callable[[float], str]],
                      previous: Optional[Dict[MetricKey, float]] = None) -> List[MetricPoint]:
    """Format `values` in `order`, with deltas against `previous` when one is given."""
    points = []
    for key in order:
        current = values.get(key, 0.0)
        delta = calculate_percentage_change(current, previous.get(key, 0.0)) if previous is not None else 0.0
        points.append(MetricPoint(metric=key, value=formats[key](current), delta_pct=round(delta, 2)))
    return points
