"""Date range presets and helpers.

All arithmetic uses the server's local calendar date at day granularity; no
timezone is threaded through.
"""
import random
from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from connectors.models import DateRange

TODAY = 'today'
YESTERDAY = 'yesterday'
LAST_WEEK = 'last_week'
LAST_7_DAYS = 'last_7_days'
THIS_MONTH = 'this_month'
LAST_MONTH = 'last_month'

DATE_RANGE_PRESETS = (TODAY, YESTERDAY, LAST_WEEK, LAST_7_DAYS, THIS_MONTH, LAST_MONTH)


def resolve_preset(preset_id: Optional[str], today: Optional[date] = None) -> DateRange:
    """Turn a preset id into a concrete range. Unknown ids mean `this_month`."""
    today = today or date.today()

    if preset_id == TODAY:
        return DateRange(start=today, end=today)
    if preset_id == YESTERDAY:
        yesterday = today - timedelta(days=1)
        return DateRange(start=yesterday, end=yesterday)
    if preset_id in (LAST_WEEK, LAST_7_DAYS):
        return DateRange(start=today - timedelta(days=6), end=today)
    if preset_id == LAST_MONTH:
        first_of_this_month = today.replace(day=1)
        start = first_of_this_month - relativedelta(months=1)
        return DateRange(start=start, end=first_of_this_month - timedelta(days=1))
    return DateRange(start=today.replace(day=1), end=today)


def add_variation(date_range: DateRange) -> DateRange:
    """Copy of `date_range` with a fresh random token, so mock data regenerates."""
    return date_range.model_copy(update={'variation': random.random()})


def parse_display_date(value: Optional[str]) -> Optional[date]:
    """Parse a DD/MM/YYYY input. Returns None for anything unusable."""
    if not value or '/' not in value:
        return None
    parts = value.strip().split('/')
    if len(parts) != 3:
        return None
    try:
        day, month, year = (int(p) for p in parts)
    except ValueError:
        return None
    if not (1 <= day <= 31) or not (1 <= month <= 12) or year < 1900:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        # 31/02 and friends
        return None


def format_display_date(value: Optional[date]) -> str:
    if not value:
        return ''
    return value.strftime('%d/%m/%Y')


def range_duration_days(date_range: Optional[DateRange]) -> int:
    """Inclusive number of days covered by the range."""
    if date_range is None:
        return 0
    return (date_range.end - date_range.start).days + 1


def previous_period(date_range: DateRange) -> DateRange:
    """Window of the same length that ends the day before `date_range` starts."""
    end = date_range.start - timedelta(days=1)
    start = end - timedelta(days=range_duration_days(date_range) - 1)
    return DateRange(start=start, end=end)


def ranges_overlap(first: Optional[DateRange], second: Optional[DateRange]) -> bool:
    if first is None or second is None:
        return False
    return first.start <= second.end and second.start <= first.end
