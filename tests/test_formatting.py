"""Shared display formatting used by both normalizers."""
import pytest

from connectors.formatting import (
    build_key_metrics, calculate_percentage_change, clamp, format_count, format_currency, format_number,
    format_percentage, format_ratio, safe_divide, to_number,
)
from connectors.models import MetricKey


@pytest.mark.parametrize('value, expected', [
    (0, '0'),
    (999, '999'),
    (1_000, '1.0k'),
    (25_400, '25.4k'),
    (892_100, '892.1k'),
    (1_000_000, '1.0M'),
    (1_234_567, '1.2M'),
])
def test_format_number_suffixes(value, expected):
    assert format_number(value) == expected


@pytest.mark.parametrize('value, expected', [
    (0, '0'),
    (10.4, '10'),
    (10.5, '11'),
    (11.5, '12'),
    (1234, '1234'),
    ('7', '7'),
    (None, '0'),
])
def test_format_count_rounds_halves_up(value, expected):
    assert format_count(value) == expected


def test_currency_percentage_and_ratio():
    assert format_currency(2) == '$2.00'
    assert format_currency(None) == '$0.00'
    assert format_percentage(2) == '2.00%'
    assert format_ratio(250) == '250.00'


@pytest.mark.parametrize('value, expected', [
    ('12.5', 12.5),
    (3, 3.0),
    ('abc', 0.0),
    (None, 0.0),
    (True, 0.0),
    (float('nan'), 0.0),
    (float('inf'), 0.0),
])
def test_to_number_coerces_junk_to_zero(value, expected):
    assert to_number(value) == expected


def test_safe_divide_guards_zero():
    assert safe_divide(5, 0) == 0.0
    assert safe_divide(5, 2) == 2.5


def test_percentage_change():
    assert calculate_percentage_change(150, 100) == 50.0
    assert calculate_percentage_change(50, 100) == -50.0
    assert calculate_percentage_change(5, 0) == 100.0
    assert calculate_percentage_change(0, 0) == 0.0


def test_clamp():
    assert clamp(150, -99, 99) == 99
    assert clamp(-150, -99, 99) == -99
    assert clamp(12.5, -99, 99) == 12.5


def test_build_key_metrics_keeps_order_and_computes_deltas():
    order = (MetricKey.CLICKS, MetricKey.COST)
    formats = {MetricKey.CLICKS: format_number, MetricKey.COST: format_currency}
    points = build_key_metrics(order, {MetricKey.CLICKS: 1500, MetricKey.COST: 30},
                               formats, previous={MetricKey.CLICKS: 1000, MetricKey.COST: 40})

    assert [p.metric for p in points] == [MetricKey.CLICKS, MetricKey.COST]
    assert [p.value for p in points] == ['1.5k', '$30.00']
    assert [p.delta_pct for p in points] == [50.0, -25.0]


def test_build_key_metrics_without_previous_has_zero_deltas():
    points = build_key_metrics((MetricKey.CLICKS,), {MetricKey.CLICKS: 10}, {MetricKey.CLICKS: format_number})
    assert points[0].delta_pct == 0.0
