"""Unit tests for circular month ranges"""

import pytest
from datetime import date
from cuotas_gateway.domain.exceptions import ValidationError
from cuotas_gateway.domain.months import MonthRange, add_months, clamp_day, normalize_month


def test_span_wrapping_range():
    """April through January covers 10 months"""
    assert MonthRange(4, 1).span() == 10
    assert MonthRange(4, 1).wraps is True


def test_span_single_month():
    """A range starting and ending on the same month is one month, not a year"""
    assert MonthRange(3, 3).span() == 1
    assert MonthRange(3, 3).wraps is False


def test_span_full_year():
    assert MonthRange(1, 12).span() == 12


def test_enumerate_wrapping_range():
    """Months after December fall in the following year"""
    months = list(MonthRange(11, 2).enumerate())
    assert months == [(11, 0), (12, 0), (1, 1), (2, 1)]


def test_enumerate_is_restartable():
    sequence = MonthRange(3, 5).enumerate()
    assert list(sequence) == list(sequence)
    assert len(sequence) == 3


def test_position_and_contains():
    month_range = MonthRange(4, 1)
    assert month_range.position(4) == 0
    assert month_range.position(12) == 8
    assert month_range.position(1) == 9
    assert month_range.position(2) is None
    assert month_range.contains(1) is True
    assert month_range.contains(3) is False


def test_year_month_crosses_year_boundary():
    assert MonthRange(4, 1).year_month(1, 2026) == (2027, 1)
    assert MonthRange(4, 1).year_month(7, 2026) == (2026, 7)


def test_year_month_outside_range():
    with pytest.raises(ValidationError):
        MonthRange(4, 1).year_month(3, 2026)


@pytest.mark.parametrize("start,end", [(0, 5), (3, 13), (True, 4)])
def test_invalid_range_rejected(start, end):
    with pytest.raises(ValidationError):
        MonthRange(start, end)


@pytest.mark.parametrize(
    "value,expected",
    [(7, 7), ("7", 7), ("JULY", 7), ("july", 7), ("Jul", 7), (" December ", 12)],
)
def test_normalize_month(value, expected):
    """Month names are accepted on the wire and normalized to numbers"""
    assert normalize_month(value) == expected


@pytest.mark.parametrize("value", [0, 13, "JULIO", "", None, True, 7.0])
def test_normalize_month_rejects_invalid(value):
    with pytest.raises(ValidationError):
        normalize_month(value)


def test_clamp_day_short_months():
    assert clamp_day(2026, 4, 31) == date(2026, 4, 30)
    assert clamp_day(2026, 2, 30) == date(2026, 2, 28)
    assert clamp_day(2028, 2, 30) == date(2028, 2, 29)
    assert clamp_day(2026, 5, 10) == date(2026, 5, 10)


def test_add_months():
    assert add_months((2026, 11), 2) == (2027, 1)
    assert add_months((2026, 1), -1) == (2025, 12)
    assert add_months((2026, 7), 0) == (2026, 7)
