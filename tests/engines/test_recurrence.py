"""
Tests for frequency date arithmetic.

Covers:
- Day-based steps
- Calendar months with month-end clamping
- Unknown frequency defaults to MONTHLY
- Monotonicity over arbitrary dates
"""

from datetime import date

import pytest
from hypothesis import given
from hypothesis import strategies as st

from cashflow_engines.recurrence import add_months, advance, resolve_frequency
from cashflow_kernel.models.cashflow import PaymentFrequency


class TestDaySteps:
    @pytest.mark.parametrize(
        "frequency, expected",
        [
            ("DAILY", date(2024, 3, 1)),
            ("WEEKLY", date(2024, 3, 7)),
            ("BIWEEKLY", date(2024, 3, 14)),
        ],
    )
    def test_day_steps(self, frequency, expected):
        assert advance(date(2024, 2, 29), frequency) == expected


class TestMonthSteps:
    def test_monthly_clamps_to_leap_february(self):
        assert advance(date(2024, 1, 31), "MONTHLY") == date(2024, 2, 29)

    def test_monthly_clamps_to_common_february(self):
        assert advance(date(2023, 1, 31), PaymentFrequency.MONTHLY) == date(2023, 2, 28)

    def test_quarterly_clamps(self):
        assert advance(date(2024, 1, 31), "QUARTERLY") == date(2024, 4, 30)

    def test_annually_from_leap_day(self):
        assert advance(date(2024, 2, 29), "ANNUALLY") == date(2025, 2, 28)

    def test_monthly_crosses_year(self):
        assert advance(date(2024, 12, 15), "MONTHLY") == date(2025, 1, 15)

    def test_clamped_day_is_not_restored(self):
        """Each step only sees the previous date."""
        feb = advance(date(2024, 1, 31), "MONTHLY")
        assert advance(feb, "MONTHLY") == date(2024, 3, 29)

    def test_add_months_from_anchor_keeps_day(self):
        assert add_months(date(2024, 1, 31), 2) == date(2024, 3, 31)


class TestResolveFrequency:
    @pytest.mark.parametrize("value", [None, "", "FORTNIGHTLY", "yearly"])
    def test_unknown_defaults_to_monthly(self, value):
        assert resolve_frequency(value) is PaymentFrequency.MONTHLY

    def test_case_insensitive(self):
        assert resolve_frequency(" weekly ") is PaymentFrequency.WEEKLY

    def test_unknown_frequency_advances_one_month(self):
        assert advance(date(2024, 1, 10), "SOMETIMES") == date(2024, 2, 10)


class TestProperties:
    @given(
        start=st.dates(min_value=date(2000, 1, 1), max_value=date(2100, 1, 1)),
        frequency=st.sampled_from(list(PaymentFrequency)),
    )
    def test_advance_moves_forward_and_stays_valid(self, start, frequency):
        nxt = advance(start, frequency)

        assert nxt > start
        assert nxt.day <= start.day or frequency.value in ("DAILY", "WEEKLY", "BIWEEKLY")
