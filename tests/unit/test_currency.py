"""Unit tests for the currency registry and calendar-day helpers."""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from ledger_kernel.domain.calendar import (
    business_day_start,
    calendar_days_between,
    local_date,
    resolve_timezone,
)
from ledger_kernel.domain.currency import CurrencyRegistry
from ledger_kernel.domain.values import Currency


class TestCurrencyRegistry:
    """Tests for ISO 4217 lookups."""

    def test_operating_currency_registered(self):
        assert CurrencyRegistry.is_valid("SYP")
        assert CurrencyRegistry.get_decimal_places("SYP") == 2

    def test_three_decimal_currency(self):
        assert CurrencyRegistry.get_minor_unit("KWD") == Decimal("0.001")

    def test_zero_decimal_currency(self):
        assert CurrencyRegistry.get_decimal_places("JPY") == 0

    def test_unknown_code_decimal_places_raises(self):
        with pytest.raises(ValueError):
            CurrencyRegistry.get_decimal_places("ZZZ")

    def test_validate_normalizes(self):
        assert CurrencyRegistry.validate(" usd ") == "USD"

    @pytest.mark.parametrize("code", ["", "US", "USDX", "ZZZ", None])
    def test_validate_rejects(self, code):
        with pytest.raises(ValueError):
            CurrencyRegistry.validate(code)

    def test_all_codes(self):
        assert {"SYP", "USD", "EUR"} <= CurrencyRegistry.all_codes()

    def test_currency_value_object(self):
        currency = Currency("syp")
        assert currency.code == "SYP"
        assert currency.minor_unit == Decimal("0.01")
        assert str(currency) == "SYP"


class TestCalendarDays:
    """Day counts are calendar-date differences, not elapsed hours."""

    def test_same_day_is_zero(self):
        start = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
        end = datetime(2024, 3, 1, 17, 0, tzinfo=timezone.utc)
        assert calendar_days_between(start, end) == 0

    def test_across_midnight_is_one(self):
        start = datetime(2024, 3, 1, 23, 50, tzinfo=timezone.utc)
        end = start + timedelta(minutes=20)
        assert calendar_days_between(start, end) == 1

    def test_local_timezone_shifts_dates(self):
        """22:30 UTC is already the next day in Damascus (UTC+3)."""
        tz = resolve_timezone("Asia/Damascus")
        start = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
        end = datetime(2024, 3, 1, 22, 30, tzinfo=timezone.utc)
        assert calendar_days_between(start, end) == 0
        assert calendar_days_between(start, end, tz) == 1

    def test_plain_dates(self):
        assert calendar_days_between(date(2024, 2, 28), date(2024, 3, 1)) == 2

    def test_local_date_of_naive_datetime(self):
        assert local_date(datetime(2024, 3, 1, 23, 0), timezone.utc) == date(2024, 3, 1)


class TestBusinessDayStart:
    """Tests for anchoring bare dates at the start of the business day."""

    def test_default_anchor_is_eight(self):
        moment = business_day_start(date(2024, 3, 1), tz=timezone.utc)
        assert moment == datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)

    def test_custom_hour(self):
        assert business_day_start(date(2024, 3, 1), 6).hour == 6

    def test_hour_out_of_range(self):
        with pytest.raises(ValueError):
            business_day_start(date(2024, 3, 1), 24)

    def test_resolve_utc_aliases(self):
        assert resolve_timezone("utc") is timezone.utc
        assert resolve_timezone("Z") is timezone.utc
