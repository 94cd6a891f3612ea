"""
Tests for odds, payout, date and message helpers.
"""
from datetime import datetime

from app.utils.dates import parse_iso_utc, season_for, settlement_time, to_naive_utc, unix_seconds
from app.utils.messages import GENERIC_ERROR, friendly_error
from app.utils.odds import (
    calculate_payout,
    combined_odds,
    round_money,
    settlement_payout,
    strip_price_suffix,
)


class TestPayouts:
    """Payout and combined odds arithmetic."""

    def test_payout_is_stake_times_odds(self):
        assert calculate_payout(100, 1.8) == 180.0

    def test_lost_bet_pays_nothing(self):
        assert settlement_payout(100, 1.8, won=False) == 0.0
        assert settlement_payout(100, 1.8, won=True) == 180.0

    def test_combined_odds_rounded_to_two_decimals(self):
        assert combined_odds([1.5, 2.0]) == 3.0
        assert combined_odds([1.33, 1.47, 2.1]) == 4.11

    def test_round_money_handles_float_noise(self):
        assert round_money(1.005) == 1.01
        assert round_money(2.675) == 2.68


class TestLabels:

    def test_strip_price_suffix(self):
        assert strip_price_suffix("Under 2.5 @ 1.7") == "Under 2.5"
        assert strip_price_suffix(" Home ") == "Home"
        assert strip_price_suffix(None) == ""


class TestDates:
    """Provider timestamps and scheduling times."""

    def test_parse_iso_utc_converts_offsets(self):
        assert parse_iso_utc("2025-08-16T19:00:00+02:00") == datetime(2025, 8, 16, 17, 0)
        assert parse_iso_utc("2025-08-16T19:00:00Z") == datetime(2025, 8, 16, 19, 0)
        assert parse_iso_utc("not a date") is None
        assert parse_iso_utc(None) is None

    def test_season_starts_in_august(self):
        assert season_for(datetime(2025, 8, 1)) == 2025
        assert season_for(datetime(2026, 3, 1)) == 2025

    def test_settlement_time_is_last_kickoff_plus_delay(self):
        kickoffs = [datetime(2025, 10, 25, 14, 0), None, datetime(2025, 10, 26, 20, 0)]
        assert settlement_time(kickoffs, 5) == datetime(2025, 10, 27, 1, 0)
        assert settlement_time([None], 5) is None

    def test_unix_seconds_treats_naive_as_utc(self):
        assert unix_seconds(datetime(1970, 1, 2)) == 86400

    def test_to_naive_utc(self):
        aware = parse_iso_utc("2025-10-26T15:00:00+00:00")
        assert to_naive_utc(aware) == aware
        assert to_naive_utc(None) is None


class TestFriendlyError:
    """Known error substrings map to localized messages."""

    def test_known_substring(self):
        assert "presupuesto" in friendly_error("insufficient budget for this stake")

    def test_fallback(self):
        assert friendly_error("something exploded") == GENERIC_ERROR
        assert friendly_error("") == GENERIC_ERROR
