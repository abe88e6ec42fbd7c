"""
Unit tests for source date parsing and season helpers.

Run: pytest backend/tests/test_dates.py -v
"""
from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from ingest.normalization.dates import (
    days_between,
    parse_match_date,
    season_label,
    season_start_date,
    season_start_year,
)

ZAGREB = "Europe/Zagreb"


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# ── parse_match_date ────────────────────────────────────────────────────

class TestParseMatchDate:

    def test_iso_with_zulu(self) -> None:
        parsed = parse_match_date("2025-11-02T16:30:00Z", 2025)
        assert parsed is not None
        assert parsed.value == _utc(2025, 11, 2, 16, 30)
        assert parsed.has_time

    def test_iso_with_offset(self) -> None:
        parsed = parse_match_date("2025-11-02T17:30:00+01:00", 2025)
        assert parsed.value == _utc(2025, 11, 2, 16, 30)

    def test_iso_date_only_is_midnight_utc(self) -> None:
        parsed = parse_match_date("2025-11-02", 2025, ZAGREB)
        assert parsed.value == _utc(2025, 11, 2)
        assert not parsed.has_time

    def test_dmy_with_time_in_source_zone(self) -> None:
        parsed = parse_match_date("02.11.2025 17:30", 2025, ZAGREB)
        assert parsed.value == _utc(2025, 11, 2, 16, 30)

    def test_dmy_summer_time(self) -> None:
        parsed = parse_match_date("16.08.2025 16:00", 2025, ZAGREB)
        assert parsed.value == _utc(2025, 8, 16, 14, 0)

    def test_dmy_date_only(self) -> None:
        parsed = parse_match_date("02.11.2025", 2025, ZAGREB)
        assert parsed.value == _utc(2025, 11, 2)
        assert not parsed.has_time

    def test_day_month_time_uses_season_year(self) -> None:
        parsed = parse_match_date("02.11. 17:30", 2025, ZAGREB)
        assert parsed.value == _utc(2025, 11, 2, 16, 30)

    def test_day_month_time_second_half_of_season(self) -> None:
        parsed = parse_match_date("15.01. 20:00", 2025, ZAGREB)
        assert parsed.value == _utc(2026, 1, 15, 19, 0)

    def test_slash_day_month_time(self) -> None:
        parsed = parse_match_date("02/11 16:00", 2025)
        assert parsed.value == _utc(2025, 11, 2, 16, 0)

    def test_day_month_name(self) -> None:
        parsed = parse_match_date("2 Nov", 2025)
        assert parsed.value == _utc(2025, 11, 2)
        assert not parsed.has_time

    def test_weekday_day_month_name_year_time(self) -> None:
        parsed = parse_match_date("Sat, 2 November 2025 15:00", 2025)
        assert parsed.value == _utc(2025, 11, 2, 15, 0)

    def test_whitespace_collapsed(self) -> None:
        parsed = parse_match_date("  02.11.2025   17:30 ", 2025, ZAGREB)
        assert parsed.value == _utc(2025, 11, 2, 16, 30)

    @pytest.mark.parametrize("text", [None, "", "TBD", "31.02.2025", "2 Foo", "99/99 10:00"])
    def test_unparseable(self, text: str | None) -> None:
        assert parse_match_date(text, 2025) is None


# ── Season helpers ──────────────────────────────────────────────────────

class TestSeason:

    def test_start_year_autumn(self) -> None:
        assert season_start_year(date(2025, 11, 2)) == 2025

    def test_start_year_spring(self) -> None:
        assert season_start_year(date(2026, 3, 1)) == 2025

    def test_label(self) -> None:
        assert season_label(date(2025, 11, 2)) == "2025/2026"
        assert season_label(date(2026, 5, 20)) == "2025/2026"

    def test_start_date(self) -> None:
        assert season_start_date(date(2026, 3, 1)) == date(2025, 8, 1)

    def test_start_date_override(self) -> None:
        assert season_start_date(date(2026, 3, 1), date(2025, 8, 15)) == date(2025, 8, 15)

    def test_days_between(self) -> None:
        assert days_between(date(2025, 8, 1), _utc(2025, 8, 8, 15, 0)) == 7
