"""
Date parsing for heterogeneous source formats, plus season helpers.

Supported inputs:
  ISO 8601                 2025-11-02T15:00:00Z
  DD.MM.YYYY HH:mm         02.11.2025 16:00
  DD.MM.YYYY               02.11.2025
  DD.MM. HH:mm             02.11. 16:00      (year inferred from the season)
  DD/MM HH:mm              02/11 16:00       (year inferred from the season)
  DD Mon [YYYY] [HH:mm]    2 Nov, 02 November 2025 15:00

Local wall-clock times are read in the source's timezone and returned in UTC.
Date-only inputs become midnight UTC of that calendar day so the fixture id
date never drifts across a timezone boundary.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import NamedTuple, Optional
from zoneinfo import ZoneInfo

SEASON_START_MONTH = 8  # August

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_DMY_TIME = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})\.?\s+(\d{1,2}):(\d{2})$")
_DMY = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})\.?$")
_DM_TIME = re.compile(r"^(\d{1,2})\.(\d{1,2})\.?\s*(\d{1,2}):(\d{2})$")
_SLASH_DM_TIME = re.compile(r"^(\d{1,2})/(\d{1,2})\s+(\d{1,2}):(\d{2})$")
_DAY_MONTH_NAME = re.compile(
    r"^(?:[A-Za-z]{3,9},?\s+)?(\d{1,2})\s+([A-Za-z]{3,9})\.?(?:\s+(\d{4}))?(?:,?\s+(\d{1,2}):(\d{2}))?$"
)


class ParsedDate(NamedTuple):
    value: datetime
    has_time: bool


# ── Season helpers ──────────────────────────────────────────────────────
def season_start_year(day: date) -> int:
    """Seasons run August to May: Jan-Jul belongs to the season that started last year."""
    return day.year - 1 if day.month < SEASON_START_MONTH else day.year


def season_label(day: date) -> str:
    """Full season label, e.g. "2025/2026"."""
    start = season_start_year(day)
    return f"{start}/{start + 1}"


def season_start_date(day: date, override: Optional[date] = None) -> date:
    if override is not None:
        return override
    return date(season_start_year(day), SEASON_START_MONTH, 1)


def _year_for_month(month: int, start_year: int) -> int:
    return start_year if month >= SEASON_START_MONTH else start_year + 1


# ── Parsing ─────────────────────────────────────────────────────────────
def _local(
    year: int, month: int, day: int, hour: int, minute: int, tz: ZoneInfo
) -> Optional[ParsedDate]:
    try:
        local = datetime(year, month, day, hour, minute, tzinfo=tz)
    except ValueError:
        return None
    return ParsedDate(local.astimezone(timezone.utc), True)


def _calendar_day(year: int, month: int, day: int) -> Optional[ParsedDate]:
    try:
        return ParsedDate(datetime(year, month, day, tzinfo=timezone.utc), False)
    except ValueError:
        return None


def _parse_iso(text: str, tz: ZoneInfo) -> Optional[ParsedDate]:
    candidate = text.replace("Z", "+00:00").replace("z", "+00:00")
    try:
        value = datetime.fromisoformat(candidate)
    except ValueError:
        try:
            only_date = date.fromisoformat(text)
        except ValueError:
            return None
        return _calendar_day(only_date.year, only_date.month, only_date.day)
    if "T" not in text and " " not in text.strip():
        return _calendar_day(value.year, value.month, value.day)
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return ParsedDate(value.astimezone(timezone.utc), True)


def parse_match_date(
    text: Optional[str],
    season_year: int,
    tz: str | ZoneInfo = "UTC",
) -> Optional[ParsedDate]:
    """
    Parse a source date string. Returns None when no format matches.

    Args:
        text: Raw date/time string as scraped.
        season_year: Start year of the season, used when the string has no year.
        tz: Timezone of wall-clock times that carry no offset.
    """
    if not text:
        return None
    raw = " ".join(text.split())
    zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)

    if re.match(r"^\d{4}-\d{2}-\d{2}", raw):
        return _parse_iso(raw, zone)

    m = _DMY_TIME.match(raw)
    if m:
        d, mo, y, h, mi = (int(g) for g in m.groups())
        return _local(y, mo, d, h, mi, zone)

    m = _DMY.match(raw)
    if m:
        d, mo, y = (int(g) for g in m.groups())
        return _calendar_day(y, mo, d)

    m = _DM_TIME.match(raw)
    if m:
        d, mo, h, mi = (int(g) for g in m.groups())
        return _local(_year_for_month(mo, season_year), mo, d, h, mi, zone)

    m = _SLASH_DM_TIME.match(raw)
    if m:
        d, mo, h, mi = (int(g) for g in m.groups())
        return _local(_year_for_month(mo, season_year), mo, d, h, mi, zone)

    m = _DAY_MONTH_NAME.match(raw)
    if m:
        month = _MONTHS.get(m.group(2)[:3].lower())
        if month is None:
            return None
        d = int(m.group(1))
        y = int(m.group(3)) if m.group(3) else _year_for_month(month, season_year)
        if m.group(4):
            return _local(y, month, d, int(m.group(4)), int(m.group(5)), zone)
        return _calendar_day(y, month, d)

    return None


def days_between(start: date, moment: datetime) -> int:
    return (moment.date() - start).days


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
