"""
Status classification from raw per-source signals.

Decision order, first match wins:
  1. live marker (text, running minute, or numeric in-play period)  -> live
  2. finished marker, or score + kickoff older than the grace window -> finished
  3. no score and kickoff not yet elapsed                            -> scheduled
  4. score + elapsed kickoff                                         -> finished
Anything else (a score next to a future kickoff) is scrape noise and reads as
scheduled; the normalizer drops the score in that case.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from shared.models.enums import FixtureStatus

# OneFootball match card periods: 1 = pre-match, 11 = full time, in between = in play.
PERIOD_PRE_MATCH = 1
PERIOD_FULL_TIME = 11

LIVE_MARKERS = frozenset(
    {
        "live",
        "in play",
        "in_play",
        "inplay",
        "playing",
        "paused",
        "ht",
        "half time",
        "half-time",
        "halftime",
        "1h",
        "2h",
        "1st half",
        "2nd half",
        "extra time",
        "et",
        "penalties",
        "uživo",
        "poluvrijeme",
    }
)
FINISHED_MARKERS = frozenset(
    {
        "ft",
        "full time",
        "full-time",
        "fulltime",
        "finished",
        "ended",
        "final",
        "aet",
        "after extra time",
        "pen",
        "ap",
        "awarded",
        "kraj",
        "završeno",
    }
)
_RUNNING_MINUTE = re.compile(r"^\d{1,3}(?:\s*\+\s*\d{1,2})?\s*['’]$")
_PUNCT = re.compile(r"[.\s]+$")


@dataclass(frozen=True)
class StatusSignals:
    status_text: Optional[str] = None
    period: Optional[int] = None
    has_score: bool = False
    kickoff: Optional[datetime] = None


def _marker(text: Optional[str]) -> str:
    if not text:
        return ""
    return _PUNCT.sub("", text.strip().lower())


def is_live_marker(text: Optional[str], period: Optional[int] = None) -> bool:
    if period is not None and PERIOD_PRE_MATCH < period < PERIOD_FULL_TIME:
        return True
    marker = _marker(text)
    if not marker:
        return False
    if marker in LIVE_MARKERS or _RUNNING_MINUTE.match(marker):
        return True
    return marker.startswith("live")


def is_finished_marker(text: Optional[str], period: Optional[int] = None) -> bool:
    if period == PERIOD_FULL_TIME:
        return True
    marker = _marker(text)
    return marker in FINISHED_MARKERS or marker.startswith("full time")


def classify(
    signals: StatusSignals,
    now: datetime,
    finish_grace: timedelta = timedelta(hours=3),
) -> FixtureStatus:
    """Map raw signals to a lifecycle status."""
    if is_live_marker(signals.status_text, signals.period):
        return FixtureStatus.LIVE

    kickoff = signals.kickoff
    elapsed = kickoff is not None and kickoff <= now
    if is_finished_marker(signals.status_text, signals.period):
        return FixtureStatus.FINISHED
    if signals.has_score and kickoff is not None and kickoff < now - finish_grace:
        return FixtureStatus.FINISHED

    if not signals.has_score and not elapsed:
        return FixtureStatus.SCHEDULED

    if signals.has_score and elapsed:
        return FixtureStatus.FINISHED

    return FixtureStatus.SCHEDULED
