"""Domain enumerations for the fixture sync engine."""
from __future__ import annotations

from enum import Enum


class FixtureStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINISHED = "finished"

    @property
    def rank(self) -> int:
        """Position along scheduled -> live -> finished; merges never lower it."""
        return _STATUS_RANK[self]

    @property
    def has_score(self) -> bool:
        return self != FixtureStatus.SCHEDULED


_STATUS_RANK = {
    FixtureStatus.SCHEDULED: 0,
    FixtureStatus.LIVE: 1,
    FixtureStatus.FINISHED: 2,
}


class MatchweekSource(str, Enum):
    """How a fixture's matchweek was obtained."""
    EXPLICIT = "explicit"
    CLUSTER = "cluster"
    ELAPSED = "elapsed"
    CORRECTED = "corrected"

    @property
    def is_inferred(self) -> bool:
        return self != MatchweekSource.EXPLICIT


class SourceName(str, Enum):
    ONEFOOTBALL = "onefootball"
    REZULTATI = "rezultati"
    FOOTBALL_DATA = "football_data"


class SourceOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class RejectReason(str, Enum):
    EMPTY_TEAM = "empty_team"
    SAME_TEAMS = "same_teams"
    BAD_DATE = "bad_date"
    FINISHED_WITHOUT_SCORE = "finished_without_score"
    UNKNOWN_CLUBS = "unknown_clubs"


class CycleKind(str, Enum):
    SYNC = "sync"
    FINISH_CHECK = "finish_check"
