"""
Finish checker.

Catches fixtures still marked scheduled/live well after kickoff. A result is
matched by canonical team pair and a kickoff within a tolerance window rather
than by id, because a late kickoff can land on the next UTC day in one source
and not in another.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from shared.config import Settings, get_settings
from shared.models.domain import CanonicalFixture
from shared.models.enums import FixtureStatus
from shared.utils.logging import get_logger

from ingest.normalization.normalizer import FixtureCandidate
from ingest.store import FixtureStore

logger = get_logger(__name__)

FINISH_CHECKER_KEY = "last_finish_checker"


@dataclass(frozen=True)
class FinishWindow:
    since: datetime
    until: datetime


class FinishChecker:
    """Marks overdue fixtures finished from freshly scraped results."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._tolerance = timedelta(hours=self._settings.finish_match_tolerance_hours)

    def window(self, now: datetime) -> FinishWindow:
        """Kickoffs between lookback hours ago and min-age minutes ago."""
        return FinishWindow(
            since=now - timedelta(hours=self._settings.finish_check_lookback_hours),
            until=now - timedelta(minutes=self._settings.finish_check_min_age_minutes),
        )

    async def due(self, store: FixtureStore, now: datetime) -> list[CanonicalFixture]:
        w = self.window(now)
        return await store.list_by_status(
            [FixtureStatus.SCHEDULED, FixtureStatus.LIVE], since=w.since, until=w.until
        )

    def apply(
        self,
        pending: Sequence[CanonicalFixture],
        results: Sequence[FixtureCandidate],
    ) -> list[CanonicalFixture]:
        """Return the pending fixtures that a finished result resolves."""
        finished = [r for r in results if r.status == FixtureStatus.FINISHED and r.has_score]
        resolved: list[CanonicalFixture] = []
        for fixture in pending:
            match = min(
                (
                    r
                    for r in finished
                    if r.home_team == fixture.home_team
                    and r.away_team == fixture.away_team
                    and abs(r.date - fixture.date) <= self._tolerance
                ),
                key=lambda r: (abs(r.date - fixture.date), r.priority),
                default=None,
            )
            if match is None:
                logger.debug("finish_check_no_result", fixture_id=fixture.id)
                continue
            resolved.append(
                fixture.model_copy(
                    update={
                        "status": FixtureStatus.FINISHED,
                        "home_score": match.home_score,
                        "away_score": match.away_score,
                        "source": match.source,
                        "source_priority": match.priority,
                    }
                )
            )
            logger.info(
                "fixture_marked_finished",
                fixture_id=fixture.id,
                score=f"{match.home_score}-{match.away_score}",
                source=match.source,
            )
        return resolved
