"""
Matchweek inference.

Every cycle recomputes rounds from scratch over the pending records plus the
already-finished fixtures, so the result depends only on the inputs:

  1. explicit round from the source
  2. most common explicit round inside the record's date cluster
  3. weeks elapsed since season start, clamped to 1..N
  4. correction pass: an unfinished record whose round is <= the highest
     finished round, when that round is complete, moves past it

A fixture corrected in an earlier cycle keeps its corrected round, finished
or not, unless the source later reports a higher one.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence

from shared.config import Settings, get_settings
from shared.models.domain import CanonicalFixture
from shared.models.enums import FixtureStatus, MatchweekSource
from shared.utils.logging import get_logger

from ingest.normalization.dates import days_between, season_start_date
from ingest.normalization.normalizer import FixtureCandidate

logger = get_logger(__name__)


@dataclass(frozen=True)
class RoundInput:
    id: str
    date: datetime
    explicit_round: Optional[int] = None
    finished: bool = False


@dataclass(frozen=True)
class MatchweekAssignment:
    matchweek: int
    source: MatchweekSource


def cluster_by_date(dates: Sequence[datetime], window: timedelta) -> list[int]:
    """
    Assign a cluster index to each date (input must be sorted ascending).
    A new cluster starts when the gap to the previous date exceeds the window.
    """
    indexes: list[int] = []
    current = 0
    for i, value in enumerate(dates):
        if i > 0 and value - dates[i - 1] > window:
            current += 1
        indexes.append(current)
    return indexes


def rounds_from_candidates(
    candidates: Iterable[FixtureCandidate],
) -> list[RoundInput]:
    """Collapse same-id candidates into one input, preferring the most trusted source."""
    by_id: dict[str, list[FixtureCandidate]] = {}
    for candidate in candidates:
        by_id.setdefault(candidate.id, []).append(candidate)

    inputs: list[RoundInput] = []
    for fixture_id, group in by_id.items():
        group.sort(key=lambda c: c.priority)
        explicit = next((c.explicit_round for c in group if c.explicit_round), None)
        inputs.append(
            RoundInput(
                id=fixture_id,
                date=group[0].date,
                explicit_round=explicit,
                finished=any(c.status == FixtureStatus.FINISHED for c in group),
            )
        )
    return inputs


class MatchweekInferenceEngine:
    """Assigns rounds for the primary league competition."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._max_round = self._settings.max_matchweek
        self._window = timedelta(days=self._settings.cluster_window_days)
        self._threshold = self._settings.completeness_threshold

    def _clamp(self, value: int) -> int:
        return max(1, min(self._max_round, value))

    def elapsed_round(self, kickoff: datetime, season_start: date) -> int:
        days = days_between(season_start, kickoff)
        return self._clamp(days // 7 + 1)

    def infer(
        self,
        records: Sequence[RoundInput],
        prior: Sequence[CanonicalFixture] = (),
    ) -> dict[str, MatchweekAssignment]:
        """Return the matchweek assignment for every record id."""
        if not records:
            return {}

        ordered = sorted(records, key=lambda r: (r.date, r.id))
        prior_by_id = {f.id: f for f in prior}
        clusters = cluster_by_date([r.date for r in ordered], self._window)

        cluster_rounds: dict[int, Counter[int]] = {}
        for record, cluster in zip(ordered, clusters):
            if record.explicit_round:
                cluster_rounds.setdefault(cluster, Counter())[record.explicit_round] += 1

        assignments: dict[str, MatchweekAssignment] = {}
        for record, cluster in zip(ordered, clusters):
            if record.explicit_round:
                assignments[record.id] = MatchweekAssignment(
                    self._clamp(record.explicit_round), MatchweekSource.EXPLICIT
                )
            elif cluster in cluster_rounds:
                counts = cluster_rounds[cluster]
                top = max(counts.values())
                inherited = min(r for r, n in counts.items() if n == top)
                assignments[record.id] = MatchweekAssignment(
                    self._clamp(inherited), MatchweekSource.CLUSTER
                )
            else:
                start = season_start_date(record.date.date(), self._settings.season_start)
                assignments[record.id] = MatchweekAssignment(
                    self.elapsed_round(record.date, start), MatchweekSource.ELAPSED
                )

        self._carry_corrections(ordered, assignments, prior_by_id)
        self._correct(ordered, assignments, prior_by_id)
        return assignments

    def _carry_corrections(
        self,
        ordered: Sequence[RoundInput],
        assignments: dict[str, MatchweekAssignment],
        prior_by_id: dict[str, CanonicalFixture],
    ) -> None:
        # A source's recycled round never pulls a corrected fixture back.
        for record in ordered:
            existing = prior_by_id.get(record.id)
            if existing is None or existing.matchweek_source != MatchweekSource.CORRECTED:
                continue
            if assignments[record.id].matchweek <= existing.matchweek:
                assignments[record.id] = MatchweekAssignment(
                    existing.matchweek, MatchweekSource.CORRECTED
                )

    def _is_finished(self, record: RoundInput, prior_by_id: dict[str, CanonicalFixture]) -> bool:
        existing = prior_by_id.get(record.id)
        return record.finished or (
            existing is not None and existing.status == FixtureStatus.FINISHED
        )

    def _finished_rounds(
        self,
        ordered: Sequence[RoundInput],
        assignments: dict[str, MatchweekAssignment],
        prior_by_id: dict[str, CanonicalFixture],
    ) -> Counter[int]:
        rounds: dict[str, int] = {
            f.id: f.matchweek for f in prior_by_id.values() if f.status == FixtureStatus.FINISHED
        }
        for record in ordered:
            if not self._is_finished(record, prior_by_id):
                continue
            assigned = assignments[record.id]
            if record.id not in rounds or assigned.source == MatchweekSource.EXPLICIT:
                rounds[record.id] = assigned.matchweek
        return Counter(rounds.values())

    def _correct(
        self,
        ordered: Sequence[RoundInput],
        assignments: dict[str, MatchweekAssignment],
        prior_by_id: dict[str, CanonicalFixture],
    ) -> None:
        finished_counts = self._finished_rounds(ordered, assignments, prior_by_id)
        if not finished_counts:
            return
        highest = max(finished_counts)
        if finished_counts[highest] < self._threshold:
            return

        stale = [
            r
            for r in ordered
            if not self._is_finished(r, prior_by_id) and assignments[r.id].matchweek <= highest
        ]
        if not stale:
            return

        offsets = cluster_by_date([r.date for r in stale], self._window)
        for record, offset in zip(stale, offsets):
            assignments[record.id] = MatchweekAssignment(
                self._clamp(highest + 1 + offset), MatchweekSource.CORRECTED
            )
        logger.info(
            "matchweek_corrected",
            highest_finished_round=highest,
            finished_in_round=finished_counts[highest],
            corrected=len(stale),
        )
