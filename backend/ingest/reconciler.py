"""
Reconciliation of fixture candidates into canonical fixtures.

Two merges run per id, in this order:
  1. same-cycle candidates from different sources (source priority breaks ties)
  2. the merged candidate against the fixture already in the store

Field rules:
  status     forward only: scheduled -> live -> finished
  scores     never blanked; a finished score is only replaced by a finished
             score from an equally or more trusted source
  matchweek  replaced only by a correction, or by an explicit round over an
             inferred one; a corrected round only moves forward
  date       from the more trusted source, but a date-only value never
             replaces a known kickoff time
  is_derby   always recomputed from the team pair
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Sequence

from shared.models.domain import CanonicalFixture
from shared.models.enums import FixtureStatus, MatchweekSource
from shared.utils.logging import get_logger

from ingest.normalization.team_names import ClubDirectory

logger = get_logger(__name__)


def _has_time(value: datetime) -> bool:
    # Date-only sources are parsed to midnight UTC.
    return (value.hour, value.minute, value.second) != (0, 0, 0)


def _first(values: Iterable[Optional[str]]) -> Optional[str]:
    return next((v for v in values if v), None)


def merge_candidates(candidates: Sequence[CanonicalFixture]) -> CanonicalFixture:
    """Fold same-id candidates of one cycle; lower source_priority is more trusted."""
    if not candidates:
        raise ValueError("merge_candidates needs at least one candidate")
    ordered = sorted(candidates, key=lambda c: c.source_priority)
    if len({c.id for c in ordered}) != 1:
        raise ValueError(f"candidates span several ids: {sorted({c.id for c in ordered})}")
    base = ordered[0]
    status = max((c.status for c in ordered), key=lambda s: s.rank)

    scored = None
    if status != FixtureStatus.SCHEDULED:
        scored = next((c for c in ordered if c.status == status and c.has_score), None)
        if scored is None:
            scored = next((c for c in ordered if c.has_score), None)
    provenance = scored or next(c for c in ordered if c.status == status)

    explicit = next((c for c in ordered if c.matchweek_source == MatchweekSource.EXPLICIT), None)
    round_from = explicit or base

    return CanonicalFixture(
        id=base.id,
        date=next((c.date for c in ordered if _has_time(c.date)), base.date),
        home_team=base.home_team,
        away_team=base.away_team,
        home_score=scored.home_score if scored else None,
        away_score=scored.away_score if scored else None,
        matchweek=round_from.matchweek,
        matchweek_source=round_from.matchweek_source,
        status=status,
        is_derby=base.is_derby,
        competition=_first(c.competition for c in ordered),
        competition_round=_first(c.competition_round for c in ordered),
        season=_first(c.season for c in ordered),
        source=provenance.source,
        source_priority=provenance.source_priority,
    )


def _merge_matchweek(
    incoming: CanonicalFixture, existing: CanonicalFixture, incoming_trusted: bool
) -> tuple[int, MatchweekSource]:
    if (
        incoming.matchweek_source == MatchweekSource.CORRECTED
        and existing.status != FixtureStatus.FINISHED
    ):
        return incoming.matchweek, incoming.matchweek_source
    if incoming.matchweek_source == MatchweekSource.EXPLICIT:
        if existing.matchweek_source == MatchweekSource.CORRECTED:
            # Recycled source rounds sit at or below the correction.
            if incoming.matchweek > existing.matchweek:
                return incoming.matchweek, incoming.matchweek_source
        elif existing.matchweek_source.is_inferred or incoming_trusted:
            return incoming.matchweek, incoming.matchweek_source
    return existing.matchweek, existing.matchweek_source


def merge_existing(
    incoming: CanonicalFixture, existing: Optional[CanonicalFixture]
) -> CanonicalFixture:
    """Merge a cycle's fixture into the stored one without ever moving backwards."""
    if existing is None:
        return incoming
    if incoming.id != existing.id:
        raise ValueError(f"cannot merge {incoming.id} into {existing.id}")

    incoming_trusted = incoming.source_priority <= existing.source_priority
    status = max(existing.status, incoming.status, key=lambda s: s.rank)

    score_from: Optional[CanonicalFixture]
    if existing.status == FixtureStatus.FINISHED and existing.has_score:
        correcting = (
            incoming.status == FixtureStatus.FINISHED and incoming.has_score and incoming_trusted
        )
        score_from = incoming if correcting else existing
        if correcting and (incoming.home_score, incoming.away_score) != (
            existing.home_score,
            existing.away_score,
        ):
            logger.info(
                "finished_score_corrected",
                fixture_id=existing.id,
                old=f"{existing.home_score}-{existing.away_score}",
                new=f"{incoming.home_score}-{incoming.away_score}",
                source=incoming.source,
            )
    elif incoming.has_score and incoming.status.rank >= existing.status.rank:
        score_from = incoming
    elif existing.has_score:
        score_from = existing
    else:
        score_from = None

    if score_from is not None:
        provenance = score_from
    else:
        provenance = incoming if incoming.status.rank >= existing.status.rank else existing

    matchweek, matchweek_source = _merge_matchweek(incoming, existing, incoming_trusted)
    take_date = incoming_trusted and (_has_time(incoming.date) or not _has_time(existing.date))

    return CanonicalFixture(
        id=existing.id,
        date=incoming.date if take_date else existing.date,
        home_team=existing.home_team,
        away_team=existing.away_team,
        home_score=score_from.home_score if score_from and status.has_score else None,
        away_score=score_from.away_score if score_from and status.has_score else None,
        matchweek=matchweek,
        matchweek_source=matchweek_source,
        status=status,
        is_derby=existing.is_derby,
        competition=incoming.competition or existing.competition,
        competition_round=incoming.competition_round or existing.competition_round,
        season=incoming.season or existing.season,
        source=provenance.source,
        source_priority=provenance.source_priority,
    )


class Reconciler:
    """Merges candidates per id and recomputes derived fields."""

    def __init__(self, directory: ClubDirectory) -> None:
        self._directory = directory

    def reconcile(
        self,
        candidates: Sequence[CanonicalFixture],
        existing: Optional[CanonicalFixture] = None,
    ) -> CanonicalFixture:
        merged = merge_existing(merge_candidates(candidates), existing)
        update: dict[str, object] = {
            "is_derby": self._directory.is_derby(merged.home_team, merged.away_team)
        }
        if merged.status == FixtureStatus.LIVE and not merged.has_score:
            update["home_score"] = 0
            update["away_score"] = 0
        return merged.model_copy(update=update)

    def reconcile_all(
        self,
        candidates: Iterable[CanonicalFixture],
        existing: dict[str, CanonicalFixture],
    ) -> list[CanonicalFixture]:
        """Reconcile every id present in the candidates, ordered by kickoff."""
        by_id: dict[str, list[CanonicalFixture]] = {}
        for candidate in candidates:
            by_id.setdefault(candidate.id, []).append(candidate)
        reconciled = [
            self.reconcile(group, existing.get(fixture_id)) for fixture_id, group in by_id.items()
        ]
        return sorted(reconciled, key=lambda f: (f.date, f.id))
