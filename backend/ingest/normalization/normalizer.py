"""
Normalization layer for the ingest cycle.
Turns source-specific RawMatchRecords into keyed FixtureCandidates and rejects
records that would break fixture invariants before they reach the reconciler.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from shared.config import Settings, get_settings
from shared.models.domain import CanonicalFixture, RawMatchRecord
from shared.models.enums import FixtureStatus, MatchweekSource, RejectReason
from shared.utils.logging import get_logger
from shared.utils.metrics import RECORDS_REJECTED, UNMAPPED_TEAM_NAMES

from ingest.normalization.dates import parse_match_date, season_label, season_start_year
from ingest.normalization.identity import build_fixture_id
from ingest.normalization.status import StatusSignals, classify
from ingest.normalization.team_names import ClubDirectory

logger = get_logger(__name__)

_SCORE = re.compile(r"^\s*(\d{1,2})\s*[-:–]\s*(\d{1,2})\s*$")
_ROUND = re.compile(r"(\d+)\.\s*kolo|round\s*(\d+)", re.IGNORECASE)


def parse_score(text: Optional[str]) -> Optional[tuple[int, int]]:
    """Parse "2-1", "2 : 1" or "2–1". Returns None for anything else."""
    if not text:
        return None
    m = _SCORE.match(text)
    if not m:
        return None
    return int(m.group(1)), int(m.group(2))


def parse_round_label(text: Optional[str]) -> Optional[int]:
    """Round number from a label such as "11. kolo" or "Round 7"."""
    if not text:
        return None
    m = _ROUND.search(text)
    if not m:
        return None
    return int(m.group(1) or m.group(2))


def _explicit_round(record: RawMatchRecord) -> Optional[int]:
    if record.round and record.round > 0:
        return record.round
    return parse_round_label(record.round_label) or None


@dataclass(frozen=True)
class FixtureCandidate:
    """A normalized, keyed record from one source, awaiting a matchweek."""
    id: str
    date: datetime
    home_team: str
    away_team: str
    home_score: Optional[int]
    away_score: Optional[int]
    status: FixtureStatus
    source: str
    priority: int
    explicit_round: Optional[int] = None
    competition: Optional[str] = None
    competition_round: Optional[str] = None
    season: Optional[str] = None

    @property
    def has_score(self) -> bool:
        return self.home_score is not None and self.away_score is not None

    def to_fixture(
        self, matchweek: int, matchweek_source: MatchweekSource, is_derby: bool
    ) -> CanonicalFixture:
        return CanonicalFixture(
            id=self.id,
            date=self.date,
            home_team=self.home_team,
            away_team=self.away_team,
            home_score=self.home_score,
            away_score=self.away_score,
            matchweek=matchweek,
            matchweek_source=matchweek_source,
            status=self.status,
            is_derby=is_derby,
            competition=self.competition,
            competition_round=self.competition_round,
            season=self.season,
            source=self.source,
            source_priority=self.priority,
        )


@dataclass
class NormalizationBatch:
    candidates: list[FixtureCandidate] = field(default_factory=list)
    rejected: int = 0
    unmapped: set[str] = field(default_factory=set)


class RecordNormalizer:
    """
    Normalizes raw records against a ClubDirectory.

    Responsibilities:
    - Canonical team names (unknown names pass through and are reported)
    - Date parsing in the source timezone
    - Status classification and score/status invariants
    - Content-addressed fixture id
    """

    def __init__(self, directory: ClubDirectory, settings: Settings | None = None) -> None:
        self._directory = directory
        self._settings = settings or get_settings()
        self._grace = timedelta(hours=self._settings.finish_grace_hours)

    @property
    def directory(self) -> ClubDirectory:
        return self._directory

    def _reject(self, record: RawMatchRecord, reason: RejectReason, detail: str = "") -> None:
        RECORDS_REJECTED.labels(reason=reason.value).inc()
        if reason == RejectReason.UNKNOWN_CLUBS:
            logger.debug("record_filtered", source=record.source, reason=reason.value)
            return
        logger.warning(
            "record_rejected",
            source=record.source,
            reason=reason.value,
            detail=detail,
            record=record.model_dump(exclude_none=True),
        )

    def _competition(self, record: RawMatchRecord) -> Optional[str]:
        if not record.competition or record.competition == self._settings.primary_competition:
            return None
        return record.competition

    def normalize(
        self,
        record: RawMatchRecord,
        priority: int,
        now: datetime,
        batch: NormalizationBatch | None = None,
    ) -> Optional[FixtureCandidate]:
        """Return a candidate, or None when the record is rejected."""
        batch = batch if batch is not None else NormalizationBatch()
        home = self._directory.normalize(record.home_team)
        away = self._directory.normalize(record.away_team)
        if not home or not away:
            self._reject(record, RejectReason.EMPTY_TEAM)
            batch.rejected += 1
            return None
        if home == away:
            self._reject(record, RejectReason.SAME_TEAMS, detail=home)
            batch.rejected += 1
            return None

        competition = self._competition(record)
        if competition is not None:
            if not self._directory.involves_known_club(home, away):
                self._reject(record, RejectReason.UNKNOWN_CLUBS)
                batch.rejected += 1
                return None
        else:
            for name in (home, away):
                if name not in self._directory.clubs:
                    batch.unmapped.add(name)

        parsed = parse_match_date(
            record.date_text, season_start_year(now.date()), self._settings.source_timezone
        )
        if parsed is None:
            self._reject(record, RejectReason.BAD_DATE, detail=record.date_text)
            batch.rejected += 1
            return None

        score: Optional[tuple[int, int]] = None
        if record.home_score is not None and record.away_score is not None:
            score = (record.home_score, record.away_score)
        else:
            score = parse_score(record.score_text)

        status = classify(
            StatusSignals(
                status_text=record.status_text,
                period=record.period,
                has_score=score is not None,
                kickoff=parsed.value,
            ),
            now,
            self._grace,
        )
        if status == FixtureStatus.FINISHED and score is None:
            self._reject(record, RejectReason.FINISHED_WITHOUT_SCORE)
            batch.rejected += 1
            return None
        if status == FixtureStatus.SCHEDULED and score is not None:
            logger.info(
                "score_dropped_for_scheduled",
                source=record.source,
                home=home,
                away=away,
                date=parsed.value.isoformat(),
            )
            score = None

        return FixtureCandidate(
            id=build_fixture_id(
                home,
                away,
                parsed.value,
                competition=competition,
                primary_competition=self._settings.primary_competition,
            ),
            date=parsed.value,
            home_team=home,
            away_team=away,
            home_score=score[0] if score else None,
            away_score=score[1] if score else None,
            status=status,
            source=record.source,
            priority=priority,
            explicit_round=_explicit_round(record),
            competition=competition,
            competition_round=record.competition_round,
            season=season_label(parsed.value.date()),
        )

    def normalize_many(
        self, records: Iterable[tuple[int, RawMatchRecord]], now: datetime
    ) -> NormalizationBatch:
        """Normalize (priority, record) pairs, collecting rejections and unmapped names."""
        batch = NormalizationBatch()
        for priority, record in records:
            candidate = self.normalize(record, priority, now, batch)
            if candidate is not None:
                batch.candidates.append(candidate)

        if batch.unmapped:
            UNMAPPED_TEAM_NAMES.inc(len(batch.unmapped))
            logger.warning("unmapped_team_names", names=sorted(batch.unmapped))
        logger.info(
            "records_normalized",
            candidates=len(batch.candidates),
            rejected=batch.rejected,
        )
        return batch
