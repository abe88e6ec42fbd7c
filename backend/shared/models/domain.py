"""
Pydantic v2 domain models for the fixture sync engine.
These are the internal/wire representations, NOT ORM models.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shared.models.enums import FixtureStatus, MatchweekSource, SourceOutcome


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class FrozenModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, frozen=True)


# ── Source side ─────────────────────────────────────────────────────────
class DateWindow(FrozenModel):
    """Optional target window handed to adapters."""
    start: datetime
    end: datetime

    def contains(self, value: datetime) -> bool:
        return self.start <= value <= self.end


class RawMatchRecord(FrozenModel):
    """One match as scraped, before any normalization."""
    source: str
    home_team: str
    away_team: str
    date_text: str
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    score_text: Optional[str] = None
    status_text: Optional[str] = None
    period: Optional[int] = None
    round: Optional[int] = None
    round_label: Optional[str] = None
    competition: Optional[str] = None
    competition_round: Optional[str] = None


class SourceResult(DomainModel):
    """Output of one adapter for one cycle. Failure is data, not an exception."""
    source: str
    records: list[RawMatchRecord] = Field(default_factory=list)
    success: bool = True
    error: Optional[str] = None
    latency_ms: float = 0.0

    @classmethod
    def failed(cls, source: str, error: str, latency_ms: float = 0.0) -> "SourceResult":
        return cls(source=source, records=[], success=False, error=error, latency_ms=latency_ms)

    @property
    def usable(self) -> bool:
        return self.success and bool(self.records)


class SourceAttempt(DomainModel):
    """Per-source bookkeeping kept by the orchestrator."""
    source: str
    priority: int
    outcome: SourceOutcome
    record_count: int = 0
    used: bool = False
    timed_out: bool = False
    error: Optional[str] = None
    latency_ms: float = 0.0


# ── Canonical side ──────────────────────────────────────────────────────
class CanonicalFixture(DomainModel):
    """The single reconciled representation of one real-world match."""
    id: str
    date: datetime
    home_team: str
    away_team: str
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    matchweek: int = Field(ge=1)
    matchweek_source: MatchweekSource = MatchweekSource.ELAPSED
    status: FixtureStatus = FixtureStatus.SCHEDULED
    is_derby: bool = False
    competition: Optional[str] = None
    competition_round: Optional[str] = None
    season: Optional[str] = None
    source: Optional[str] = None
    source_priority: int = 0

    @model_validator(mode="after")
    def check_invariants(self) -> "CanonicalFixture":
        if self.home_team == self.away_team:
            raise ValueError(f"home and away are the same club: {self.home_team}")
        has_scores = self.home_score is not None and self.away_score is not None
        if self.status == FixtureStatus.FINISHED and not has_scores:
            raise ValueError(f"finished fixture {self.id} has no score")
        if self.status == FixtureStatus.SCHEDULED and (
            self.home_score is not None or self.away_score is not None
        ):
            raise ValueError(f"scheduled fixture {self.id} carries a score")
        return self

    @property
    def has_score(self) -> bool:
        return self.home_score is not None and self.away_score is not None


# ── Cycle reporting ─────────────────────────────────────────────────────
class CycleReport(DomainModel):
    kind: str
    started_at: datetime
    upserted: int = 0
    per_source_outcome: dict[str, SourceOutcome] = Field(default_factory=dict)
    sources_used: list[str] = Field(default_factory=list)
    fixtures: int = 0
    rejected: int = 0
    unmapped_teams: list[str] = Field(default_factory=list)
    success: bool = True
    error: Optional[str] = None
    duration_ms: float = 0.0


class SyncMetadata(DomainModel):
    key: str
    last_updated: datetime
    data_count: int
