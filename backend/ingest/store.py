"""
Fixture persistence.

The cycle reads existing rows before writing fully merged ones. The Postgres
upsert repeats the forward-only rules in its ON CONFLICT clause so two
overlapping cycles cannot regress a row between read and write.
"""
from __future__ import annotations

import abc
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError

from shared.models.domain import CanonicalFixture, SyncMetadata
from shared.models.enums import FixtureStatus, MatchweekSource
from shared.models.orm import Base, CacheMetadataORM, FixtureORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

from ingest.reconciler import merge_existing

logger = get_logger(__name__)

UPSERT_BATCH_SIZE = 50


class StoreError(Exception):
    """A write to the fixture store failed. `written` counts rows committed before the failure."""

    def __init__(self, message: str, written: int = 0) -> None:
        self.written = written
        super().__init__(message)


class FixtureStore(abc.ABC):
    """Keyed upsert store for canonical fixtures plus sync metadata."""

    @abc.abstractmethod
    async def get_many(self, ids: Iterable[str]) -> dict[str, CanonicalFixture]:
        ...

    @abc.abstractmethod
    async def list_by_status(
        self,
        statuses: Sequence[FixtureStatus],
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[CanonicalFixture]:
        ...

    @abc.abstractmethod
    async def list_finished(self, season: Optional[str] = None) -> list[CanonicalFixture]:
        """Finished primary-league fixtures, optionally limited to one season."""
        ...

    @abc.abstractmethod
    async def upsert(self, fixtures: Sequence[CanonicalFixture]) -> int:
        """Write fixtures keyed by id. Raises StoreError with the partial count on failure."""
        ...

    @abc.abstractmethod
    async def record_sync(self, key: str, count: int) -> SyncMetadata:
        ...

    @abc.abstractmethod
    async def last_sync(self, key: str) -> Optional[SyncMetadata]:
        ...


# ── In-memory ───────────────────────────────────────────────────────────
class InMemoryFixtureStore(FixtureStore):
    """Dict-backed store applying the same forward-only merge on write."""

    def __init__(self, fixtures: Iterable[CanonicalFixture] = ()) -> None:
        self._rows: dict[str, CanonicalFixture] = {f.id: f for f in fixtures}
        self._metadata: dict[str, SyncMetadata] = {}

    @property
    def rows(self) -> dict[str, CanonicalFixture]:
        return dict(self._rows)

    async def get_many(self, ids: Iterable[str]) -> dict[str, CanonicalFixture]:
        return {i: self._rows[i] for i in ids if i in self._rows}

    async def list_by_status(
        self,
        statuses: Sequence[FixtureStatus],
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[CanonicalFixture]:
        return sorted(
            (
                f
                for f in self._rows.values()
                if f.status in statuses
                and (since is None or f.date >= since)
                and (until is None or f.date <= until)
            ),
            key=lambda f: f.date,
        )

    async def list_finished(self, season: Optional[str] = None) -> list[CanonicalFixture]:
        return [
            f
            for f in self._rows.values()
            if f.status == FixtureStatus.FINISHED
            and f.competition is None
            and (season is None or f.season == season)
        ]

    async def upsert(self, fixtures: Sequence[CanonicalFixture]) -> int:
        for fixture in fixtures:
            self._rows[fixture.id] = merge_existing(fixture, self._rows.get(fixture.id))
        return len(fixtures)

    async def record_sync(self, key: str, count: int) -> SyncMetadata:
        meta = SyncMetadata(key=key, last_updated=datetime.now(timezone.utc), data_count=count)
        self._metadata[key] = meta
        return meta

    async def last_sync(self, key: str) -> Optional[SyncMetadata]:
        return self._metadata.get(key)


# ── Postgres ────────────────────────────────────────────────────────────
def _to_domain(row: FixtureORM) -> CanonicalFixture:
    return CanonicalFixture.model_validate(row)


def _to_row(fixture: CanonicalFixture) -> dict[str, object]:
    return {
        "id": fixture.id,
        "date": fixture.date,
        "home_team": fixture.home_team,
        "away_team": fixture.away_team,
        "home_score": fixture.home_score,
        "away_score": fixture.away_score,
        "matchweek": fixture.matchweek,
        "matchweek_source": fixture.matchweek_source.value,
        "status": fixture.status.value,
        "status_rank": fixture.status.rank,
        "is_derby": fixture.is_derby,
        "competition": fixture.competition,
        "competition_round": fixture.competition_round,
        "season": fixture.season,
        "source": fixture.source,
        "source_priority": fixture.source_priority,
    }


class SqlFixtureStore(FixtureStore):
    """PostgreSQL store using SQLAlchemy async sessions."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def create_schema(self) -> None:
        await self._db.create_schema(Base.metadata)

    async def get_many(self, ids: Iterable[str]) -> dict[str, CanonicalFixture]:
        id_list = list(ids)
        if not id_list:
            return {}
        async with self._db.read_session() as session:
            result = await session.execute(select(FixtureORM).where(FixtureORM.id.in_(id_list)))
            return {row.id: _to_domain(row) for row in result.scalars()}

    async def list_by_status(
        self,
        statuses: Sequence[FixtureStatus],
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> list[CanonicalFixture]:
        stmt = select(FixtureORM).where(FixtureORM.status.in_([s.value for s in statuses]))
        if since is not None:
            stmt = stmt.where(FixtureORM.date >= since)
        if until is not None:
            stmt = stmt.where(FixtureORM.date <= until)
        async with self._db.read_session() as session:
            result = await session.execute(stmt.order_by(FixtureORM.date))
            return [_to_domain(row) for row in result.scalars()]

    async def list_finished(self, season: Optional[str] = None) -> list[CanonicalFixture]:
        stmt = select(FixtureORM).where(
            FixtureORM.status == FixtureStatus.FINISHED.value,
            FixtureORM.competition.is_(None),
        )
        if season is not None:
            stmt = stmt.where(FixtureORM.season == season)
        async with self._db.read_session() as session:
            result = await session.execute(stmt)
            return [_to_domain(row) for row in result.scalars()]

    def _upsert_stmt(self, rows: list[dict[str, object]]):
        stmt = pg_insert(FixtureORM).values(rows)
        excluded = stmt.excluded
        finished = FixtureStatus.FINISHED.rank
        advancing = excluded.status_rank >= FixtureORM.status_rank
        trusted = excluded.source_priority <= FixtureORM.source_priority

        # Same rules as merge_existing: a final score only yields to a
        # final score from an equally or more trusted source.
        takes_score = or_(
            and_(FixtureORM.status_rank < finished, advancing),
            and_(
                excluded.status_rank == finished,
                excluded.home_score.is_not(None),
                excluded.away_score.is_not(None),
                trusted,
            ),
        )
        takes_round = or_(
            and_(
                excluded.matchweek_source == MatchweekSource.CORRECTED.value,
                FixtureORM.status_rank < finished,
            ),
            and_(
                excluded.matchweek_source == MatchweekSource.EXPLICIT.value,
                or_(
                    FixtureORM.matchweek_source.in_(
                        [MatchweekSource.CLUSTER.value, MatchweekSource.ELAPSED.value]
                    ),
                    and_(
                        FixtureORM.matchweek_source == MatchweekSource.CORRECTED.value,
                        excluded.matchweek > FixtureORM.matchweek,
                    ),
                    and_(FixtureORM.matchweek_source == MatchweekSource.EXPLICIT.value, trusted),
                ),
            ),
        )

        def guarded(condition, column: str):
            return case((condition, excluded[column]), else_=getattr(FixtureORM, column))

        def guarded_score(column: str):
            current = getattr(FixtureORM, column)
            return case((takes_score, func.coalesce(excluded[column], current)), else_=current)

        return stmt.on_conflict_do_update(
            index_elements=[FixtureORM.id],
            set_={
                "date": guarded(trusted, "date"),
                "status": case((advancing, excluded.status), else_=FixtureORM.status),
                "status_rank": func.greatest(FixtureORM.status_rank, excluded.status_rank),
                "home_score": guarded_score("home_score"),
                "away_score": guarded_score("away_score"),
                "matchweek": guarded(takes_round, "matchweek"),
                "matchweek_source": guarded(takes_round, "matchweek_source"),
                "is_derby": excluded.is_derby,
                "competition": func.coalesce(excluded.competition, FixtureORM.competition),
                "competition_round": func.coalesce(
                    excluded.competition_round, FixtureORM.competition_round
                ),
                "season": func.coalesce(excluded.season, FixtureORM.season),
                "source": guarded(takes_score, "source"),
                "source_priority": guarded(takes_score, "source_priority"),
                "updated_at": func.now(),
            },
        )

    async def upsert(self, fixtures: Sequence[CanonicalFixture]) -> int:
        written = 0
        for start in range(0, len(fixtures), UPSERT_BATCH_SIZE):
            batch = [_to_row(f) for f in fixtures[start : start + UPSERT_BATCH_SIZE]]
            try:
                async with self._db.write_session() as session:
                    await session.execute(self._upsert_stmt(batch))
            except SQLAlchemyError as exc:
                logger.error(
                    "fixture_upsert_failed",
                    batch_start=start,
                    written=written,
                    error=str(exc),
                )
                raise StoreError(f"upsert failed after {written} rows: {exc}", written) from exc
            written += len(batch)
        logger.info("fixtures_upserted", count=written)
        return written

    async def record_sync(self, key: str, count: int) -> SyncMetadata:
        now = datetime.now(timezone.utc)
        stmt = pg_insert(CacheMetadataORM).values(key=key, last_updated=now, data_count=count)
        stmt = stmt.on_conflict_do_update(
            index_elements=[CacheMetadataORM.key],
            set_={"last_updated": now, "data_count": count},
        )
        try:
            async with self._db.write_session() as session:
                await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError(f"sync metadata write failed: {exc}") from exc
        return SyncMetadata(key=key, last_updated=now, data_count=count)

    async def last_sync(self, key: str) -> Optional[SyncMetadata]:
        async with self._db.read_session() as session:
            row = await session.get(CacheMetadataORM, key)
            return SyncMetadata.model_validate(row) if row is not None else None
