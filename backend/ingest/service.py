"""
Ingest service entrypoint.
Runs fixture sync cycles: fetch every source, normalize, infer matchweeks,
reconcile against the store, and upsert. Triggered once (cron) or in a loop.

    python -m ingest.service --once
    python -m ingest.service --finish-check
"""
from __future__ import annotations

import argparse
import asyncio
import signal
import time
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from shared.config import Settings, get_settings
from shared.models.domain import CanonicalFixture, CycleReport, DateWindow
from shared.models.enums import CycleKind, MatchweekSource
from shared.utils.database import DatabaseManager
from shared.utils.logging import bind_cycle, get_logger, setup_logging
from shared.utils.metrics import (
    CYCLE_DURATION,
    FIXTURES_UPSERTED,
    LAST_CYCLE_FIXTURES,
    LAST_CYCLE_TIMESTAMP,
    MATCHWEEK_CORRECTIONS,
    atrack_latency,
    start_metrics_server,
)
from shared.utils.redis_manager import FIXTURES_UPDATED_CHANNEL, LAST_CYCLE_KEY, RedisManager

from ingest.finish_checker import FINISH_CHECKER_KEY, FinishChecker
from ingest.matchweek import MatchweekInferenceEngine, rounds_from_candidates
from ingest.normalization.dates import season_label, utc_now
from ingest.normalization.normalizer import FixtureCandidate, RecordNormalizer
from ingest.normalization.team_names import ClubDirectory
from ingest.orchestrator import SourceOrchestrator
from ingest.providers.registry import SourceRegistry, build_source_registry
from ingest.reconciler import Reconciler
from ingest.store import FixtureStore, InMemoryFixtureStore, SqlFixtureStore, StoreError

logger = get_logger(__name__)

FIXTURES_SYNC_KEY = "fixtures"

# Retry connection on startup (e.g. Redis/DB not ready yet in Docker)
CONNECT_RETRY_ATTEMPTS = 10
CONNECT_RETRY_BASE_DELAY_S = 2.0


async def _connect_with_retry(connect_fn, name: str) -> None:
    """Call async connect_fn(); retry with exponential backoff on failure."""
    for attempt in range(1, CONNECT_RETRY_ATTEMPTS + 1):
        try:
            await connect_fn()
            return
        except Exception as exc:
            if attempt == CONNECT_RETRY_ATTEMPTS:
                raise
            delay = CONNECT_RETRY_BASE_DELAY_S * (2 ** (attempt - 1))
            logger.warning(
                "connect_retry",
                name=name,
                attempt=attempt,
                max_attempts=CONNECT_RETRY_ATTEMPTS,
                delay_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)


class IngestService:
    """
    Runs sync and finish-check cycles.

    The service keeps no fixture state between cycles; everything it needs is
    re-read from the store, so repeated or overlapping cycles are safe.
    """

    def __init__(
        self,
        store: FixtureStore,
        orchestrator: SourceOrchestrator,
        directory: ClubDirectory,
        redis: Optional[RedisManager] = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._directory = directory
        self._redis = redis
        self._settings = settings or get_settings()
        self._clock = clock
        self._normalizer = RecordNormalizer(directory, self._settings)
        self._matchweeks = MatchweekInferenceEngine(self._settings)
        self._reconciler = Reconciler(directory)
        self._finish_checker = FinishChecker(self._settings)
        self._shutdown = asyncio.Event()

    # ── Sync cycle ──────────────────────────────────────────────────────
    def _assign_matchweeks(
        self,
        candidates: Sequence[FixtureCandidate],
        prior: Sequence[CanonicalFixture],
    ) -> list[CanonicalFixture]:
        league = [c for c in candidates if c.competition is None]
        assignments = self._matchweeks.infer(rounds_from_candidates(league), prior)
        prior_rounds = {f.id: (f.matchweek, f.matchweek_source) for f in prior}
        corrected = sum(
            1
            for fixture_id, a in assignments.items()
            if a.source == MatchweekSource.CORRECTED
            and prior_rounds.get(fixture_id) != (a.matchweek, a.source)
        )
        if corrected:
            MATCHWEEK_CORRECTIONS.inc(corrected)

        fixtures: list[CanonicalFixture] = []
        for candidate in candidates:
            is_derby = self._directory.is_derby(candidate.home_team, candidate.away_team)
            if candidate.competition is None:
                assigned = assignments[candidate.id]
                fixtures.append(candidate.to_fixture(assigned.matchweek, assigned.source, is_derby))
            elif candidate.explicit_round:
                fixtures.append(
                    candidate.to_fixture(candidate.explicit_round, MatchweekSource.EXPLICIT, is_derby)
                )
            else:
                fixtures.append(candidate.to_fixture(1, MatchweekSource.ELAPSED, is_derby))
        return fixtures

    async def run_cycle(self, window: DateWindow | None = None) -> CycleReport:
        """One full sync: sources -> normalize -> matchweeks -> reconcile -> upsert."""
        now = self._clock()
        bind_cycle(uuid.uuid4().hex[:12], CycleKind.SYNC.value)
        report = CycleReport(kind=CycleKind.SYNC.value, started_at=now)
        start = time.perf_counter()

        async with atrack_latency(CYCLE_DURATION, kind=CycleKind.SYNC.value):
            orchestrated = await self._orchestrator.run(window=window)
            report.per_source_outcome = orchestrated.per_source_outcome
            report.sources_used = orchestrated.sources_used
            if not orchestrated.any_success:
                report.success = False
                report.error = "no source returned usable records"
                logger.error("cycle_no_sources", outcomes=report.per_source_outcome)
                return self._finish(report, start)

            batch = self._normalizer.normalize_many(orchestrated.records, now)
            report.rejected = batch.rejected
            report.unmapped_teams = sorted(batch.unmapped)

            try:
                existing = await self._store.get_many({c.id for c in batch.candidates})
                finished = await self._store.list_finished(season_label(now.date()))
                league_existing = [f for f in existing.values() if f.competition is None]
                prior = list({f.id: f for f in [*finished, *league_existing]}.values())

                fixtures = self._assign_matchweeks(batch.candidates, prior)
                reconciled = self._reconciler.reconcile_all(fixtures, existing)
                report.fixtures = len(reconciled)

                report.upserted = await self._store.upsert(reconciled)
                await self._store.record_sync(FIXTURES_SYNC_KEY, report.fixtures)
            except StoreError as exc:
                report.upserted = exc.written
                report.success = False
                report.error = str(exc)
                logger.error("cycle_persistence_failed", upserted=exc.written, error=str(exc))
                return self._finish(report, start)
            except SQLAlchemyError as exc:
                report.success = False
                report.error = f"store read failed: {exc}"
                logger.error("cycle_store_read_failed", error=str(exc))
                return self._finish(report, start)

        FIXTURES_UPSERTED.inc(report.upserted)
        LAST_CYCLE_FIXTURES.set(report.fixtures)
        LAST_CYCLE_TIMESTAMP.labels(kind=CycleKind.SYNC.value).set(time.time())
        await self._notify(report)
        return self._finish(report, start)

    # ── Finish check ────────────────────────────────────────────────────
    async def run_finish_check(self) -> CycleReport:
        """Resolve fixtures still open long after kickoff from freshly scraped results."""
        now = self._clock()
        bind_cycle(uuid.uuid4().hex[:12], CycleKind.FINISH_CHECK.value)
        report = CycleReport(kind=CycleKind.FINISH_CHECK.value, started_at=now)
        start = time.perf_counter()

        async with atrack_latency(CYCLE_DURATION, kind=CycleKind.FINISH_CHECK.value):
            try:
                due = await self._finish_checker.due(self._store, now)
            except SQLAlchemyError as exc:
                report.success = False
                report.error = f"store read failed: {exc}"
                logger.error("finish_check_store_read_failed", error=str(exc))
                return self._finish(report, start)

            if not due:
                logger.info("finish_check_nothing_due")
                await self._record_finish_check(report, 0)
                return self._finish(report, start)

            tolerance = timedelta(hours=self._settings.finish_match_tolerance_hours)
            window = DateWindow(start=min(f.date for f in due) - tolerance, end=now)
            orchestrated = await self._orchestrator.run(window=window)
            report.per_source_outcome = orchestrated.per_source_outcome
            report.sources_used = orchestrated.sources_used

            batch = self._normalizer.normalize_many(orchestrated.records, now)
            report.rejected = batch.rejected
            resolved = self._finish_checker.apply(due, batch.candidates)
            report.fixtures = len(resolved)

            try:
                report.upserted = await self._store.upsert(resolved) if resolved else 0
            except StoreError as exc:
                report.upserted = exc.written
                report.success = False
                report.error = str(exc)
                logger.error("finish_check_persistence_failed", error=str(exc))
                return self._finish(report, start)
            await self._record_finish_check(report, len(resolved))

        FIXTURES_UPSERTED.inc(report.upserted)
        LAST_CYCLE_TIMESTAMP.labels(kind=CycleKind.FINISH_CHECK.value).set(time.time())
        if report.upserted:
            await self._notify(report)
        return self._finish(report, start)

    async def _record_finish_check(self, report: CycleReport, count: int) -> None:
        try:
            await self._store.record_sync(FINISH_CHECKER_KEY, count)
        except StoreError as exc:
            report.success = False
            report.error = str(exc)
            logger.error("finish_check_metadata_failed", error=str(exc))

    # ── Helpers ─────────────────────────────────────────────────────────
    def _finish(self, report: CycleReport, start: float) -> CycleReport:
        report.duration_ms = round((time.perf_counter() - start) * 1000, 1)
        log = logger.info if report.success else logger.error
        log(
            "cycle_complete",
            kind=report.kind,
            success=report.success,
            upserted=report.upserted,
            fixtures=report.fixtures,
            rejected=report.rejected,
            outcomes={k: v.value for k, v in report.per_source_outcome.items()},
            duration_ms=report.duration_ms,
        )
        return report

    async def _notify(self, report: CycleReport) -> None:
        """Publish cache invalidation and keep the last report; Redis is best effort."""
        if self._redis is None:
            return
        try:
            await self._redis.set_snapshot(LAST_CYCLE_KEY, report.model_dump_json())
            if report.upserted:
                await self._redis.publish(
                    FIXTURES_UPDATED_CHANNEL,
                    {"type": "fixtures_updated", "kind": report.kind, "count": report.upserted},
                )
        except RedisError as exc:
            logger.warning("cache_invalidation_failed", error=str(exc))

    # ── Loop ────────────────────────────────────────────────────────────
    async def run_forever(self) -> None:
        """Run a sync then a finish check every cycle_interval_s until shutdown."""
        while not self._shutdown.is_set():
            await self.run_cycle()
            await self.run_finish_check()
            try:
                await asyncio.wait_for(
                    self._shutdown.wait(), timeout=self._settings.cycle_interval_s
                )
            except asyncio.TimeoutError:
                continue

    def request_shutdown(self) -> None:
        self._shutdown.set()


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Football fixture sync")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="Run one sync cycle and exit")
    mode.add_argument("--finish-check", action="store_true", help="Run one finish check and exit")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Use an in-memory store instead of Postgres and skip Redis",
    )
    return parser.parse_args(argv)


async def main(argv: Sequence[str] | None = None) -> int:
    """Ingest service entrypoint. Returns a process exit code."""
    args = _parse_args(argv)
    settings = get_settings()
    setup_logging("ingest")
    start_metrics_server()

    db: Optional[DatabaseManager] = None
    redis: Optional[RedisManager] = None
    if args.dry_run:
        store: FixtureStore = InMemoryFixtureStore()
    else:
        db = DatabaseManager(settings)
        await _connect_with_retry(db.connect, "Database")
        sql_store = SqlFixtureStore(db)
        await sql_store.create_schema()
        store = sql_store
        if settings.redis_enabled:
            redis = RedisManager(settings)
            await _connect_with_retry(redis.connect, "Redis")

    registry: SourceRegistry = build_source_registry(settings)
    await registry.start()
    service = IngestService(
        store,
        SourceOrchestrator(registry, settings),
        ClubDirectory.default(),
        redis=redis,
        settings=settings,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, service.request_shutdown)
        except (ValueError, OSError, RuntimeError, NotImplementedError) as exc:
            logger.warning("signal_handler_unavailable", signal=sig, error=str(exc))

    logger.info("ingest_service_started", sources=[d.name for d in registry.descriptors])
    exit_code = 0
    try:
        if args.once:
            exit_code = 0 if (await service.run_cycle()).success else 1
        elif args.finish_check:
            exit_code = 0 if (await service.run_finish_check()).success else 1
        else:
            await service.run_forever()
    finally:
        await registry.close()
        if db is not None:
            await db.disconnect()
        if redis is not None:
            await redis.disconnect()
        logger.info("ingest_service_stopped")
    return exit_code


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
