"""
Source orchestration: the fallback chain.

All sources are dispatched concurrently, each under its own wall-clock limit.
Once every dispatch has settled, one loop walks the primary sources in trust
order and decides which results to fold in. Supplementary sources are folded
in whenever they succeed.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from shared.config import Settings, get_settings
from shared.models.domain import DateWindow, RawMatchRecord, SourceAttempt, SourceResult
from shared.models.enums import SourceOutcome
from shared.utils.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from shared.utils.logging import get_logger
from shared.utils.metrics import SOURCE_FETCHES

from ingest.providers.registry import SourceDescriptor, SourceRegistry

logger = get_logger(__name__)


@dataclass
class OrchestratedRecords:
    """Merged output of one orchestration run."""
    records: list[tuple[int, RawMatchRecord]] = field(default_factory=list)
    attempts: list[SourceAttempt] = field(default_factory=list)

    @property
    def per_source_outcome(self) -> dict[str, SourceOutcome]:
        return {a.source: a.outcome for a in self.attempts}

    @property
    def sources_used(self) -> list[str]:
        return [a.source for a in self.attempts if a.used]

    @property
    def any_success(self) -> bool:
        return any(a.used for a in self.attempts)


@dataclass(frozen=True)
class _Settled:
    descriptor: SourceDescriptor
    result: SourceResult
    timed_out: bool = False


class SourceOrchestrator:
    """
    Runs the fallback chain for one cycle.

    Policy over primary sources, in trust order:
    - failed, timed-out or empty results are skipped
    - a usable result is folded in
    - while the folded record count is below min_sufficient_records the next
      source is folded in too (union), otherwise the chain stops
    """

    def __init__(self, registry: SourceRegistry, settings: Settings | None = None) -> None:
        self._registry = registry
        self._settings = settings or get_settings()

    async def _dispatch(
        self, descriptor: SourceDescriptor, window: Optional[DateWindow]
    ) -> _Settled:
        breaker: Optional[CircuitBreaker] = self._registry.breaker(descriptor.name)
        if breaker is not None:
            try:
                await breaker.acquire()
            except CircuitBreakerOpen as exc:
                logger.warning(
                    "source_circuit_open",
                    source=descriptor.name,
                    retry_after_s=round(exc.retry_after),
                    failures=breaker.stats["failure_count"],
                )
                return _Settled(descriptor, SourceResult.failed(descriptor.name, str(exc)))

        timed_out = False
        try:
            result = await asyncio.wait_for(
                descriptor.adapter.fetch(window), timeout=self._settings.source_timeout_s
            )
        except asyncio.TimeoutError:
            timed_out = True
            logger.error(
                "source_timeout",
                source=descriptor.name,
                timeout_s=self._settings.source_timeout_s,
            )
            result = SourceResult.failed(
                descriptor.name,
                f"timed out after {self._settings.source_timeout_s:.0f}s",
                self._settings.source_timeout_s * 1000,
            )

        if breaker is not None:
            if result.usable:
                await breaker.record_success()
            else:
                await breaker.record_failure(result.error or "empty result")
        return _Settled(descriptor, result, timed_out)

    async def run(
        self,
        descriptors: list[SourceDescriptor] | None = None,
        window: DateWindow | None = None,
    ) -> OrchestratedRecords:
        """Dispatch every source, wait for all to settle, then apply the fallback policy."""
        chain = sorted(descriptors or self._registry.descriptors, key=lambda d: d.priority)
        settled = await asyncio.gather(*(self._dispatch(d, window) for d in chain))

        merged = OrchestratedRecords()
        primary_count = 0
        enough = False
        for item in settled:
            descriptor, result = item.descriptor, item.result
            attempt = SourceAttempt(
                source=descriptor.name,
                priority=descriptor.priority,
                outcome=SourceOutcome.SUCCESS if result.usable else SourceOutcome.FAILED,
                record_count=len(result.records),
                timed_out=item.timed_out,
                error=result.error if not result.usable else None,
                latency_ms=result.latency_ms,
            )
            if not result.usable and result.success:
                attempt.error = "empty result"
            SOURCE_FETCHES.labels(source=descriptor.name, outcome=attempt.outcome.value).inc()

            if result.usable and (descriptor.supplementary or not enough):
                attempt.used = True
                merged.records.extend((descriptor.priority, r) for r in result.records)
                if not descriptor.supplementary:
                    primary_count += attempt.record_count
                    enough = primary_count >= self._settings.min_sufficient_records
                    if not enough:
                        logger.info(
                            "source_result_small",
                            source=descriptor.name,
                            records=primary_count,
                            threshold=self._settings.min_sufficient_records,
                        )
            elif not result.usable:
                logger.warning(
                    "source_skipped",
                    source=descriptor.name,
                    error=attempt.error,
                    timed_out=item.timed_out,
                )
            merged.attempts.append(attempt)

        logger.info(
            "sources_orchestrated",
            used=merged.sources_used,
            outcomes={k: v.value for k, v in merged.per_source_outcome.items()},
            records=len(merged.records),
        )
        return merged
