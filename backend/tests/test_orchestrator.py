"""
Unit tests for the source fallback chain and the source registry.

Run: pytest backend/tests/test_orchestrator.py -v
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from ingest.orchestrator import SourceOrchestrator
from ingest.providers.registry import SourceDescriptor, SourceRegistry, build_source_registry
from shared.config import Settings
from shared.models.domain import RawMatchRecord, SourceResult
from shared.models.enums import SourceOutcome


def _records(source: str, count: int) -> list[RawMatchRecord]:
    return [
        RawMatchRecord(
            source=source,
            home_team=f"Home {i}",
            away_team=f"Away {i}",
            date_text="2025-11-08T15:00:00Z",
        )
        for i in range(count)
    ]


def _adapter(result: SourceResult | None = None, side_effect=None) -> MagicMock:
    adapter = MagicMock()
    adapter.fetch = AsyncMock(return_value=result, side_effect=side_effect)
    adapter.start = AsyncMock()
    adapter.close = AsyncMock()
    return adapter


def _ok(source: str, count: int) -> SourceResult:
    return SourceResult(source=source, records=_records(source, count))


def _descriptor(name: str, priority: int, adapter: MagicMock, supplementary: bool = False) -> SourceDescriptor:
    return SourceDescriptor(name=name, priority=priority, adapter=adapter, supplementary=supplementary)


def _orchestrator(settings: Settings, *descriptors: SourceDescriptor) -> SourceOrchestrator:
    return SourceOrchestrator(SourceRegistry(list(descriptors), settings), settings)


# ── Fallback policy ─────────────────────────────────────────────────────

class TestFallback:

    @pytest.mark.asyncio
    async def test_first_fails_second_used(self, settings: Settings) -> None:
        orchestrator = _orchestrator(
            settings,
            _descriptor("a", 1, _adapter(SourceResult.failed("a", "boom"))),
            _descriptor("b", 2, _adapter(_ok("b", 10))),
        )
        merged = await orchestrator.run()
        assert merged.any_success
        assert len(merged.records) == 10
        assert merged.sources_used == ["b"]
        assert merged.per_source_outcome == {"a": SourceOutcome.FAILED, "b": SourceOutcome.SUCCESS}

    @pytest.mark.asyncio
    async def test_sufficient_first_source_stops_chain(self, settings: Settings) -> None:
        orchestrator = _orchestrator(
            settings,
            _descriptor("a", 1, _adapter(_ok("a", 150))),
            _descriptor("b", 2, _adapter(_ok("b", 40))),
        )
        merged = await orchestrator.run()
        assert merged.sources_used == ["a"]
        assert len(merged.records) == 150
        # b still ran and succeeded; it just was not needed
        assert merged.per_source_outcome["b"] == SourceOutcome.SUCCESS

    @pytest.mark.asyncio
    async def test_small_result_unions_next_source(self, settings: Settings) -> None:
        orchestrator = _orchestrator(
            settings,
            _descriptor("a", 1, _adapter(_ok("a", 10))),
            _descriptor("b", 2, _adapter(_ok("b", 20))),
            _descriptor("c", 3, _adapter(_ok("c", 30))),
        )
        merged = await orchestrator.run()
        assert merged.sources_used == ["a", "b", "c"]
        assert len(merged.records) == 60

    @pytest.mark.asyncio
    async def test_union_stops_at_threshold(self, settings: Settings) -> None:
        orchestrator = _orchestrator(
            settings,
            _descriptor("a", 1, _adapter(_ok("a", 60))),
            _descriptor("b", 2, _adapter(_ok("b", 60))),
            _descriptor("c", 3, _adapter(_ok("c", 60))),
        )
        merged = await orchestrator.run()
        assert merged.sources_used == ["a", "b"]

    @pytest.mark.asyncio
    async def test_records_carry_priority(self, settings: Settings) -> None:
        orchestrator = _orchestrator(
            settings,
            _descriptor("a", 1, _adapter(_ok("a", 1))),
            _descriptor("b", 2, _adapter(_ok("b", 1))),
        )
        merged = await orchestrator.run()
        assert [p for p, _ in merged.records] == [1, 2]

    @pytest.mark.asyncio
    async def test_empty_result_is_failure(self, settings: Settings) -> None:
        orchestrator = _orchestrator(
            settings,
            _descriptor("a", 1, _adapter(SourceResult(source="a", records=[]))),
        )
        merged = await orchestrator.run()
        assert not merged.any_success
        assert merged.attempts[0].outcome == SourceOutcome.FAILED
        assert merged.attempts[0].error == "empty result"

    @pytest.mark.asyncio
    async def test_all_sources_fail(self, settings: Settings) -> None:
        orchestrator = _orchestrator(
            settings,
            _descriptor("a", 1, _adapter(SourceResult.failed("a", "boom"))),
            _descriptor("b", 2, _adapter(SourceResult.failed("b", "boom"))),
        )
        merged = await orchestrator.run()
        assert not merged.any_success
        assert merged.records == []
        assert merged.sources_used == []

    @pytest.mark.asyncio
    async def test_supplementary_always_merged(self, settings: Settings) -> None:
        orchestrator = _orchestrator(
            settings,
            _descriptor("a", 1, _adapter(_ok("a", 150))),
            _descriptor("b", 2, _adapter(_ok("b", 5))),
            _descriptor("cup", 3, _adapter(_ok("cup", 4)), supplementary=True),
        )
        merged = await orchestrator.run()
        assert merged.sources_used == ["a", "cup"]
        assert len(merged.records) == 154

    @pytest.mark.asyncio
    async def test_supplementary_does_not_count_towards_threshold(self) -> None:
        settings = Settings(metrics_enabled=False, circuit_breaker_enabled=False, min_sufficient_records=5)
        orchestrator = _orchestrator(
            settings,
            _descriptor("cup", 1, _adapter(_ok("cup", 10)), supplementary=True),
            _descriptor("a", 2, _adapter(_ok("a", 2))),
            _descriptor("b", 3, _adapter(_ok("b", 2))),
        )
        merged = await orchestrator.run()
        assert merged.sources_used == ["cup", "a", "b"]

    @pytest.mark.asyncio
    async def test_window_passed_to_adapters(self, settings: Settings) -> None:
        adapter = _adapter(_ok("a", 1))
        orchestrator = _orchestrator(settings, _descriptor("a", 1, adapter))
        window = MagicMock()
        await orchestrator.run(window=window)
        adapter.fetch.assert_awaited_once_with(window)


# ── Timeouts and circuit breaking ───────────────────────────────────────

class TestResilience:

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self) -> None:
        settings = Settings(metrics_enabled=False, circuit_breaker_enabled=False, source_timeout_s=0.05)

        async def slow(window):
            await asyncio.sleep(1)
            return _ok("a", 200)

        orchestrator = _orchestrator(
            settings,
            _descriptor("a", 1, _adapter(side_effect=slow)),
            _descriptor("b", 2, _adapter(_ok("b", 10))),
        )
        merged = await orchestrator.run()
        assert merged.sources_used == ["b"]
        assert merged.attempts[0].timed_out
        assert merged.attempts[0].outcome == SourceOutcome.FAILED

    @pytest.mark.asyncio
    async def test_open_breaker_skips_source(self) -> None:
        settings = Settings(
            metrics_enabled=False,
            circuit_breaker_enabled=True,
            circuit_failure_threshold=1,
            circuit_recovery_s=600,
        )
        failing = _adapter(SourceResult.failed("a", "boom"))
        orchestrator = _orchestrator(
            settings,
            _descriptor("a", 1, failing),
            _descriptor("b", 2, _adapter(_ok("b", 10))),
        )
        await orchestrator.run()
        second = await orchestrator.run()
        assert failing.fetch.await_count == 1
        assert second.per_source_outcome["a"] == SourceOutcome.FAILED
        assert second.sources_used == ["b"]


# ── Registry ────────────────────────────────────────────────────────────

class TestRegistry:

    def test_default_registry_without_api_key(self, settings: Settings) -> None:
        registry = build_source_registry(settings)
        primary = [d.name for d in registry.descriptors if not d.supplementary]
        assert primary == ["onefootball", "rezultati"]
        cups = [d.name for d in registry.descriptors if d.supplementary]
        assert "rezultati:fa-cup" in cups
        assert len(cups) == len(settings.cup_competitions)

    def test_priorities_follow_source_order(self) -> None:
        settings = Settings(
            metrics_enabled=False,
            football_data_api_key="token",
            source_order=["football_data", "onefootball"],
            cup_competitions=[],
        )
        registry = build_source_registry(settings)
        assert [(d.name, d.priority) for d in registry.descriptors] == [
            ("football_data", 1),
            ("onefootball", 2),
        ]

    def test_breaker_disabled(self, settings: Settings) -> None:
        registry = build_source_registry(settings)
        assert registry.breaker("onefootball") is None

    def test_breaker_enabled(self) -> None:
        registry = build_source_registry(Settings(metrics_enabled=False, cup_competitions=[]))
        assert registry.breaker("onefootball") is not None

    @pytest.mark.asyncio
    async def test_start_and_close_every_adapter(self, settings: Settings) -> None:
        adapters = [_adapter(), _adapter()]
        registry = SourceRegistry(
            [_descriptor("a", 1, adapters[0]), _descriptor("b", 2, adapters[1])], settings
        )
        await registry.start()
        await registry.close()
        for adapter in adapters:
            adapter.start.assert_awaited_once()
            adapter.close.assert_awaited_once()
