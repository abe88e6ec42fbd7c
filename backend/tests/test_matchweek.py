"""
Unit tests for matchweek inference: explicit rounds, date clusters, elapsed
weeks and the completed-round correction pass.

Run: pytest backend/tests/test_matchweek.py -v
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from ingest.matchweek import (
    MatchweekInferenceEngine,
    RoundInput,
    cluster_by_date,
    rounds_from_candidates,
)
from ingest.normalization.normalizer import FixtureCandidate
from shared.config import Settings
from shared.models.domain import CanonicalFixture
from shared.models.enums import FixtureStatus, MatchweekSource


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def _finished(index: int, matchweek: int, kickoff: datetime) -> CanonicalFixture:
    return CanonicalFixture(
        id=f"home-{index}-away-{index}-{kickoff:%Y-%m-%d}",
        date=kickoff,
        home_team=f"Home {index}",
        away_team=f"Away {index}",
        home_score=1,
        away_score=0,
        matchweek=matchweek,
        matchweek_source=MatchweekSource.EXPLICIT,
        status=FixtureStatus.FINISHED,
        season="2025/2026",
    )


@pytest.fixture
def engine(settings: Settings) -> MatchweekInferenceEngine:
    return MatchweekInferenceEngine(settings)


# ── cluster_by_date ─────────────────────────────────────────────────────

class TestClusterByDate:

    def test_gap_splits_clusters(self) -> None:
        d = _utc(2025, 9, 13, 15, 0)
        dates = [d, d + timedelta(days=1), d + timedelta(days=2), d + timedelta(days=7)]
        assert cluster_by_date(dates, timedelta(days=3)) == [0, 0, 0, 1]

    def test_chained_dates_stay_together(self) -> None:
        d = _utc(2025, 9, 13)
        dates = [d + timedelta(days=2 * i) for i in range(4)]
        assert cluster_by_date(dates, timedelta(days=3)) == [0, 0, 0, 0]

    def test_empty(self) -> None:
        assert cluster_by_date([], timedelta(days=3)) == []


# ── Elapsed weeks ───────────────────────────────────────────────────────

class TestElapsedRound:

    def test_first_week(self, engine: MatchweekInferenceEngine) -> None:
        assert engine.elapsed_round(_utc(2025, 8, 3, 15, 0), date(2025, 8, 1)) == 1

    def test_second_week(self, engine: MatchweekInferenceEngine) -> None:
        assert engine.elapsed_round(_utc(2025, 8, 8, 15, 0), date(2025, 8, 1)) == 2

    def test_clamped_low(self, engine: MatchweekInferenceEngine) -> None:
        assert engine.elapsed_round(_utc(2025, 7, 20), date(2025, 8, 1)) == 1

    def test_clamped_high(self, engine: MatchweekInferenceEngine) -> None:
        assert engine.elapsed_round(_utc(2026, 7, 20), date(2025, 8, 1)) == 38

    def test_league_size_sets_ceiling(self) -> None:
        small = MatchweekInferenceEngine(Settings(metrics_enabled=False, league_size=10))
        assert small.elapsed_round(_utc(2026, 7, 20), date(2025, 8, 1)) == 18


# ── infer ───────────────────────────────────────────────────────────────

class TestInfer:

    def test_empty(self, engine: MatchweekInferenceEngine) -> None:
        assert engine.infer([]) == {}

    def test_explicit_round(self, engine: MatchweekInferenceEngine) -> None:
        result = engine.infer([RoundInput("a", _utc(2025, 11, 2, 16, 30), explicit_round=11)])
        assert result["a"].matchweek == 11
        assert result["a"].source == MatchweekSource.EXPLICIT

    def test_explicit_round_clamped(self, engine: MatchweekInferenceEngine) -> None:
        result = engine.infer([RoundInput("a", _utc(2025, 11, 2), explicit_round=45)])
        assert result["a"].matchweek == 38

    def test_cluster_inherits_dominant_round(self, engine: MatchweekInferenceEngine) -> None:
        d = _utc(2025, 11, 1, 15, 0)
        result = engine.infer(
            [
                RoundInput("a", d, explicit_round=11),
                RoundInput("b", d + timedelta(hours=3), explicit_round=11),
                RoundInput("c", d + timedelta(days=1), explicit_round=10),
                RoundInput("d", d + timedelta(days=2)),
            ]
        )
        assert result["d"].matchweek == 11
        assert result["d"].source == MatchweekSource.CLUSTER

    def test_elapsed_fallback(self, engine: MatchweekInferenceEngine) -> None:
        result = engine.infer([RoundInput("a", _utc(2025, 11, 2, 16, 30))])
        # 93 days after 1 August
        assert result["a"].matchweek == 14
        assert result["a"].source == MatchweekSource.ELAPSED

    def test_season_start_override(self) -> None:
        custom = MatchweekInferenceEngine(
            Settings(metrics_enabled=False, season_start=date(2025, 8, 15))
        )
        result = custom.infer([RoundInput("a", _utc(2025, 8, 16, 15, 0))])
        assert result["a"].matchweek == 1

    def test_deterministic(self, engine: MatchweekInferenceEngine) -> None:
        d = _utc(2025, 11, 1, 15, 0)
        records = [
            RoundInput("a", d, explicit_round=11),
            RoundInput("b", d + timedelta(days=1)),
            RoundInput("c", d + timedelta(days=20)),
        ]
        assert engine.infer(records) == engine.infer(list(reversed(records)))


# ── Correction pass ─────────────────────────────────────────────────────

class TestCorrection:

    def test_complete_round_pushes_stale_record_forward(
        self, engine: MatchweekInferenceEngine
    ) -> None:
        played = _utc(2025, 9, 13, 15, 0)
        prior = [_finished(i, 5, played) for i in range(10)]
        result = engine.infer(
            [RoundInput("late", _utc(2025, 9, 20, 15, 0), explicit_round=5)], prior
        )
        assert result["late"].matchweek >= 6
        assert result["late"].source == MatchweekSource.CORRECTED

    def test_incomplete_round_left_alone(self, engine: MatchweekInferenceEngine) -> None:
        played = _utc(2025, 9, 13, 15, 0)
        prior = [_finished(i, 5, played) for i in range(5)]
        result = engine.infer(
            [RoundInput("late", _utc(2025, 9, 20, 15, 0), explicit_round=5)], prior
        )
        assert result["late"].matchweek == 5
        assert result["late"].source == MatchweekSource.EXPLICIT

    def test_later_rounds_untouched(self, engine: MatchweekInferenceEngine) -> None:
        played = _utc(2025, 9, 13, 15, 0)
        prior = [_finished(i, 5, played) for i in range(10)]
        result = engine.infer(
            [RoundInput("next", _utc(2025, 9, 20, 15, 0), explicit_round=6)], prior
        )
        assert result["next"].source == MatchweekSource.EXPLICIT

    def test_separate_clusters_get_successive_rounds(
        self, engine: MatchweekInferenceEngine
    ) -> None:
        played = _utc(2025, 9, 13, 15, 0)
        prior = [_finished(i, 5, played) for i in range(10)]
        result = engine.infer(
            [
                RoundInput("x", _utc(2025, 9, 20, 15, 0), explicit_round=4),
                RoundInput("y", _utc(2025, 10, 4, 15, 0), explicit_round=5),
            ],
            prior,
        )
        assert result["x"].matchweek == 6
        assert result["y"].matchweek == 7

    def test_finished_records_in_batch_count(self, engine: MatchweekInferenceEngine) -> None:
        d = _utc(2025, 9, 13, 15, 0)
        records = [
            RoundInput(f"f{i}", d + timedelta(hours=i), explicit_round=5, finished=True)
            for i in range(8)
        ]
        records.append(RoundInput("open", _utc(2025, 9, 24, 19, 0), explicit_round=5))
        result = engine.infer(records)
        assert result["open"].matchweek == 6
        assert all(result[f"f{i}"].matchweek == 5 for i in range(8))

    def test_prior_finished_id_not_corrected(self, engine: MatchweekInferenceEngine) -> None:
        played = _utc(2025, 9, 13, 15, 0)
        prior = [_finished(i, 5, played) for i in range(10)]
        result = engine.infer([RoundInput(prior[0].id, played, explicit_round=5)], prior)
        assert result[prior[0].id].matchweek == 5

    def test_corrected_round_carried_once_finished(
        self, engine: MatchweekInferenceEngine
    ) -> None:
        played = _utc(2025, 9, 13, 15, 0)
        prior = [_finished(i, 5, played) for i in range(10)]
        corrected = _finished(20, 5, _utc(2025, 9, 20, 15, 0)).model_copy(
            update={"matchweek": 6, "matchweek_source": MatchweekSource.CORRECTED}
        )
        result = engine.infer(
            [RoundInput(corrected.id, corrected.date, explicit_round=5, finished=True)],
            [*prior, corrected],
        )
        assert result[corrected.id].matchweek == 6
        assert result[corrected.id].source == MatchweekSource.CORRECTED

    def test_higher_explicit_round_overrides_carried_correction(
        self, engine: MatchweekInferenceEngine
    ) -> None:
        corrected = _finished(20, 5, _utc(2025, 9, 20, 15, 0)).model_copy(
            update={"matchweek": 6, "matchweek_source": MatchweekSource.CORRECTED}
        )
        result = engine.infer(
            [RoundInput(corrected.id, corrected.date, explicit_round=7, finished=True)],
            [corrected],
        )
        assert result[corrected.id].matchweek == 7
        assert result[corrected.id].source == MatchweekSource.EXPLICIT


# ── rounds_from_candidates ──────────────────────────────────────────────

def _candidate(priority: int, **overrides: object) -> FixtureCandidate:
    fields: dict[str, object] = {
        "id": "arsenal-chelsea-2025-11-02",
        "date": _utc(2025, 11, 2, 16, 30),
        "home_team": "Arsenal",
        "away_team": "Chelsea",
        "home_score": None,
        "away_score": None,
        "status": FixtureStatus.SCHEDULED,
        "source": f"s{priority}",
        "priority": priority,
    }
    fields.update(overrides)
    return FixtureCandidate(**fields)


def test_rounds_from_candidates_collapses_ids() -> None:
    inputs = rounds_from_candidates(
        [
            _candidate(2, explicit_round=11, date=_utc(2025, 11, 2)),
            _candidate(1, status=FixtureStatus.FINISHED, home_score=1, away_score=1),
        ]
    )
    assert len(inputs) == 1
    assert inputs[0].explicit_round == 11
    assert inputs[0].date == _utc(2025, 11, 2, 16, 30)
    assert inputs[0].finished
