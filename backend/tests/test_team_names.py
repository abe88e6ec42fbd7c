"""
Unit tests for team name cleaning, the club directory and derby lookup.

Run: pytest backend/tests/test_team_names.py -v
"""
from __future__ import annotations

import pytest

from ingest.normalization.team_names import (
    DEFAULT_CLUBS,
    DEFAULT_DERBY_CLUBS,
    ClubDirectory,
    clean_team_name,
)


# ── clean_team_name ─────────────────────────────────────────────────────

class TestCleanTeamName:

    def test_strips_whitespace(self) -> None:
        assert clean_team_name("  Arsenal  ") == "Arsenal"

    def test_collapses_inner_whitespace(self) -> None:
        assert clean_team_name("Man    Utd") == "Man Utd"

    def test_drops_trailing_digit(self) -> None:
        assert clean_team_name("Arsenal1") == "Arsenal"

    def test_drops_trailing_digit_runs(self) -> None:
        assert clean_team_name("Chelsea 2 3") == "Chelsea"

    def test_drops_repeated_word(self) -> None:
        assert clean_team_name("Newcastle Newcastle") == "Newcastle"

    def test_repeated_word_case_insensitive(self) -> None:
        assert clean_team_name("Everton everton") == "Everton"

    def test_empty(self) -> None:
        assert clean_team_name("   ") == ""


# ── ClubDirectory.normalize ─────────────────────────────────────────────

class TestNormalize:

    def test_alias(self, directory: ClubDirectory) -> None:
        assert directory.normalize("Man Utd") == "Manchester United"

    def test_alias_case_insensitive(self, directory: ClubDirectory) -> None:
        assert directory.normalize("SPURS") == "Tottenham Hotspur"

    def test_alias_with_scrape_noise(self, directory: ClubDirectory) -> None:
        assert directory.normalize("  man   utd 1") == "Manchester United"

    def test_unknown_name_passes_through_cleaned(self, directory: ClubDirectory) -> None:
        assert directory.normalize(" Real  Madrid ") == "Real Madrid"

    def test_every_alias_resolves_to_its_club(self, directory: ClubDirectory) -> None:
        for canonical, aliases in DEFAULT_CLUBS.items():
            assert directory.normalize(canonical) == canonical
            for alias in aliases:
                assert directory.normalize(alias) == canonical, alias

    def test_idempotent(self, directory: ClubDirectory) -> None:
        names = ["Man Utd", "Spurs", "Wolves", "Real Madrid", "Hull City 2", "palace"]
        for canonical, aliases in DEFAULT_CLUBS.items():
            names.extend(aliases)
        for name in names:
            once = directory.normalize(name)
            assert directory.normalize(once) == once

    def test_is_known(self, directory: ClubDirectory) -> None:
        assert directory.is_known("Nott'm Forest")
        assert not directory.is_known("Hull City")


# ── ClubDirectory construction ──────────────────────────────────────────

class TestDirectoryConstruction:

    def test_conflicting_alias_rejected(self) -> None:
        with pytest.raises(ValueError):
            ClubDirectory.from_mapping({"Alpha": ("ax",), "Beta": ("ax",)})

    def test_unknown_derby_club_rejected(self) -> None:
        with pytest.raises(ValueError):
            ClubDirectory.from_mapping({"Alpha": ()}, derby_clubs=["Beta"])

    def test_custom_directory(self) -> None:
        custom = ClubDirectory.from_mapping(
            {"Dinamo Zagreb": ("dinamo",), "Hajduk Split": ("hajduk",)},
            derby_clubs=["Dinamo Zagreb", "Hajduk Split"],
        )
        assert custom.normalize("Dinamo") == "Dinamo Zagreb"
        assert custom.is_derby("dinamo", "hajduk")
        assert custom.normalize("Man Utd") == "Man Utd"

    def test_default_derby_clubs_known(self, directory: ClubDirectory) -> None:
        assert DEFAULT_DERBY_CLUBS <= directory.clubs


# ── Derby and cup filters ───────────────────────────────────────────────

class TestDerby:

    def test_big_club_pair(self, directory: ClubDirectory) -> None:
        assert directory.is_derby("Man Utd", "Spurs")

    def test_one_big_club(self, directory: ClubDirectory) -> None:
        assert not directory.is_derby("Arsenal", "Fulham")

    def test_same_club_is_not_derby(self, directory: ClubDirectory) -> None:
        assert not directory.is_derby("Arsenal", "Arsenal FC")

    def test_involves_known_club(self, directory: ClubDirectory) -> None:
        assert directory.involves_known_club("Hull City", "Arsenal")
        assert not directory.involves_known_club("Hull City", "Stoke City")
