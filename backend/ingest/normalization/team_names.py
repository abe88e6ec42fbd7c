"""
Team name normalization.

Maps arbitrary source spellings onto one canonical name per club through an
immutable ClubDirectory. The directory is always passed in explicitly so tests
and other leagues can supply their own tables.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

_WHITESPACE = re.compile(r"\s+")
# Shared DOM templates on some sites append stray counters ("Arsenal1", "Chelsea 2 3").
_TRAILING_DIGITS = re.compile(r"(?:\s*\d+)+$")


# ── Reference data ──────────────────────────────────────────────────────
# canonical name -> aliases (matched case-insensitively after cleaning)
DEFAULT_CLUBS: dict[str, tuple[str, ...]] = {
    "Arsenal": ("arsenal fc", "ars"),
    "Aston Villa": ("villa", "aston villa fc", "avl"),
    "Bournemouth": ("afc bournemouth", "bournemouth fc", "bou"),
    "Brentford": ("brentford fc", "bre"),
    "Brighton & Hove Albion": (
        "brighton",
        "brighton and hove albion",
        "brighton & hove albion fc",
        "brighton hove albion",
        "bha",
    ),
    "Burnley": ("burnley fc", "bur"),
    "Chelsea": ("chelsea fc", "che"),
    "Crystal Palace": ("palace", "crystal palace fc", "cry"),
    "Everton": ("everton fc", "eve"),
    "Fulham": ("fulham fc", "ful"),
    "Ipswich Town": ("ipswich", "ipswich town fc", "ips"),
    "Leeds United": ("leeds", "leeds utd", "leeds united fc", "lee"),
    "Leicester City": ("leicester", "leicester city fc", "lei"),
    "Liverpool": ("liverpool fc", "liv"),
    "Manchester City": ("man city", "man. city", "manchester city fc", "mci"),
    "Manchester United": (
        "man utd",
        "man united",
        "man. united",
        "man. utd",
        "manchester utd",
        "manchester united fc",
        "mun",
    ),
    "Newcastle United": ("newcastle", "newcastle utd", "newcastle united fc", "new"),
    "Nottingham Forest": ("nott'm forest", "nottm forest", "forest", "nottingham forest fc", "nfo"),
    "Southampton": ("southampton fc", "sou"),
    "Sunderland": ("sunderland afc", "sunderland fc", "sun"),
    "Tottenham Hotspur": ("tottenham", "spurs", "tottenham hotspur fc", "tot"),
    "West Ham United": ("west ham", "west ham utd", "west ham united fc", "whu"),
    "Wolverhampton Wanderers": ("wolves", "wolverhampton", "wolverhampton wanderers fc", "wol"),
}

DEFAULT_DERBY_CLUBS = frozenset(
    {
        "Arsenal",
        "Manchester City",
        "Aston Villa",
        "Chelsea",
        "Liverpool",
        "Tottenham Hotspur",
        "Manchester United",
        "Newcastle United",
    }
)


# ── Cleaning ────────────────────────────────────────────────────────────
def clean_team_name(raw_name: str) -> str:
    """Trim, drop trailing digit artifacts, collapse whitespace and repeated words."""
    cleaned = _TRAILING_DIGITS.sub("", raw_name.strip())
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    words: list[str] = []
    for word in cleaned.split(" "):
        if words and words[-1].lower() == word.lower():
            continue
        words.append(word)
    return " ".join(words)


def alias_key(raw_name: str) -> str:
    return clean_team_name(raw_name).lower()


# ── Directory ───────────────────────────────────────────────────────────
@dataclass(frozen=True)
class ClubDirectory:
    """
    Immutable alias table plus derby reference data.

    Every canonical name is also registered as its own alias, so
    normalize(canonical) == canonical and normalize is idempotent.
    """

    aliases: Mapping[str, str]
    clubs: frozenset[str]
    derby_clubs: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_mapping(
        cls,
        clubs: Mapping[str, Iterable[str]],
        derby_clubs: Iterable[str] = (),
    ) -> "ClubDirectory":
        table: dict[str, str] = {}
        for canonical, names in clubs.items():
            for name in (canonical, *names):
                key = alias_key(name)
                existing = table.get(key)
                if existing is not None and existing != canonical:
                    raise ValueError(f"alias {name!r} maps to both {existing!r} and {canonical!r}")
                table[key] = canonical
        derbies = frozenset(derby_clubs)
        unknown = derbies - set(clubs)
        if unknown:
            raise ValueError(f"derby clubs missing from directory: {sorted(unknown)}")
        return cls(
            aliases=MappingProxyType(table),
            clubs=frozenset(clubs),
            derby_clubs=derbies,
        )

    @classmethod
    def default(cls) -> "ClubDirectory":
        return cls.from_mapping(DEFAULT_CLUBS, DEFAULT_DERBY_CLUBS)

    def normalize(self, raw_name: str) -> str:
        """Return the canonical club name, or the cleaned input when unmapped."""
        cleaned = clean_team_name(raw_name)
        return self.aliases.get(cleaned.lower(), cleaned)

    def is_known(self, name: str) -> bool:
        return self.normalize(name) in self.clubs

    def is_derby(self, home: str, away: str) -> bool:
        home_name = self.normalize(home)
        away_name = self.normalize(away)
        if home_name == away_name:
            return False
        return home_name in self.derby_clubs and away_name in self.derby_clubs

    def involves_known_club(self, home: str, away: str) -> bool:
        return self.is_known(home) or self.is_known(away)
