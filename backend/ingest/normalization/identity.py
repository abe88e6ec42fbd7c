"""
Content-addressed fixture identity.

The id deliberately leaves out kickoff time and round number: both get
corrected after the first scrape and must not fork the match into two rows.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

_WHITESPACE = re.compile(r"\s+")


def slug(name: str) -> str:
    return _WHITESPACE.sub("-", name.strip().lower())


def build_fixture_id(
    home: str,
    away: str,
    date: datetime,
    competition: Optional[str] = None,
    primary_competition: Optional[str] = None,
) -> str:
    """
    Build "<home>-<away>-<YYYY-MM-DD>" from canonical names and the UTC date.

    A competition other than the primary league is appended so that a cup tie
    between two league rivals on the same day keeps its own row.
    """
    if date.tzinfo is not None:
        date = date.astimezone(timezone.utc)
    key = f"{slug(home)}-{slug(away)}-{date.strftime('%Y-%m-%d')}"
    if competition and competition != primary_competition:
        key = f"{key}-{slug(competition)}"
    return key
