"""
Football-Data.org (football-data.org) fixture source.
Uses the v4 API with X-Auth-Token. Free tier: 10 requests/min, one call per cycle.
Carries an explicit `matchday` for every league match.
"""
from __future__ import annotations

from typing import Any, Optional

from shared.models.domain import DateWindow, RawMatchRecord
from shared.models.enums import SourceName
from shared.utils.http_client import SourceHTTPClient
from shared.utils.logging import get_logger

from ingest.providers.base import BaseSourceAdapter, SourceParseError

logger = get_logger(__name__)

FOOTBALL_DATA_BASE = "https://api.football-data.org/v4"
PREMIER_LEAGUE_CODE = "PL"


def _map_status(status: str) -> Optional[str]:
    """Map football-data.org status to a marker the status classifier understands."""
    s = (status or "").strip().upper()
    if s in ("LIVE", "IN_PLAY"):
        return "live"
    if s == "PAUSED":
        return "ht"
    if s in ("FINISHED", "AWARDED"):
        return "ft"
    return None


def parse_matches(payload: dict[str, Any], source: str = SourceName.FOOTBALL_DATA.value) -> list[RawMatchRecord]:
    """Convert a /competitions/{code}/matches payload into raw records."""
    matches = payload.get("matches")
    if matches is None:
        raise SourceParseError("payload has no 'matches' list")

    records: list[RawMatchRecord] = []
    for match in matches:
        home = (match.get("homeTeam") or {}).get("name")
        away = (match.get("awayTeam") or {}).get("name")
        utc_date = match.get("utcDate")
        if not home or not away or not utc_date:
            continue
        full_time = (match.get("score") or {}).get("fullTime") or {}
        status = (match.get("status") or "").upper()
        if status in ("POSTPONED", "CANCELLED", "SUSPENDED"):
            logger.debug("football_data_match_skipped", home=home, away=away, status=status)
            continue
        matchday = match.get("matchday")
        records.append(
            RawMatchRecord(
                source=source,
                home_team=home,
                away_team=away,
                date_text=utc_date,
                home_score=full_time.get("home"),
                away_score=full_time.get("away"),
                status_text=_map_status(status),
                round=matchday if isinstance(matchday, int) else None,
            )
        )
    return records


class FootballDataAdapter(BaseSourceAdapter):
    """Football-Data.org v4 API, primary league only."""

    def __init__(
        self,
        api_key: str,
        competition_code: str = PREMIER_LEAGUE_CODE,
        http_client: SourceHTTPClient | None = None,
    ) -> None:
        headers: dict[str, str] = {}
        if api_key:
            headers["X-Auth-Token"] = api_key
        super().__init__(
            SourceName.FOOTBALL_DATA.value,
            http_client
            or SourceHTTPClient(
                source_name="football_data",
                base_url=FOOTBALL_DATA_BASE,
                headers=headers,
                max_retries=2,
            ),
        )
        self._competition_code = competition_code

    async def _fetch(self, window: DateWindow | None) -> list[RawMatchRecord]:
        params: dict[str, Any] = {}
        if window is not None:
            params["dateFrom"] = window.start.date().isoformat()
            params["dateTo"] = window.end.date().isoformat()
        payload = await self.http.get_json(
            f"/competitions/{self._competition_code}/matches", params=params or None
        )
        return parse_matches(payload, self.name)
