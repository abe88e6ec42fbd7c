"""
OneFootball fixture source.

The competition pages are Next.js renders; the match cards live in the
embedded __NEXT_DATA__ JSON rather than in the markup, so the adapter reads
that blob and walks
props.pageProps.containers[].type.fullWidth.component.contentType
    .matchCardsListsAppender.lists[].matchCards[]
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Iterator, Optional

from bs4 import BeautifulSoup

from shared.models.domain import DateWindow, RawMatchRecord
from shared.models.enums import SourceName
from shared.utils.http_client import BROWSER_HEADERS, SourceHTTPClient
from shared.utils.logging import get_logger

from ingest.providers.base import BaseSourceAdapter, SourceParseError

logger = get_logger(__name__)

ONEFOOTBALL_BASE = "https://onefootball.com/en/competition/premier-league-9"
PAGES = ("/fixtures", "/results")


def extract_next_data(html: str) -> dict[str, Any]:
    soup = BeautifulSoup(html, "html.parser")
    script = soup.find("script", id="__NEXT_DATA__")
    if script is None or not script.string:
        raise SourceParseError("__NEXT_DATA__ script tag not found")
    try:
        return json.loads(script.string)
    except json.JSONDecodeError as exc:
        raise SourceParseError(f"__NEXT_DATA__ is not valid JSON: {exc}") from exc


def _dig(obj: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def iter_match_cards(next_data: dict[str, Any]) -> Iterator[dict[str, Any]]:
    for container in _dig(next_data, "props", "pageProps", "containers") or []:
        appender = _dig(
            container, "type", "fullWidth", "component", "contentType", "matchCardsListsAppender"
        )
        if not appender:
            continue
        for card_list in appender.get("lists") or []:
            yield from card_list.get("matchCards") or []


def _score(team: dict[str, Any]) -> Optional[int]:
    value = team.get("score")
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_match_cards(next_data: dict[str, Any], source: str = SourceName.ONEFOOTBALL.value) -> list[RawMatchRecord]:
    """Convert OneFootball match cards to raw records. Cards missing teams or kickoff are skipped."""
    records: list[RawMatchRecord] = []
    for card in iter_match_cards(next_data):
        home = card.get("homeTeam") or {}
        away = card.get("awayTeam") or {}
        kickoff = card.get("kickoff")
        if not home.get("name") or not away.get("name") or not kickoff:
            continue
        period = card.get("period")
        records.append(
            RawMatchRecord(
                source=source,
                home_team=home["name"],
                away_team=away["name"],
                date_text=kickoff,
                home_score=_score(home),
                away_score=_score(away),
                status_text=card.get("timePeriod") or None,
                period=period if isinstance(period, int) else None,
            )
        )
    return records


class OneFootballAdapter(BaseSourceAdapter):
    """Primary-league fixtures and results from OneFootball. No explicit rounds."""

    def __init__(self, http_client: SourceHTTPClient | None = None) -> None:
        super().__init__(
            SourceName.ONEFOOTBALL.value,
            http_client or SourceHTTPClient("onefootball", ONEFOOTBALL_BASE, headers=BROWSER_HEADERS),
        )

    async def _fetch(self, window: DateWindow | None) -> list[RawMatchRecord]:
        records: list[RawMatchRecord] = []
        for page in PAGES:
            html = await self.http.get_text(page)
            page_records = parse_match_cards(extract_next_data(html), self.name)
            logger.debug("onefootball_page_parsed", page=page, records=len(page_records))
            records.extend(page_records)
        if not records:
            raise SourceParseError("no match cards found")
        return records

    def _in_window(self, record: RawMatchRecord, window: DateWindow) -> bool:
        try:
            kickoff = datetime.fromisoformat(record.date_text.replace("Z", "+00:00"))
        except ValueError:
            return True
        return kickoff.tzinfo is None or window.contains(kickoff)
