"""
Rezultati.com fixture source.

Static results and schedule pages list `.event__round` headers followed by
`.event__match` rows. League headers read "10. kolo" (or "Round 10"), which
makes this the source of explicit round numbers; cup headers carry a stage
label instead. Kickoffs are local wall-clock "DD.MM. HH:mm" strings.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup, Tag

from shared.models.domain import DateWindow, RawMatchRecord
from shared.models.enums import SourceName
from shared.utils.http_client import BROWSER_HEADERS, SourceHTTPClient
from shared.utils.logging import get_logger

from ingest.normalization.normalizer import parse_round_label
from ingest.providers.base import BaseSourceAdapter, SourceParseError

logger = get_logger(__name__)

REZULTATI_BASE = "https://www.rezultati.com/nogomet"


@dataclass(frozen=True)
class RezultatiCompetition:
    competition: str
    pages: tuple[str, ...]


PREMIER_LEAGUE_PAGES = RezultatiCompetition(
    competition="Premier League",
    pages=("/engleska/premier-league/rezultati", "/engleska/premier-league/raspored"),
)

CUP_PAGES: dict[str, RezultatiCompetition] = {
    "FA Cup": RezultatiCompetition("FA Cup", ("/engleska/fa-cup/raspored",)),
    "Carabao Cup": RezultatiCompetition("Carabao Cup", ("/engleska/efl-cup/raspored",)),
    "UEFA Champions League": RezultatiCompetition(
        "UEFA Champions League", ("/europa/liga-prvaka/raspored",)
    ),
    "UEFA Europa League": RezultatiCompetition(
        "UEFA Europa League", ("/europa/europska-liga/raspored",)
    ),
    "UEFA Conference League": RezultatiCompetition(
        "UEFA Conference League", ("/europa/konferencijska-liga/raspored",)
    ),
}


def _text(row: Tag, *selectors: str) -> str:
    for selector in selectors:
        el = row.select_one(selector)
        if el is not None:
            text = el.get_text(" ", strip=True)
            if text:
                return text
    return ""


def _int_or_none(text: str) -> Optional[int]:
    return int(text) if text.isdigit() else None


def parse_event_list(
    html: str,
    source: str = SourceName.REZULTATI.value,
    competition: Optional[str] = None,
) -> list[RawMatchRecord]:
    """Parse the round headers and match rows of one results/schedule page."""
    soup = BeautifulSoup(html, "html.parser")
    current_round: Optional[int] = None
    current_label: Optional[str] = None
    records: list[RawMatchRecord] = []

    for el in soup.select(".event__round, .event__match"):
        classes = el.get("class") or []
        if "event__round" in classes:
            current_label = el.get_text(" ", strip=True) or None
            current_round = parse_round_label(current_label)
            continue

        home = _text(el, ".event__participant--home", "[class*='homeParticipant']")
        away = _text(el, ".event__participant--away", "[class*='awayParticipant']")
        if not home or not away:
            continue
        records.append(
            RawMatchRecord(
                source=source,
                home_team=home,
                away_team=away,
                date_text=_text(el, ".event__time"),
                home_score=_int_or_none(_text(el, ".event__score--home")),
                away_score=_int_or_none(_text(el, ".event__score--away")),
                status_text=_text(el, ".event__stage") or None,
                round=current_round,
                round_label=current_label,
                competition=competition,
                competition_round=current_label if current_round is None else None,
            )
        )
    return records


class RezultatiAdapter(BaseSourceAdapter):
    """League or cup fixtures from rezultati.com; one instance per competition."""

    def __init__(
        self,
        pages: RezultatiCompetition = PREMIER_LEAGUE_PAGES,
        http_client: SourceHTTPClient | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(
            name or SourceName.REZULTATI.value,
            http_client or SourceHTTPClient("rezultati", REZULTATI_BASE, headers=BROWSER_HEADERS),
        )
        self._pages = pages

    @property
    def competition(self) -> str:
        return self._pages.competition

    async def _fetch(self, window: DateWindow | None) -> list[RawMatchRecord]:
        records: list[RawMatchRecord] = []
        for page in self._pages.pages:
            html = await self.http.get_text(page)
            page_records = parse_event_list(html, self.name, self._pages.competition)
            logger.debug("rezultati_page_parsed", page=page, records=len(page_records))
            records.extend(page_records)
        if not records:
            raise SourceParseError(f"no match rows found for {self._pages.competition}")
        return records
