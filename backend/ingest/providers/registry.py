"""
Source registry: the ordered list of source descriptors for one cycle.
Trust order comes from settings.source_order; earlier sources win conflicts.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.config import Settings, get_settings
from shared.models.enums import SourceName
from shared.utils.circuit_breaker import CircuitBreaker
from shared.utils.http_client import BROWSER_HEADERS, SourceHTTPClient
from shared.utils.logging import get_logger

from ingest.normalization.identity import slug
from ingest.providers.base import BaseSourceAdapter
from ingest.providers.football_data import FootballDataAdapter
from ingest.providers.onefootball import OneFootballAdapter
from ingest.providers.rezultati import CUP_PAGES, REZULTATI_BASE, RezultatiAdapter

logger = get_logger(__name__)


@dataclass(frozen=True)
class SourceDescriptor:
    """One entry of the fallback chain. Lower priority number = more trusted."""
    name: str
    priority: int
    adapter: BaseSourceAdapter
    supplementary: bool = False


class SourceRegistry:
    """
    Holds adapters in trust order plus one circuit breaker per source.

    Primary sources form the fallback chain; supplementary sources (cup
    competitions) are merged whenever they succeed.
    """

    def __init__(
        self,
        descriptors: list[SourceDescriptor],
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._descriptors = sorted(descriptors, key=lambda d: d.priority)
        self._breakers: dict[str, CircuitBreaker] = {
            d.name: CircuitBreaker(
                d.name,
                failure_threshold=self._settings.circuit_failure_threshold,
                recovery_timeout_s=self._settings.circuit_recovery_s,
            )
            for d in self._descriptors
        }

    @property
    def descriptors(self) -> list[SourceDescriptor]:
        return list(self._descriptors)

    def breaker(self, name: str) -> Optional[CircuitBreaker]:
        if not self._settings.circuit_breaker_enabled:
            return None
        return self._breakers.get(name)

    async def start(self) -> None:
        for d in self._descriptors:
            await d.adapter.start()

    async def close(self) -> None:
        for d in self._descriptors:
            await d.adapter.close()


def build_source_registry(settings: Settings | None = None) -> SourceRegistry:
    """Construct the registry with every configured source in trust order."""
    settings = settings or get_settings()
    rezultati_http = SourceHTTPClient("rezultati", REZULTATI_BASE, headers=BROWSER_HEADERS)
    available: dict[str, BaseSourceAdapter] = {
        SourceName.ONEFOOTBALL.value: OneFootballAdapter(),
        SourceName.REZULTATI.value: RezultatiAdapter(http_client=rezultati_http),
    }
    if settings.football_data_api_key:
        available[SourceName.FOOTBALL_DATA.value] = FootballDataAdapter(settings.football_data_api_key)

    descriptors: list[SourceDescriptor] = []
    for name in settings.source_order:
        adapter = available.get(name)
        if adapter is None:
            logger.info("source_not_configured", source=name)
            continue
        descriptors.append(SourceDescriptor(name=name, priority=len(descriptors) + 1, adapter=adapter))

    for competition in settings.cup_competitions:
        pages = CUP_PAGES.get(competition)
        if pages is None:
            logger.warning("cup_competition_unknown", competition=competition)
            continue
        name = f"{SourceName.REZULTATI.value}:{slug(competition)}"
        descriptors.append(
            SourceDescriptor(
                name=name,
                priority=len(descriptors) + 1,
                adapter=RezultatiAdapter(pages, http_client=rezultati_http, name=name),
                supplementary=True,
            )
        )

    logger.info(
        "source_registry_built",
        primary=[d.name for d in descriptors if not d.supplementary],
        supplementary=[d.name for d in descriptors if d.supplementary],
    )
    return SourceRegistry(descriptors, settings)
