"""
Abstract base class for all fixture sources.
Defines the contract every source adapter implements.
"""
from __future__ import annotations

import abc
import time
from typing import Optional

from shared.models.domain import DateWindow, RawMatchRecord, SourceResult
from shared.utils.http_client import SourceHTTPClient
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class SourceParseError(Exception):
    """Raised by an adapter when a payload no longer has the expected shape."""


class BaseSourceAdapter(abc.ABC):
    """
    Abstract base class for fixture sources.

    Subclasses implement _fetch, which may raise freely. The public fetch
    wraps it with timing and converts any fault into a failed SourceResult,
    so one bad source never aborts a cycle.
    """

    def __init__(self, name: str, http_client: Optional[SourceHTTPClient] = None) -> None:
        self._name = name
        self._http = http_client

    @property
    def name(self) -> str:
        return self._name

    async def start(self) -> None:
        """Initialize the adapter HTTP client."""
        if self._http is not None and not self._http.started:
            await self._http.start()

    async def close(self) -> None:
        """Shutdown the adapter HTTP client."""
        if self._http is not None:
            await self._http.close()

    @property
    def http(self) -> SourceHTTPClient:
        if self._http is None:
            raise RuntimeError(f"source {self._name} has no HTTP client")
        return self._http

    async def fetch(self, window: DateWindow | None = None) -> SourceResult:
        """Fetch and parse the source. Never raises."""
        start = time.perf_counter()
        try:
            await self.start()
            records = await self._fetch(window)
            if window is not None:
                records = [r for r in records if self._in_window(r, window)]
            latency_ms = (time.perf_counter() - start) * 1000
            logger.info(
                "source_fetched",
                source=self._name,
                records=len(records),
                latency_ms=round(latency_ms, 1),
            )
            return SourceResult(source=self._name, records=records, latency_ms=latency_ms)
        except Exception as exc:
            latency_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "source_fetch_failed",
                source=self._name,
                error=str(exc) or exc.__class__.__name__,
                error_type=exc.__class__.__name__,
            )
            return SourceResult.failed(
                self._name, str(exc) or exc.__class__.__name__, latency_ms
            )

    def _in_window(self, record: RawMatchRecord, window: DateWindow) -> bool:
        """Adapters that can date records cheaply override this; default keeps all."""
        return True

    # ── Abstract methods (each source implements these) ─────────────────
    @abc.abstractmethod
    async def _fetch(self, window: DateWindow | None) -> list[RawMatchRecord]:
        """Source-specific fetch and parse logic."""
        ...
