"""
In-memory cache of source documents with stale-data fallback.
"""

import asyncio
import copy
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

from shared.errors import UpstreamUnavailableError
from shared.logging import get_logger

from ..adapters.source_loader import SourceLoader, SourceLoadError
from ..domain.sources import SourceRegistry

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_TTL_SECONDS = 600


@dataclass(frozen=True)
class CachedDocument:
    """Latest successfully parsed document for one source key."""

    key: str
    value: Any
    fetched_at: float


class SourceCache:
    """
    Per-key cache of source documents.

    Entries are replaced whole on every successful load. When a refresh fails,
    the previous value is served instead of an error; only a key that has never
    loaded successfully surfaces the failure. Concurrent refreshes of the same
    key share a single load.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        loader: SourceLoader,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.registry = registry
        self.loader = loader
        self.ttl_seconds = ttl_seconds
        self.metrics = metrics
        self.logger = get_logger("relay.source_cache")
        self._clock = clock
        self._entries: Dict[str, CachedDocument] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def _is_fresh(self, entry: Optional[CachedDocument]) -> bool:
        return entry is not None and (self._clock() - entry.fetched_at) < self.ttl_seconds

    def _record(self, key: str, result: str) -> None:
        if self.metrics is not None:
            self.metrics.record_cache_event(key, result)

    async def get(self, key: str) -> Any:
        """Return a private copy of the document for ``key``, refreshing if expired."""
        entry = self._entries.get(key)
        if self._is_fresh(entry):
            self._record(key, "hit")
            return copy.deepcopy(entry.value)

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            # Another task may have refreshed while we waited.
            entry = self._entries.get(key)
            if self._is_fresh(entry):
                self._record(key, "hit")
                return copy.deepcopy(entry.value)

            self._record(key, "miss")
            location = self.registry.resolve(key)
            try:
                if self.metrics is not None:
                    with self.metrics.time_source_fetch(key):
                        value = await self.loader.load(location)
                else:
                    value = await self.loader.load(location)
            except SourceLoadError as exc:
                if entry is not None:
                    self.logger.warning(
                        "Source refresh failed, serving cached copy",
                        source=key,
                        location=str(location),
                        error=str(exc),
                        age_seconds=round(self._clock() - entry.fetched_at, 1),
                    )
                    self._record(key, "stale")
                    return copy.deepcopy(entry.value)

                self.logger.error(
                    "Source unavailable and no cached copy",
                    source=key,
                    location=str(location),
                    error=str(exc),
                )
                raise UpstreamUnavailableError(
                    service=f"source '{key}'",
                    message=f"Unable to fetch configuration: {exc}",
                    details={"location": str(location), "status_code": exc.status_code},
                ) from exc

            self._entries[key] = CachedDocument(key=key, value=value, fetched_at=self._clock())
            self.logger.info("Source document cached", source=key, location=str(location))
            return copy.deepcopy(value)

    def peek(self, key: str) -> Optional[CachedDocument]:
        """Return the current entry for ``key`` without triggering I/O."""
        return self._entries.get(key)

    def sweep(self) -> int:
        """Drop entries older than twice the TTL. Returns the number removed."""
        cutoff = 2 * self.ttl_seconds
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now - entry.fetched_at > cutoff]
        for key in expired:
            del self._entries[key]
            lock = self._locks.get(key)
            if lock is not None and not lock.locked():
                del self._locks[key]
        if expired:
            self.logger.debug("Swept expired source documents", sources=expired)
        return len(expired)

    async def run_sweeper(self) -> None:
        """Sweep every TTL until cancelled."""
        while True:
            await asyncio.sleep(self.ttl_seconds)
            self.sweep()

    def start_sweeper(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self.run_sweeper())

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
