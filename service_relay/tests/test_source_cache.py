"""
Unit tests for the source document cache.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.errors import UpstreamUnavailableError
from shared.metrics import MetricsCollector
from service_relay.app.adapters.source_loader import SourceLoader, SourceLoadError
from service_relay.app.caching.source_cache import SourceCache
from service_relay.app.domain.sources import SourceRegistry


SOURCE_URLS = {
    "jin18": "https://config.example.com/jin18.json",
    "jingjian": "https://config.example.com/jingjian.json",
    "full": "https://config.example.com/full.json",
}


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestSourceCache:
    """Test cases for SourceCache."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def loader(self):
        """Loader mock returning a fresh document per call."""
        loader = MagicMock(spec=SourceLoader)
        loader.load = AsyncMock(side_effect=lambda location: {"sites": [{"api": str(location)}]})
        return loader

    @pytest.fixture
    def registry(self):
        return SourceRegistry.remote(SOURCE_URLS)

    @pytest.fixture
    def cache(self, registry, loader, clock):
        return SourceCache(registry, loader, ttl_seconds=600, clock=clock)

    @pytest.mark.asyncio
    async def test_first_get_loads_document(self, cache, loader, registry):
        result = await cache.get("jin18")

        assert result == {"sites": [{"api": SOURCE_URLS["jin18"]}]}
        loader.load.assert_awaited_once_with(registry.resolve("jin18"))

    @pytest.mark.asyncio
    async def test_fresh_hit_performs_no_io(self, cache, loader, clock):
        first = await cache.get("jin18")
        clock.advance(599)
        second = await cache.get("jin18")

        assert second == first
        assert loader.load.await_count == 1

    @pytest.mark.asyncio
    async def test_expired_entry_is_refetched(self, cache, loader, clock):
        await cache.get("jin18")
        clock.advance(600)
        loader.load.side_effect = None
        loader.load.return_value = {"version": 2}

        result = await cache.get("jin18")

        assert result == {"version": 2}
        assert loader.load.await_count == 2
        assert cache.peek("jin18").fetched_at == clock.now

    @pytest.mark.asyncio
    async def test_stale_value_served_when_refresh_fails(self, cache, loader, clock):
        original = await cache.get("full")
        clock.advance(601)
        loader.load.side_effect = SourceLoadError("https://config.example.com/full.json", "boom", status_code=503)

        result = await cache.get("full")

        assert result == original
        assert cache.peek("full").value == original

    @pytest.mark.asyncio
    async def test_failure_without_cached_copy_propagates(self, cache, loader):
        loader.load.side_effect = SourceLoadError("https://config.example.com/full.json", "timeout")

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await cache.get("full")

        assert exc_info.value.status_code == 500
        assert "timeout" in exc_info.value.message
        assert cache.peek("full") is None

    @pytest.mark.asyncio
    async def test_callers_receive_private_copies(self, cache):
        first = await cache.get("jin18")
        first["sites"].append("mutated")

        second = await cache.get("jin18")

        assert second == {"sites": [{"api": SOURCE_URLS["jin18"]}]}
        assert cache.peek("jin18").value == second

    @pytest.mark.asyncio
    async def test_unknown_key_falls_back_to_full_location(self, cache, loader, registry):
        await cache.get("unknown")

        loader.load.assert_awaited_once_with(registry.resolve("full"))
        assert cache.peek("unknown") is not None

    @pytest.mark.asyncio
    async def test_keys_are_cached_independently(self, cache, loader):
        await cache.get("jin18")
        await cache.get("jingjian")
        await cache.get("jin18")

        assert loader.load.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_refresh_shares_one_load(self, registry, clock):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_load(location):
            started.set()
            await release.wait()
            return {"loaded": str(location)}

        loader = MagicMock(spec=SourceLoader)
        loader.load = AsyncMock(side_effect=slow_load)
        cache = SourceCache(registry, loader, ttl_seconds=600, clock=clock)

        first = asyncio.create_task(cache.get("full"))
        await started.wait()
        second = asyncio.create_task(cache.get("full"))
        await asyncio.sleep(0)
        release.set()

        results = await asyncio.gather(first, second)

        assert results[0] == results[1]
        assert loader.load.await_count == 1

    @pytest.mark.asyncio
    async def test_sweep_removes_entries_past_twice_ttl(self, cache, clock):
        await cache.get("jin18")
        clock.advance(700)
        await cache.get("jingjian")
        clock.advance(501)

        removed = cache.sweep()

        assert removed == 1
        assert cache.peek("jin18") is None
        assert cache.peek("jingjian") is not None

    @pytest.mark.asyncio
    async def test_sweep_releases_idle_locks(self, cache, clock):
        await cache.get("jin18")
        await cache.get("jingjian")
        clock.advance(1201)

        assert cache.sweep() == 2
        assert cache._locks == {}

    @pytest.mark.asyncio
    async def test_sweep_keeps_held_lock(self, cache, clock):
        await cache.get("jin18")
        clock.advance(1201)
        lock = cache._locks["jin18"]

        async with lock:
            cache.sweep()
            assert cache._locks["jin18"] is lock

    @pytest.mark.asyncio
    async def test_stale_value_served_when_local_file_becomes_undecodable(self, tmp_path, clock):
        (tmp_path / "full.json").write_text('{"a": 1}', encoding="utf-8")
        registry = SourceRegistry.local(tmp_path, SOURCE_URLS)
        cache = SourceCache(registry, SourceLoader(), ttl_seconds=600, clock=clock)

        assert await cache.get("full") == {"a": 1}

        (tmp_path / "full.json").write_bytes(b'{"a": "\xff\xfe"}')
        clock.advance(601)

        assert await cache.get("full") == {"a": 1}

    @pytest.mark.asyncio
    async def test_sweeper_lifecycle(self, cache):
        cache.start_sweeper()
        assert cache._sweeper is not None and not cache._sweeper.done()

        await cache.stop_sweeper()
        assert cache._sweeper is None

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, registry, loader, clock):
        metrics = MetricsCollector("relay")
        cache = SourceCache(registry, loader, ttl_seconds=600, clock=clock, metrics=metrics)

        await cache.get("jin18")
        await cache.get("jin18")
        clock.advance(601)
        loader.load.side_effect = SourceLoadError("x", "down")
        await cache.get("jin18")

        sample = metrics.registry.get_sample_value
        assert sample("source_cache_events_total", {"source": "jin18", "result": "miss"}) == 2
        assert sample("source_cache_events_total", {"source": "jin18", "result": "hit"}) == 1
        assert sample("source_cache_events_total", {"source": "jin18", "result": "stale"}) == 1
