"""Unit tests for the workspace config cache and provider."""

import pytest

from dart_query.cache import ConfigCache
from dart_query.cache import ReferenceConfigProvider
from dart_query.exceptions import DartAPIError

from ..shared.fakes import FakeDartClient
from ..shared.fakes import make_config


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestConfigCache:
    def setup_method(self):
        self.clock = FakeClock()
        self.cache = ConfigCache(ttl_seconds=300, clock=self.clock)

    def test_empty_cache_misses(self):
        assert self.cache.get() is None
        assert self.cache.is_expired()
        assert self.cache.stats()["misses"] == 1

    def test_hit_within_ttl(self):
        self.cache.set(make_config())
        self.clock.now += 299

        assert self.cache.get().dartboards[0].name == "Engineering"
        assert self.cache.stats() == {"hits": 1, "misses": 0, "cached": True, "ttl_seconds": 300}

    def test_expires_after_ttl(self):
        self.cache.set(make_config())
        self.clock.now += 300

        assert self.cache.is_expired()
        assert self.cache.get() is None

    def test_snapshots_are_copies(self):
        config = make_config()
        self.cache.set(config)
        config.dartboards.clear()
        self.cache.get().statuses.clear()

        cached = self.cache.get()
        assert len(cached.dartboards) == 2
        assert len(cached.statuses) == 3

    def test_invalidate(self):
        self.cache.set(make_config())
        self.cache.invalidate()
        assert self.cache.get() is None

    def test_rejects_none(self):
        with pytest.raises(ValueError):
            self.cache.set(None)


class TestReferenceConfigProvider:
    def setup_method(self):
        self.client = FakeDartClient()
        self.provider = ReferenceConfigProvider(self.client.factory, ConfigCache(ttl_seconds=300))

    @pytest.mark.asyncio
    async def test_fetch_caches_and_stamps(self):
        first = await self.provider.fetch()
        second = await self.provider.fetch()

        assert len(self.client.calls_to("get_config")) == 1
        assert first.cached_at is not None
        assert first.cache_ttl_seconds == 300
        assert second.cached_at == first.cached_at

    @pytest.mark.asyncio
    async def test_cache_bust_refetches(self):
        await self.provider.fetch()
        await self.provider.fetch(cache_bust=True)
        assert len(self.client.calls_to("get_config")) == 2

    @pytest.mark.asyncio
    async def test_unauthorized_is_explained(self):
        self.client.config_error = DartAPIError("Unauthorized: Invalid or expired token. x", 401)

        with pytest.raises(DartAPIError) as exc_info:
            await self.provider.fetch()

        assert exc_info.value.status_code == 401
        assert exc_info.value.message.startswith("Authentication failed: Invalid DART_TOKEN.")

    @pytest.mark.asyncio
    async def test_forbidden_is_explained(self):
        self.client.config_error = DartAPIError("Forbidden: x", 403)

        with pytest.raises(DartAPIError) as exc_info:
            await self.provider.fetch()
        assert exc_info.value.message.startswith("Access forbidden:")

    @pytest.mark.asyncio
    async def test_other_errors_propagate_unchanged(self):
        error = DartAPIError("Network error: down", 0)
        self.client.config_error = error

        with pytest.raises(DartAPIError) as exc_info:
            await self.provider.fetch()
        assert exc_info.value is error
