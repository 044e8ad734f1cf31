"""Workspace configuration cache.

The reference configuration (dartboards, assignees, statuses, tags, ...)
rarely changes but is read before every create and update, so it is cached
with a short TTL.
"""

import datetime
import logging
import threading
import time
from collections.abc import Callable

from ..exceptions import DartAPIError
from ..models import DartConfig

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


class ConfigCache:
    """Single-entry TTL cache holding a ``DartConfig`` snapshot.

    Values are copied on the way in and out so callers cannot mutate the
    cached snapshot.
    """

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._config: DartConfig | None = None
        self._stored_at: float | None = None
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def get(self) -> DartConfig | None:
        with self._lock:
            if self._config is None or self._expired():
                if self._config is not None:
                    logger.debug("Config cache entry expired")
                    self._config = None
                    self._stored_at = None
                self._misses += 1
                return None
            self._hits += 1
            return self._config.model_copy(deep=True)

    def set(self, config: DartConfig):
        if config is None:
            raise ValueError("Cannot cache a missing config")
        with self._lock:
            self._config = config.model_copy(deep=True)
            self._stored_at = self._clock()

    def invalidate(self):
        with self._lock:
            self._config = None
            self._stored_at = None

    def is_expired(self) -> bool:
        with self._lock:
            return self._config is None or self._expired()

    def stats(self) -> dict[str, int | bool]:
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "cached": self._config is not None and not self._expired(),
                "ttl_seconds": self.ttl_seconds,
            }

    def _expired(self) -> bool:
        return self._stored_at is None or self._clock() - self._stored_at >= self.ttl_seconds


class ReferenceConfigProvider:
    """Fetch the reference configuration through the cache.

    ``client_factory`` returns a new ``DartClient`` usable as an async context
    manager.
    """

    def __init__(self, client_factory: Callable, cache: ConfigCache):
        self.client_factory = client_factory
        self.cache = cache

    async def fetch(self, cache_bust: bool = False) -> DartConfig:
        """Return the cached config, or fetch and cache a fresh one.

        Raises:
            DartAPIError: The API call failed; 401 and 403 carry an explanation
        """
        if not cache_bust:
            cached = self.cache.get()
            if cached is not None:
                return cached

        try:
            async with self.client_factory() as client:
                config = await client.get_config()
        except DartAPIError as e:
            if e.status_code == 401:
                raise DartAPIError(
                    "Authentication failed: Invalid DART_TOKEN. "
                    "Get a valid token from: https://app.dartai.com/?settings=account",
                    401,
                    e.response,
                ) from e
            if e.status_code == 403:
                raise DartAPIError(
                    "Access forbidden: Your DART_TOKEN does not have permission to access workspace configuration.",
                    403,
                    e.response,
                ) from e
            raise

        config.cached_at = datetime.datetime.now(datetime.timezone.utc).isoformat()
        config.cache_ttl_seconds = self.cache.ttl_seconds
        self.cache.set(config)
        logger.info(
            "Fetched workspace config (%d dartboards, %d assignees)",
            len(config.dartboards),
            len(config.assignees),
        )
        return config
