"""
Derived cache

In-process, TTL-bounded. Invalidation is best-effort and not tied to the
database commit: a crash between the two leaves a stale entry until it
expires.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Tuple

from database import settings

logger = logging.getLogger(__name__)

MAPPER_CONSENTS = "mapper-consents"
SUBMISSIONS_MAPPER_CONSENT_BEATMAPSETS = "submissions:mapper-consent-beatmapsets"
SUBMISSIONS_MAPPER_CONSENTS = "submissions:mapper-consents"


def reviews_cache_key(game_mode: int) -> str:
    return f"submissions:{int(game_mode)}:reviews"


class CacheStore:
    def __init__(self, ttl_seconds: float):
        self.ttl_seconds = ttl_seconds
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, Any]] = {}
        # bumped by delete() and clear(); a value computed across a bump is not stored
        self._epoch = 0
        self._generations: Dict[str, int] = {}

    def get_or_set(self, key: str, factory: Callable[[], Any]) -> Any:
        """Return the cached value for key, computing and storing it on a miss"""
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[0] > now:
                return entry[1]
            generation = self._generation(key)

        value = factory()

        with self._lock:
            if self._generation(key) == generation:
                self._entries[key] = (now + self.ttl_seconds, value)
            else:
                logger.debug(f"Cache entry {key} invalidated while computing; not stored")
        return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._generations[key] = self._generations.get(key, 0) + 1

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generations.clear()
            self._epoch += 1

    def _generation(self, key: str) -> Tuple[int, int]:
        return self._epoch, self._generations.get(key, 0)

    def __contains__(self, key: str) -> bool:
        """Whether key holds an unexpired value; for inspection only"""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and entry[0] > time.monotonic()


cache = CacheStore(settings.cache_ttl_seconds)


def delete_cache(key: str) -> None:
    """Drop one named entry; never raises"""
    try:
        cache.delete(key)
        logger.debug(f"Invalidated cache entry {key}")
    except Exception as e:
        logger.warning(f"Failed to invalidate cache entry {key}: {e}")
