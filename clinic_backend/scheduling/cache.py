"""Memoizing month cache with request coalescing.

Entries are keyed by (resolver, scope key, year, month). A request for a key
that is already being computed waits for that computation instead of
starting a second one. Writes to schedules or blocks invalidate a scope;
a computation that started before the invalidation is not stored.
"""

import logging
from concurrent.futures import Future
from threading import Lock
from typing import Any, Callable, NamedTuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')

GLOBAL_SCOPE_KEY = 'global'


class CacheKey(NamedTuple):
    resolver: str
    scope_key: str
    year: int
    month: int


def provider_scope_key(provider_id: int | None) -> str:
    return GLOBAL_SCOPE_KEY if provider_id is None else f'provider:{provider_id}'


class MonthCache:
    def __init__(self) -> None:
        self._lock = Lock()
        self._entries: dict[CacheKey, Any] = {}
        self._inflight: dict[CacheKey, Future] = {}
        self._generations: dict[str, int] = {}
        self._global_generation = 0

    def _generation(self, scope_key: str) -> tuple[int, int]:
        return self._global_generation, self._generations.get(scope_key, 0)

    def get_or_compute(self, key: CacheKey, compute: Callable[[], T]) -> T:
        with self._lock:
            if key in self._entries:
                return self._entries[key]
            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future
                generation = self._generation(key.scope_key)

        if not owner:
            try:
                return future.result()
            except Exception:
                logger.debug('Coalesced computation for %s failed; recomputing', key, exc_info=True)
                return compute()

        try:
            value = compute()
        except BaseException as exc:
            with self._lock:
                self._inflight.pop(key, None)
            future.set_exception(exc)
            raise

        with self._lock:
            self._inflight.pop(key, None)
            if self._generation(key.scope_key) == generation:
                self._entries[key] = value
        future.set_result(value)
        return value

    def invalidate(self, scope_key: str | None = None) -> None:
        """Drop one scope, or everything when ``scope_key`` is global or None.

        Global entries feed every provider's calendar, so a global write
        clears all scopes.
        """
        with self._lock:
            if scope_key is None or scope_key == GLOBAL_SCOPE_KEY:
                self._global_generation += 1
                self._entries.clear()
                return

            self._generations[scope_key] = self._generations.get(scope_key, 0) + 1
            for key in [key for key in self._entries if key.scope_key == scope_key]:
                del self._entries[key]

    def __contains__(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


month_cache = MonthCache()
