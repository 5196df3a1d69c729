"""Debounced, supersedable slot recomputation for booking surfaces.

A surface calls ``request`` every time the user moves to another day. Only
the last request issued within the debounce delay for a view runs, and a
result is delivered only if no newer request for that view arrived while
it was computing.

This is a client-side helper for surfaces embedding the engine in-process;
the HTTP routes compute slots synchronously per request and do not use it.
"""

import logging
from threading import Lock, Timer
from typing import Any, Callable, Hashable

from clinic_backend.core import config

logger = logging.getLogger(__name__)


class SlotRecomputeScheduler:
    def __init__(
        self,
        compute: Callable[..., Any],
        on_result: Callable[[Hashable, Any], None],
        delay_seconds: float | None = None,
    ) -> None:
        self._compute = compute
        self._on_result = on_result
        self._delay = config.RECOMPUTE_DEBOUNCE_SECONDS if delay_seconds is None else delay_seconds
        self._lock = Lock()
        self._timers: dict[Hashable, Timer] = {}
        self._generations: dict[Hashable, int] = {}

    def request(self, view_key: Hashable, *args: Any, **kwargs: Any) -> int:
        """Schedule a computation for ``view_key``; returns its generation number."""
        with self._lock:
            pending = self._timers.pop(view_key, None)
            if pending is not None:
                pending.cancel()
            generation = self._generations.get(view_key, 0) + 1
            self._generations[view_key] = generation
            timer = Timer(self._delay, self._run, args=(view_key, generation, args, kwargs))
            timer.daemon = True
            self._timers[view_key] = timer
        timer.start()
        return generation

    def is_current(self, view_key: Hashable, generation: int) -> bool:
        with self._lock:
            return self._generations.get(view_key) == generation

    def cancel(self, view_key: Hashable) -> None:
        with self._lock:
            pending = self._timers.pop(view_key, None)
            self._generations[view_key] = self._generations.get(view_key, 0) + 1
        if pending is not None:
            pending.cancel()

    def _run(self, view_key: Hashable, generation: int, args: tuple, kwargs: dict) -> None:
        with self._lock:
            if self._timers.get(view_key) is not None and self._generations.get(view_key) == generation:
                del self._timers[view_key]

        if not self.is_current(view_key, generation):
            return

        try:
            result = self._compute(*args, **kwargs)
        except Exception:
            # A newer request recomputes; a failed stale one is simply dropped.
            logger.warning('Slot recomputation for %s failed', view_key, exc_info=True)
            return

        if self.is_current(view_key, generation):
            self._on_result(view_key, result)
        else:
            logger.debug('Discarding superseded slot computation for %s', view_key)
