from __future__ import annotations

from collections.abc import Callable, Hashable
from time import monotonic


class EventThrottle:
    """Allows at most one emission per key inside a sliding window."""

    def __init__(
        self,
        window_seconds: float,
        *,
        clock: Callable[[], float] = monotonic,
        max_keys: int = 10_000,
    ) -> None:
        self._window_seconds = max(0.0, float(window_seconds))
        self._clock = clock
        self._max_keys = max(1, int(max_keys))
        self._last_emitted: dict[Hashable, float] = {}

    def allow(self, key: Hashable) -> bool:
        now_mono = self._clock()
        last = self._last_emitted.get(key)
        if last is not None and (now_mono - last) < self._window_seconds:
            return False
        self._last_emitted[key] = now_mono
        if len(self._last_emitted) > self._max_keys:
            self._prune(now_mono)
        return True

    def _prune(self, now_mono: float) -> None:
        expired = [
            key
            for key, emitted_at in self._last_emitted.items()
            if (now_mono - emitted_at) >= self._window_seconds
        ]
        for key in expired:
            del self._last_emitted[key]

    def reset(self) -> None:
        self._last_emitted.clear()
