"""Minimum spacing between consecutive API calls."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Final

from .exceptions import ConfigurationError

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS: Final[float] = 0.1


class Pacer:
    """Blocks callers so that ``pace()`` returns at most once per interval.

    The first call returns immediately. Concurrent callers are serialized,
    so the spacing holds across worker threads too.
    """

    def __init__(
        self,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if interval_seconds <= 0:
            msg = f"Pacing interval must be positive, got {interval_seconds}"
            raise ConfigurationError(msg)
        self.interval_seconds: float = interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_release: float | None = None

    @classmethod
    def from_milliseconds(cls, delay_ms: float) -> Pacer:
        return cls(delay_ms / 1000.0)

    def pace(self) -> None:
        with self._lock:
            if self._last_release is not None:
                wait = self._last_release + self.interval_seconds - self._clock()
                if wait > 0:
                    self._sleep(wait)
            self._last_release = self._clock()


class NullPacer:
    """Pacer that never waits. Used by tests and when pacing is handled elsewhere."""

    calls: int

    def __init__(self) -> None:
        self.calls = 0

    def pace(self) -> None:
        self.calls += 1
