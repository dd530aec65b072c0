from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Callable

LOGGER = logging.getLogger("polymarket_merger")

HOUR_SECONDS = 60 * 60


@dataclass
class QuotaState:
    calls_this_hour: int
    window_start: float


class QuotaTracker:
    """Counts relayer submissions in a rolling one-hour window."""

    def __init__(
        self,
        limit: int,
        window_seconds: float = HOUR_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limit = int(limit)
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self.state = QuotaState(calls_this_hour=0, window_start=clock())

    @property
    def calls_this_hour(self) -> int:
        return self.state.calls_this_hour

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.state.calls_this_hour)

    def seconds_until_reset(self) -> float:
        elapsed = self._clock() - self.state.window_start
        return max(0.0, self.window_seconds - elapsed)

    def check_and_update(self) -> bool:
        now = self._clock()
        if now - self.state.window_start >= self.window_seconds:
            self.state.calls_this_hour = 0
            self.state.window_start = now
            LOGGER.info("quota_reset limit=%s", self.limit)

        if self.state.calls_this_hour >= self.limit:
            LOGGER.warning(
                "quota_exhausted used=%s limit=%s resets_in_min=%.1f",
                self.state.calls_this_hour,
                self.limit,
                self.seconds_until_reset() / 60.0,
            )
            return False
        return True

    def increment(self) -> None:
        self.state.calls_this_hour += 1
        LOGGER.info("quota_used used=%s limit=%s", self.state.calls_this_hour, self.limit)

    def mark_exhausted(self) -> None:
        # The relayer's own count wins over the local estimate.
        self.state.calls_this_hour = self.limit
