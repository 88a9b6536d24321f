"""virtual_patient.session.timer

Wall-clock stopwatch for one scenario attempt.

Elapsed time is derived from a monotonic clock instead of a ticking thread, so the
value is correct whenever it is read (including after a Streamlit rerun).
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional


def format_elapsed(total_seconds: int) -> str:
    """Render seconds as MM:SS."""
    minutes, seconds = divmod(max(0, int(total_seconds)), 60)
    return f"{minutes:02d}:{seconds:02d}"


@dataclass(frozen=True)
class TimerState:
    elapsed_seconds: int
    running: bool
    paused: bool


class SessionTimer:
    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._accumulated = 0.0
        self._started_at: Optional[float] = None  # set while running and not paused
        self.running = False
        self.paused = False

    @property
    def elapsed_seconds(self) -> int:
        total = self._accumulated
        if self._started_at is not None:
            total += self._clock() - self._started_at
        # 1-second tick granularity
        return int(total)

    def state(self) -> TimerState:
        return TimerState(elapsed_seconds=self.elapsed_seconds, running=self.running, paused=self.paused)

    def start(self) -> None:
        """Start (or un-pause) the stopwatch. Starting a running timer is a no-op."""
        if self.running and not self.paused:
            return
        self.running = True
        self.paused = False
        self._started_at = self._clock()

    def pause(self) -> None:
        if not self.running or self.paused:
            return
        self._accumulated += self._clock() - self._started_at
        self._started_at = None
        self.paused = True

    def resume(self) -> None:
        if not self.running or not self.paused:
            return
        self.paused = False
        self._started_at = self._clock()

    def reset(self) -> None:
        """Clear to zero and stop."""
        self._accumulated = 0.0
        self._started_at = None
        self.running = False
        self.paused = False
