from __future__ import annotations

import datetime as dt
import time
from typing import Protocol


class Clock(Protocol):
    def monotonic(self) -> float: ...

    def wall_time(self) -> dt.datetime: ...


class MonotonicClock:
    """Process clock used during live play."""

    def monotonic(self) -> float:
        return time.monotonic()

    def wall_time(self) -> dt.datetime:
        return dt.datetime.now(dt.timezone.utc)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 0.0, *, wall_start: dt.datetime | None = None) -> None:
        self._now = float(start)
        self._wall_start = wall_start or dt.datetime(2000, 1, 1, tzinfo=dt.timezone.utc)
        self._origin = float(start)

    def monotonic(self) -> float:
        return self._now

    def wall_time(self) -> dt.datetime:
        return self._wall_start + dt.timedelta(seconds=self._now - self._origin)

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError(f"cannot move clock backwards: {seconds}")
        self._now += float(seconds)

    def set(self, now: float) -> None:
        if now < self._now:
            raise ValueError(f"cannot move clock backwards: {now} < {self._now}")
        self._now = float(now)


__all__ = [
    "Clock",
    "ManualClock",
    "MonotonicClock",
]
