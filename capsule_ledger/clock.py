"""Trusted time sources for the engine."""

from typing import Protocol
import time


class Clock(Protocol):
    def now(self) -> int:
        ...


class SystemClock:
    def now(self) -> int:
        return int(time.time())


class FixedClock:
    """Manually driven clock for tests and replaying operator commands."""

    def __init__(self, start: int) -> None:
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def set(self, value: int) -> None:
        self._now = int(value)

    def advance(self, seconds: int) -> int:
        self._now += int(seconds)
        return self._now
