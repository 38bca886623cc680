"""Cancellable deferred tasks and reconnect backoff.

Every timer the engine arms goes through ``Scheduler.call_later`` so that
tearing a connection down is a matter of cancelling the handles it holds.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional


class Timer:
    """Handle for a callback scheduled on the event loop."""

    def __init__(self, handle: asyncio.TimerHandle):
        self._handle = handle
        self._fired = False

    def _mark_fired(self) -> None:
        self._fired = True

    @property
    def active(self) -> bool:
        return not self._fired and not self._handle.cancelled()

    def cancel(self) -> None:
        self._handle.cancel()


class Scheduler:
    """Thin wrapper around the running loop's ``call_later``.

    The loop is looked up lazily so a scheduler can be created outside of
    a running loop and used once one is running.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Timer:
        timer: Optional[Timer] = None

        def _fire() -> None:
            timer._mark_fired()
            callback(*args)

        handle = self.loop.call_later(max(0.0, delay), _fire)
        timer = Timer(handle)
        return timer

    def spawn(self, coro) -> asyncio.Task:
        return self.loop.create_task(coro)


def cancel_timer(timer: Optional[Timer]) -> None:
    if timer is not None:
        timer.cancel()


class Backoff:
    """Multiplicative reconnect delay, capped, reset on success.

    ``next_delay()`` returns the delay to wait now and grows the stored
    delay for the following failure: 2.0, 3.0, 4.5, 6.75, ... up to the cap.
    """

    def __init__(self, base: float = 2.0, maximum: float = 60.0, multiplier: float = 1.5):
        if base <= 0 or maximum < base:
            raise ValueError("backoff requires 0 < base <= maximum")
        if multiplier < 1.0:
            raise ValueError("backoff multiplier must be >= 1.0")
        self.base = base
        self.maximum = maximum
        self.multiplier = multiplier
        self.current = base

    def next_delay(self) -> float:
        delay = self.current
        self.current = min(self.current * self.multiplier, self.maximum)
        return delay

    def reset(self) -> None:
        self.current = self.base
