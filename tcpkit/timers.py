"""Timer queue and a select() wrapper that fires timers while waiting."""

from __future__ import annotations

import bisect
import select
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence


@dataclass(order=True)
class _Timer:
    expires: float
    id: int
    func: Callable[[Any], Any] = field(compare=False)
    arg: Any = field(compare=False)


class TimerQueue:
    """Ordered one-shot timers keyed by integer id."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self._active: list[_Timer] = []
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._active)

    def timeout(self, func: Callable[[Any], Any], arg: Any, ms: int) -> int:
        """Arrange for func(arg) to run after ms milliseconds; return the timer id."""
        timer = _Timer(self.clock() + ms / 1000.0, self._next_id, func, arg)
        self._next_id += 1
        bisect.insort(self._active, timer)
        return timer.id

    def untimeout(self, timer_id: int) -> None:
        """Cancel a pending timer. Raises KeyError if no such timer exists."""
        for position, timer in enumerate(self._active):
            if timer.id == timer_id:
                del self._active[position]
                return
        raise KeyError(f"untimeout: no such timer ({timer_id})")

    def run_expired(self) -> int:
        """Run every timer whose time has come, in order; return how many ran."""
        fired = 0
        now = self.clock()
        while self._active and self._active[0].expires <= now:
            timer = self._active.pop(0)
            timer.func(timer.arg)
            fired += 1
        return fired

    def _next_wait(self) -> float | None:
        if not self._active:
            return None
        return max(0.0, self._active[0].expires - self.clock())

    def tselect(
        self,
        rlist: Sequence[Any] = (),
        wlist: Sequence[Any] = (),
        xlist: Sequence[Any] = (),
    ) -> tuple[list, list, list]:
        """Wait for descriptors to become ready, running timers as they expire.

        Returns the ready lists as select.select does. Returns three empty
        lists when no descriptors are given and no timers remain.
        """
        while True:
            self.run_expired()
            wait = self._next_wait()
            if not (rlist or wlist or xlist):
                if wait is None:
                    return [], [], []
                time.sleep(wait)
                continue
            ready = select.select(rlist, wlist, xlist, wait)
            if any(ready):
                return ready