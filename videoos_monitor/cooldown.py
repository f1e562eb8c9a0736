# CooldownGovernor: decides whether a poll runs fresh fetches or serves the cache.

# Control writes (mute, volume, reboot) tend to arrive in bursts from an
# operator UI. A full device round trip after each of them would queue behind
# the single device session and stall the UI, so fresh reads are held off for
# a short cooldown after every write. Written control values are patched into
# the cached snapshot in place, so the cache stays truthful meanwhile.

import time
from typing import Callable

from videoos_monitor.config import CONTROL_COOLDOWN_SECONDS, POLL_INTERVAL_SECONDS


class CooldownGovernor:
    """
    Serve cached data when
        now - last_control_write < control_cooldown
     or now - last_full_poll     < poll_interval

    Timestamps come from a monotonic clock, so wall-clock jumps cannot
    extend or cut short a window.
    """

    def __init__(
        self,
        control_cooldown: float = CONTROL_COOLDOWN_SECONDS,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.control_cooldown = control_cooldown
        self.poll_interval = poll_interval
        self._clock = clock
        self._last_control_write: float | None = None
        self._last_full_poll: float | None = None

    def mark_control_write(self) -> None:
        self._last_control_write = self._clock()

    def mark_full_poll(self) -> None:
        self._last_full_poll = self._clock()

    def in_control_cooldown(self) -> bool:
        if self._last_control_write is None:
            return False
        return self._clock() - self._last_control_write < self.control_cooldown

    def within_poll_interval(self) -> bool:
        if self._last_full_poll is None:
            return False
        return self._clock() - self._last_full_poll < self.poll_interval

    def should_refresh(self) -> bool:
        return not (self.in_control_cooldown() or self.within_poll_interval())
