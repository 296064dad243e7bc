"""Per-host request spacing for polite fetching."""

import asyncio
import random
import threading
from collections.abc import Callable
from time import monotonic

from chapter_watch.config import ThrottleConfig
from chapter_watch.utils.url_utils import normalize_host


class HostThrottle:
    """Space out requests to the same host with a jittered minimum delay.

    Every call to :meth:`reserve` claims the next dispatch slot for a host and
    returns how long the caller has to wait before sending. Claiming is atomic,
    so two concurrent fetches to one host never get overlapping windows, while
    different hosts never wait on each other. Requests are not serialized for
    their full duration; only their dispatch times are spaced.
    """

    def __init__(
        self,
        config: ThrottleConfig | None = None,
        clock: Callable[[], float] = monotonic,
        rng: random.Random | None = None,
    ):
        self.config = config or ThrottleConfig()
        self._clock = clock
        self._rng = rng or random.Random()
        self._slots: dict[str, float] = {}
        self._lock = threading.Lock()

    def reserve(self, host: str) -> float:
        """Claim the next slot for ``host`` and return the wait in seconds."""
        key = normalize_host(host)
        with self._lock:
            now = self._clock()
            slot = self._slots.get(key, now)
            wait = max(0.0, slot - now)
            jitter = self._rng.uniform(
                self.config.jitter_min_seconds, self.config.jitter_max_seconds
            )
            self._slots[key] = max(now, slot) + self.config.min_delay_seconds + jitter
        return wait

    async def acquire(self, host: str) -> float:
        """Reserve a slot and sleep until it opens. Returns the time waited."""
        wait = self.reserve(host)
        if wait > 0:
            await asyncio.sleep(wait)
        return wait

    def next_slot(self, host: str) -> float | None:
        """The instant before which ``host`` must not be contacted, if known."""
        with self._lock:
            return self._slots.get(normalize_host(host))
