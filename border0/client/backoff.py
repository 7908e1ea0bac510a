# border0/client/backoff.py
"""
Backoff helpers

- exponential_backoff: deterministic wait used between retries of API calls
- ExponentialBackOff: randomized schedule used for tunnel reconnects and
  device authorization polling
- sleep: cancellable sleep on a threading.Event
"""

import random
import threading
import time
from typing import Callable, Optional

# Signature of a pluggable backoff: (wait_min, wait_max, attempt) -> seconds
Backoff = Callable[[float, float, int], float]


def exponential_backoff(wait_min: float, wait_max: float, attempt: int) -> float:
    """
    Wait min * 2^attempt seconds, capped at wait_max.

    The first attempt (0) waits wait_min, the second twice that, and so on.
    """
    try:
        wait = (2.0 ** attempt) * wait_min
    except OverflowError:
        return wait_max
    if wait != wait or wait > wait_max:
        return wait_max
    return wait


def sleep(delay: float, cancel: Optional[threading.Event] = None) -> bool:
    """Sleep for delay seconds. Returns True if cancel was set before the delay elapsed."""
    if cancel is None:
        time.sleep(delay)
        return False
    return cancel.wait(delay)


class ExponentialBackOff:
    """
    Randomized exponential backoff schedule

    Each call to next_backoff() returns the next interval, growing by
    `multiplier` up to `max_interval`, randomized by +/- randomization_factor.
    Returns None once max_elapsed_time has passed since the last reset
    (never, when max_elapsed_time is None).
    """

    def __init__(
        self,
        initial_interval: float = 0.5,
        multiplier: float = 1.5,
        max_interval: float = 60.0,
        max_elapsed_time: Optional[float] = None,
        randomization_factor: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.initial_interval = initial_interval
        self.multiplier = multiplier
        self.max_interval = max_interval
        self.max_elapsed_time = max_elapsed_time
        self.randomization_factor = randomization_factor
        self._clock = clock
        self._lock = threading.Lock()
        self.reset()

    def reset(self):
        """Restart the schedule from the initial interval"""
        with self._lock:
            self._current_interval = self.initial_interval
            self._start_time = self._clock()

    @property
    def elapsed(self) -> float:
        return self._clock() - self._start_time

    def next_backoff(self) -> Optional[float]:
        with self._lock:
            if self.max_elapsed_time is not None and self.elapsed > self.max_elapsed_time:
                return None

            interval = self._current_interval
            if self._current_interval >= self.max_interval / self.multiplier:
                self._current_interval = self.max_interval
            else:
                self._current_interval *= self.multiplier

        delta = self.randomization_factor * interval
        return random.uniform(interval - delta, interval + delta)
