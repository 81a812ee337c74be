"""
Upstream latency stopwatch.
"""

import time
from typing import Optional


def _elapsed_ms(since: Optional[float], until: Optional[float]) -> Optional[int]:
    if since is None or until is None:
        return None
    return int((until - since) * 1000)


class Timer:
    """
    Stopwatch for one upstream call.

    `start()` when the request goes out, `mark_first_byte()` once headers
    arrive and `stop()` when the body is drained or the stream closes.
    Every method returns the timer so `Timer().start()` reads naturally.
    """

    def __init__(self):
        self._started: Optional[float] = None
        self._first_byte: Optional[float] = None
        self._stopped: Optional[float] = None

    def start(self) -> "Timer":
        self._started, self._first_byte, self._stopped = time.perf_counter(), None, None
        return self

    def mark_first_byte(self) -> "Timer":
        # first mark wins
        if self._first_byte is None:
            self._first_byte = time.perf_counter()
        return self

    def stop(self) -> "Timer":
        self._stopped = time.perf_counter()
        # a call that failed before any byte counts its whole duration
        self._first_byte = self._first_byte or self._stopped
        return self

    @property
    def first_byte_delay_ms(self) -> Optional[int]:
        return _elapsed_ms(self._started, self._first_byte)

    @property
    def total_time_ms(self) -> Optional[int]:
        return _elapsed_ms(self._started, self._stopped)
