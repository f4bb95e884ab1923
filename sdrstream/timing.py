"""
Execution time accounting for pipeline stages.

A TimeReport brackets a timed section with start()/stop() and keeps count,
min, max and mean durations plus the number of runs over a "high" threshold.
Results go to the log, never to stdout.
"""
from __future__ import annotations

import logging
import math
import time
from typing import Optional

log = logging.getLogger(__name__)

_NOT_STARTED = -1


class TimeReport:
    def __init__(self, subject_name: str, high_ns: Optional[int] = None) -> None:
        self.name = subject_name
        self.high_ns = high_ns
        self._start = _NOT_STARTED
        self._reset_next = False
        self._clear()

    def _clear(self) -> None:
        self.count = 0
        self.high_count = 0
        self.bad_count = 0
        self.maximum_ns = 0
        self.minimum_ns: Optional[int] = None
        self.sum_ns = 0

    @property
    def mean_ns(self) -> float:
        return self.sum_ns / self.count if self.count else math.nan

    def reset(self) -> None:
        """Clear the totals at the next start(), so a running section is not cut short."""
        self._reset_next = True

    def start(self) -> None:
        if self._reset_next:
            self._reset_next = False
            self._clear()
        self._start = time.perf_counter_ns()

    def stop(self) -> None:
        if self._start == _NOT_STARTED:
            self.bad_count += 1
            return
        duration = time.perf_counter_ns() - self._start
        if duration <= 0:
            self.bad_count += 1
            return
        self.count += 1
        self.sum_ns += duration
        if self.minimum_ns is None or duration < self.minimum_ns:
            self.minimum_ns = duration
        if duration > self.maximum_ns:
            self.maximum_ns = duration
        if self.high_ns is not None and duration > self.high_ns:
            self.high_count += 1

    def log_accumulated(self, reset: bool = False, level: int = logging.INFO) -> None:
        if self.count == 0:
            log.log(level, "TimeReport %s unused", self.name)
        else:
            log.log(
                level,
                "TimeReport %s average %.0f ns, max %d, min %d, count %d, high %d, bad %d",
                self.name,
                self.mean_ns,
                self.maximum_ns,
                self.minimum_ns,
                self.count,
                self.high_count,
                self.bad_count,
            )
        if reset:
            self.reset()
