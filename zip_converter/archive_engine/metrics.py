"""Process-wide counters and timings for conversion runs.

Keys in use:
    pipeline.job_duration                     seconds per ConversionPipeline.run
    pipeline.entries_{converted,copied,skipped}
    queue.jobs_enqueued, queue.jobs_{success,failed,cancelled}
"""

from __future__ import annotations

import time
from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from typing import Any


@dataclass(frozen=True)
class TimingSummary:
    count: int = 0
    total: float = 0.0
    longest: float = 0.0

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0


class _Metrics:
    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: Counter[str] = Counter()
        self._samples: dict[str, list[float]] = {}

    def inc(self, key: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[key] += int(amount)

    def counter(self, key: str) -> int:
        with self._lock:
            return self._counters[key]

    def observe(self, key: str, seconds: float) -> None:
        with self._lock:
            self._samples.setdefault(key, []).append(float(seconds))

    @contextmanager
    def timed(self, key: str) -> Iterator[None]:
        # recorded whether the block finishes or raises
        start = time.monotonic()
        try:
            yield
        finally:
            self.observe(key, time.monotonic() - start)

    def summary(self, key: str) -> TimingSummary:
        with self._lock:
            samples = list(self._samples.get(key, ()))
        if not samples:
            return TimingSummary()
        return TimingSummary(count=len(samples), total=sum(samples), longest=max(samples))

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "timings": {key: list(values) for key, values in self._samples.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._samples.clear()


metrics = _Metrics()
