"""Diagnostic traces (e.g. loop frequency / phase / error) for a scope display."""
from __future__ import annotations

import threading
from typing import List, Sequence

import numpy as np

from .errors import ConfigurationError
from .samples import FLOAT


class ScopeData:
    """Collects up to ``num_points`` rows of ``num_items`` values.

    When full, the next sample starts a fresh trace.
    """

    def __init__(self, num_items: int, num_points: int, sample_frequency: float) -> None:
        if num_items < 1 or num_points < 1:
            raise ConfigurationError("ScopeData needs num_items >= 1 and num_points >= 1")
        self.num_items = num_items
        self.num_points = num_points
        self.sample_frequency = sample_frequency
        self._data: List[Sequence[float]] = []
        self._lock = threading.Lock()

    def sample(self, values: Sequence[float]) -> None:
        if len(values) != self.num_items:
            raise ValueError(f"ScopeData expects {self.num_items} values, got {len(values)}")
        with self._lock:
            if len(self._data) == self.num_points:
                self._data.clear()
            self._data.append(tuple(values))

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def get_and_clear(self) -> np.ndarray:
        """Rows collected so far, shape (rows, num_items)."""
        with self._lock:
            rows, self._data = self._data, []
        return np.array(rows, dtype=FLOAT).reshape(len(rows), self.num_items)
