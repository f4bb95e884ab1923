"""
DC removal by cascaded moving averages.

Two length-D moving averages in series, subtracted from the input delayed by
D - 1 samples (the oldest sample still in the first average's window).
"""
from __future__ import annotations

import numpy as np

from .buffered import Filter
from .errors import ConfigurationError
from .samples import FLOAT, Samples


class MovingAverage:
    """Length-D moving average over a circular buffer, O(1) per sample."""

    def __init__(self, D: int, dtype=FLOAT) -> None:
        if D < 1:
            raise ConfigurationError(f"MovingAverage length must be >= 1 ({D})")
        self.D = D
        self.window = np.zeros(D, dtype=dtype)
        self.w = 0
        self.winsum = self.window.dtype.type(0)

    def proc(self, x):
        x = self.window.dtype.type(x)
        x_d = self.window[self.w]
        self.window[self.w] = x
        self.w = (self.w + 1) % self.D
        self.winsum = self.winsum - x_d + x
        return self.winsum / self.window.dtype.type(self.D)

    @property
    def x_dplus1(self):
        """Oldest sample in the window."""
        return self.window[self.w]

    def block(self, x: np.ndarray):
        """Vector form of ``proc`` over ``x``.

        Returns ``(averages, oldest)`` where ``oldest[k]`` is ``x_dplus1``
        just after sample ``k``.
        """
        x = np.asarray(x, dtype=self.window.dtype)
        n = len(x)
        if n == 0:
            return x.copy(), x.copy()
        ext = np.concatenate((np.roll(self.window, -self.w), x))
        sums = self.winsum + np.cumsum(x - ext[:n], dtype=self.window.dtype)
        self.winsum = sums[-1]
        self.window = ext[n:].copy()
        self.w = 0
        return sums / self.window.dtype.type(self.D), ext[1:n + 1]


class DCRemove(Filter):
    def __init__(self, D: int, source=None, sample_type=None, executor=None) -> None:
        super().__init__("DCRemove", source, sample_type, executor)
        self.D = D
        self._ma1 = MovingAverage(D, self.input_type.dtype)
        self._ma2 = MovingAverage(D, self.input_type.dtype)

    def transform(self, x: Samples, out: Samples) -> None:
        a1, delayed = self._ma1.block(x.to_numpy())
        a2, _ = self._ma2.block(a1)
        out.assign(*type(out)(delayed - a2).components())
