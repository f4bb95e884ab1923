"""
Block filters with state carried across calls.

  FIRFilter    convolution with an overlap of the last P-1 input samples
  IIRFilter    direct form: feed-forward overlap, then the recursive part
               resolved left to right from the last N-1 outputs
  IIR22Filter  2 forward / 2 backward (a0 == 1) section with O(1) state
  Delay        delay line of P samples

Output length always equals input length and an empty block is a no-op, so
the result never depends on how the stream is chunked.
"""
from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from scipy import signal as sig

from .buffered import Filter
from .errors import ConfigurationError
from .samples import FLOAT, Samples

log = logging.getLogger(__name__)


class _Overlap:
    """Overlap-save convolution of one coefficient vector over a sample stream."""

    def __init__(self, coefficients: Sequence[float], sample_type) -> None:
        self.reversed = np.ascontiguousarray(np.asarray(coefficients, dtype=FLOAT)[::-1])
        self.keep = len(self.reversed) - 1
        self.overlap: Samples = sample_type.zeros(self.keep)

    def convolve(self, x: Samples) -> Samples:
        n = len(x)
        ext = self.overlap.copy()
        ext.append_range(x, 0, n)
        out = ext.sliding_weighted_sum(self.reversed, n)
        self.overlap = ext[len(ext) - self.keep:]
        return out


class FIRFilter(Filter):
    def __init__(self, coefficients: Sequence[float], source=None, sample_type=None, executor=None) -> None:
        if len(coefficients) < 1:
            raise ConfigurationError("FIRFilter needs at least one coefficient")
        super().__init__("FIRFilter", source, sample_type, executor)
        self.coefficients = np.asarray(coefficients, dtype=FLOAT)
        self._conv = _Overlap(self.coefficients, self.input_type)

    def transform(self, x: Samples, out: Samples) -> None:
        out.assign(*self._conv.convolve(x).components())


class IIRFilter(Filter):
    """General recursive filter.

    ``y[i] = (sum_k b[k] x[i-k] - sum_{k>=1} a[k] y[i-k]) / a[0]``
    """

    def __init__(
        self,
        forward: Sequence[float],
        backward: Sequence[float],
        source=None,
        sample_type=None,
        executor=None,
    ) -> None:
        if len(forward) < 1 or len(backward) < 1:
            raise ConfigurationError("IIRFilter needs at least one forward and one backward coefficient")
        if backward[0] == 0:
            raise ConfigurationError("IIRFilter leading backward coefficient must be nonzero")
        super().__init__("IIRFilter", source, sample_type, executor)
        self.forward = np.asarray(forward, dtype=FLOAT)
        self.backward = np.asarray(backward, dtype=FLOAT)
        self._conv = _Overlap(self.forward, self.input_type)
        a0 = self.backward[0]
        self._b = np.array([1.0 / a0], dtype=FLOAT)
        self._a = (self.backward / a0).astype(FLOAT)
        # last N-1 outputs per component, oldest first
        self._overlap_out = [
            np.zeros(len(self.backward) - 1, dtype=FLOAT) for _ in range(self.input_type.NUM_COMPONENTS)
        ]

    def transform(self, x: Samples, out: Samples) -> None:
        fwd = self._conv.convolve(x)
        if len(fwd) == 0 or len(self._a) == 1:
            out.assign(*(p * self._b[0] for p in fwd.components()))
            return
        parts = []
        for k, w in enumerate(fwd.components()):
            zi = sig.lfiltic(self._b, self._a, y=self._overlap_out[k][::-1]).astype(FLOAT)
            y, _ = sig.lfilter(self._b, self._a, w, zi=zi)
            y = y.astype(FLOAT)
            ext = np.concatenate((self._overlap_out[k], y))
            self._overlap_out[k] = ext[len(ext) - len(self._overlap_out[k]):]
            parts.append(y)
        out.assign(*parts)


class IIR22Filter(Filter):
    """``y[i] = b0 x[i] + b1 x[i-1] - a1 y[i-1]``; state is one input and one output."""

    def __init__(
        self,
        forward: Sequence[float],
        backward: Sequence[float],
        source=None,
        sample_type=None,
        executor=None,
    ) -> None:
        if len(forward) != 2 or len(backward) != 2:
            raise ConfigurationError("IIR22Filter needs exactly 2 forward and 2 backward coefficients")
        if backward[0] != 1.0:
            raise ConfigurationError("IIR22Filter leading backward coefficient must be 1")
        super().__init__(type(self).__name__, source, sample_type, executor)
        self._b = np.asarray(forward, dtype=FLOAT)
        self._a = np.asarray(backward, dtype=FLOAT)
        n = self.input_type.NUM_COMPONENTS
        self._last_in = np.zeros(n, dtype=FLOAT)
        self._last_out = np.zeros(n, dtype=FLOAT)

    def transform(self, x: Samples, out: Samples) -> None:
        if len(x) == 0:
            out.clear()
            return
        parts = []
        for k, p in enumerate(x.components()):
            zi = sig.lfiltic(self._b, self._a, y=self._last_out[k:k + 1], x=self._last_in[k:k + 1])
            y, _ = sig.lfilter(self._b, self._a, p, zi=zi.astype(FLOAT))
            y = y.astype(FLOAT)
            self._last_in[k] = p[-1]
            self._last_out[k] = y[-1]
            parts.append(y)
        out.assign(*parts)


class Delay(Filter):
    """Output is the input shifted right by P samples, zero filled at the start."""

    def __init__(self, P: int, source=None, sample_type=None, executor=None) -> None:
        if P < 0:
            raise ConfigurationError(f"Delay must be >= 0 ({P})")
        super().__init__("Delay", source, sample_type, executor)
        self.P = P
        self._buffer: Samples = self.input_type.zeros(P)

    def transform(self, x: Samples, out: Samples) -> None:
        n = len(x)
        ext = self._buffer.copy()
        ext.append_range(x, 0, n)
        out.assign(*ext[:n].components())
        self._buffer = ext[n:]
