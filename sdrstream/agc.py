"""
Gain control.

  AGC              sample-wise first order loop toward a reference level
  AutoGainControl  block-wise, from the smoothed block peak; can be locked
"""
from __future__ import annotations

import logging
import math

import numpy as np

from .buffered import Filter
from .errors import ConfigurationError
from .samples import FLOAT, Samples

log = logging.getLogger(__name__)


class AGC(Filter):
    """out = x * gain; gain += rate * (reference - |out|), capped at max_gain."""

    def __init__(
        self,
        source=None,
        rate: float = 1e-4,
        reference: float = 1.0,
        gain: float = 1.0,
        max_gain: float = math.nan,
        sample_type=None,
        executor=None,
    ) -> None:
        if rate < 0:
            raise ConfigurationError(f"AGC rate must be >= 0 ({rate})")
        super().__init__("AGC", source, sample_type, executor)
        self.rate = rate
        self.reference = reference
        self.gain = gain
        self.max_gain = max_gain

    def transform(self, x: Samples, out: Samples) -> None:
        parts = x.components()
        n = len(x)
        gains = np.empty(n, dtype=FLOAT)
        gain, rate, reference, max_gain = self.gain, self.rate, self.reference, self.max_gain
        capped = not math.isnan(max_gain)
        if len(parts) == 2:
            magnitudes = zip(parts[0].tolist(), parts[1].tolist())
            modulus = math.hypot
        else:
            magnitudes = ((v,) for v in parts[0].tolist())
            modulus = abs
        for k, v in enumerate(magnitudes):
            gains[k] = gain
            gain += rate * (reference - modulus(*v) * gain)
            if capped and gain > max_gain:
                gain = max_gain
        self.gain = gain
        out.assign(*(p * gains for p in parts))


class AutoGainControl(Filter):
    SMOOTHING = 0.025

    def __init__(self, source=None, gain: float = 0.5, sample_type=None, executor=None) -> None:
        if gain <= 0:
            raise ConfigurationError(f"AutoGainControl gain must be > 0 ({gain})")
        super().__init__("AutoGainControl", source, sample_type, executor)
        self.gain = gain
        self.ceil = self.ceil_ma = self.ceil_maa = 1.0 / gain
        self.locked = False

    def lock(self, locked: bool = True) -> None:
        """Hold the current gain (or release it)."""
        self.locked = locked

    def transform(self, x: Samples, out: Samples) -> None:
        parts = x.components()
        if len(x) == 0:
            out.clear()
            return
        if not self.locked:
            a = self.SMOOTHING
            self.ceil_ma += (self.ceil - self.ceil_ma) * a
            self.ceil_maa += (self.ceil_ma - self.ceil_maa) * a
            magnitude = np.hypot(*parts) if len(parts) == 2 else np.abs(parts[0])
            self.ceil = float(np.max(magnitude))
            self.gain = 0.5 / self.ceil_maa
        g = FLOAT(self.gain)
        out.assign(*(p * g for p in parts))

    def get_signal_level(self) -> float:
        return 1.0 / self.gain

    def get_rssi(self) -> float:
        return -20.0 * math.log10(self.gain)
