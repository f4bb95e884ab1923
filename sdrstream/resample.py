"""
Rational sample-rate conversion (up / FIR / down) with a polyphase bank.

Conceptually the input is zero-stuffed by ``up``, low pass filtered and
decimated by ``down``; only the outputs that survive decimation are computed,
each one a dot product of a window of input samples with one row of the
polyphase bank.

State carried across calls, all exact integers:
  p       phase (row of the bank) of the next output,  0 <= p < up
  offset  input index of the newest sample in the next output's window,
          relative to the start of the next block

Position of output ``y`` in up-sampled units is ``up * offset + p + y * down``,
so the count and placement of outputs for any chunking of the input are
computed in closed form and no sample is gained or lost between blocks.

After upfirdn (code.google.com/archive/p/upfirdn) and scipy.signal.resample_poly.
"""
from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

import numpy as np

from .buffered import Filter
from .errors import ConfigurationError
from .fir_kernel import polyphase_bank, sinc_kernel
from .samples import Samples
from .window import WindowFunction, blackman

log = logging.getLogger(__name__)


class UpFIRDown(Filter):
    def __init__(
        self,
        up: int,
        down: int,
        coefficients: Optional[Sequence[float]] = None,
        source=None,
        filter_semi_length: int = 12,
        normalized_transition_frequency: float = 0.5,
        window: WindowFunction = blackman,
        sample_type=None,
        executor=None,
    ) -> None:
        if up < 1:
            raise ConfigurationError(f"UpFIRDown interpolation factor must be >= 1 ({up})")
        if down < 1:
            raise ConfigurationError(f"UpFIRDown decimation factor must be >= 1 ({down})")
        c = math.gcd(up, down)
        self.up = up // c
        self.down = down // c

        if coefficients is None:
            if filter_semi_length < 1:
                raise ConfigurationError("UpFIRDown filter semi-length must be >= 1")
            if not 0.0 < normalized_transition_frequency <= 0.5:
                raise ConfigurationError("UpFIRDown transition frequency out of range (0, 0.5]")
            # anti-aliasing filter sized as in scipy resample_poly / MATLAB resample:
            # cutoff pi/max(up, down), order 2 * n * max(up, down)
            m = max(self.up, self.down)
            coefficients = sinc_kernel(
                2 * filter_semi_length * m, normalized_transition_frequency / m, False, window
            )
        elif len(coefficients) < 1:
            raise ConfigurationError("UpFIRDown FIR filter coefficients must not be empty")

        self.bank = polyphase_bank(self.up, coefficients, scale=self.up)
        self.Q = self.bank.shape[1]
        self.p = 0
        self.offset = 0
        super().__init__("UpFIRDown", source, sample_type, executor)
        self._overlap: Samples = self.input_type.zeros(self.Q - 1)
        log.info("UpFIRDown up %d down %d Q %d", self.up, self.down, self.Q)

    def sample_frequency(self) -> float:
        return self.input_frequency() * self.up / self.down

    def output_count(self, input_count: int) -> int:
        """Number of outputs the next ``input_count`` inputs will produce."""
        np_ = input_count * self.up
        return np_ // self.down + (1 if self.p + self.up * self.offset < np_ % self.down else 0)

    def transform(self, x: Samples, out: Samples) -> None:
        n = len(x)
        count = self.output_count(n)

        t = self.p + np.arange(count, dtype=np.int64) * self.down
        positions = self.offset + t // self.up
        phases = t % self.up

        end = self.p + count * self.down
        self.offset = self.offset + end // self.up - n
        self.p = end % self.up

        ext = self._overlap.copy()
        ext.append_range(x, 0, n)
        result = ext.gathered_weighted_sum(positions, self.bank[phases])
        keep = self.Q - 1
        self._overlap = ext[len(ext) - keep:]
        out.assign(*result.components())
