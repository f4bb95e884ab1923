"""
Numerically controlled oscillators, mixer / PLL and Costas loop.

Two NCO engines share one control surface (set/adjust frequency and phase,
in radians per sample and radians):

  OscillatorLookup  phase in table-index units, nearest entry of a 1024 point
                    cos/sin table; phase kept in [-0.5, 1024 - 0.5)
  OscillatorDirect  phase in radians, cos/sin evaluated directly; phase kept
                    in [-pi, pi)

Key design rules:
  1. Open loop, a block of n values is computed in one vector op and the
     phase advanced by n steps.
  2. Closed loop (Mixer with an error estimator, CostasLoop), the oscillator
     is stepped sample by sample because every output feeds back into the
     frequency and phase before the next one.
  3. Loop gains: alpha (frequency) is the loop bandwidth, beta = sqrt(alpha)
     (phase).  A second order PLL.
"""
from __future__ import annotations

import logging
import math
from typing import Callable, Optional, Tuple

import numpy as np

from .buffered import Source, Transform
from .errors import ConfigurationError
from .samples import FLOAT, ComplexSamples, Samples

log = logging.getLogger(__name__)

TABLE_SIZE = 1024
TWO_PI = 2.0 * math.pi
DEFAULT_LOOP_BANDWIDTH = 0.1


def _check_rates(signal_hz: float, sample_hz: float) -> None:
    if not (sample_hz > 0 and math.isfinite(sample_hz)):
        raise ConfigurationError(f"sample rate must be a positive number ({sample_hz})")
    if sample_hz < 2 * signal_hz:
        raise ConfigurationError(
            f"sample rate {sample_hz} must be >= 2 * signal frequency {signal_hz}"
        )


class _NCO:
    """Phase accumulator; subclasses choose the phase unit and how values are made."""

    CYCLE = TWO_PI
    UNITS_PER_RADIAN = 1.0

    def __init__(self, signal_hz: float, sample_hz: float, level: float = 1.0) -> None:
        _check_rates(signal_hz, sample_hz)
        self.level = level
        self.phase = 0.0
        self.step = self.CYCLE * signal_hz / sample_hz

    def _wrap(self) -> None:
        raise NotImplementedError

    def _values(self, phases: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        raise NotImplementedError

    def next(self) -> Tuple[float, float]:
        """(cos, sin) * level at the current phase, then advance one step."""
        self._wrap()
        c, s = self._value(self.phase)
        self.phase += self.step
        return c, s

    def _value(self, phase: float) -> Tuple[float, float]:
        raise NotImplementedError

    def block(self, count: int) -> Tuple[np.ndarray, np.ndarray]:
        """The next ``count`` (cos, sin) values as float32 arrays."""
        self._wrap()
        phases = self.phase + self.step * np.arange(count, dtype=np.float64)
        self.phase += self.step * count
        self._wrap()
        return self._values(phases)

    # ── control ──────────────────────────────────────────────────────

    def set_frequency(self, f: float) -> None:
        self.step = self.UNITS_PER_RADIAN * f

    def set_phase(self, p: float) -> None:
        self.phase = self.UNITS_PER_RADIAN * p

    def adjust_frequency(self, d: float) -> None:
        self.step += self.UNITS_PER_RADIAN * d

    def adjust_phase(self, d: float) -> None:
        self.phase += self.UNITS_PER_RADIAN * d

    def get_phase(self) -> float:
        return self.phase / self.UNITS_PER_RADIAN

    def get_frequency(self) -> float:
        f = self.step / self.UNITS_PER_RADIAN
        return f - TWO_PI if f > math.pi else f


class OscillatorLookup(_NCO):
    CYCLE = float(TABLE_SIZE)
    UNITS_PER_RADIAN = TABLE_SIZE / TWO_PI

    def __init__(self, signal_hz: float, sample_hz: float, level: float = 1.0) -> None:
        super().__init__(signal_hz, sample_hz, level)
        angles = TWO_PI * np.arange(TABLE_SIZE) / TABLE_SIZE
        self.cos_table = (np.cos(angles) * level).astype(FLOAT)
        self.sin_table = (np.sin(angles) * level).astype(FLOAT)
        self._cos = self.cos_table.tolist()
        self._sin = self.sin_table.tolist()

    def _wrap(self) -> None:
        self.phase = (self.phase + 0.5) % TABLE_SIZE - 0.5
        if self.phase + 0.5 >= TABLE_SIZE:
            self.phase -= TABLE_SIZE

    def _value(self, phase):
        i = int(phase + 0.5)
        return self._cos[i], self._sin[i]

    def _values(self, phases):
        index = np.floor(np.mod(phases + 0.5, TABLE_SIZE)).astype(np.intp) % TABLE_SIZE
        return self.cos_table[index], self.sin_table[index]


class OscillatorDirect(_NCO):
    def _wrap(self) -> None:
        self.phase = (self.phase + math.pi) % TWO_PI - math.pi
        if self.phase >= math.pi:
            self.phase -= TWO_PI

    def _value(self, phase):
        return math.cos(phase) * self.level, math.sin(phase) * self.level

    def _values(self, phases):
        level = FLOAT(self.level)
        return (np.cos(phases).astype(FLOAT) * level, np.sin(phases).astype(FLOAT) * level)


# ── sources ───────────────────────────────────────────────────────────


class Oscillator(Source):
    """Tone source built on a table NCO; real output is the cosine alone."""

    ENGINE = OscillatorLookup

    def __init__(
        self,
        signal_hz: float,
        sample_hz: float,
        level: float = 1.0,
        output_type=ComplexSamples,
        executor=None,
    ) -> None:
        self.output_type = output_type
        self.nco = self.ENGINE(signal_hz, sample_hz, level)
        self.signal_hz = signal_hz
        self.sample_hz = sample_hz
        self.level = level
        # about ten cycles per block
        self.buffer_size = int(sample_hz / abs(signal_hz) * 10 + 0.5) if signal_hz else TABLE_SIZE
        super().__init__(type(self).__name__, executor)

    def sample_frequency(self) -> float:
        return self.sample_hz

    def next(self):
        c, s = self.nco.next()
        return complex(c, s) if self.output_type.NUM_COMPONENTS == 2 else c

    def generate(self, count: Optional[int] = None) -> None:
        """Produce a block of ``count`` samples (default ``buffer_size``)."""
        c, s = self.nco.block(self.buffer_size if count is None else count)
        out = self.publisher.write
        if out.NUM_COMPONENTS == 2:
            out.assign(c, s)
        else:
            out.assign(c)
        self.produce(clear=True)

    def set_frequency(self, f: float) -> None:
        self.nco.set_frequency(f)

    def set_phase(self, p: float) -> None:
        self.nco.set_phase(p)

    def adjust_frequency(self, d: float) -> None:
        self.nco.adjust_frequency(d)

    def adjust_phase(self, d: float) -> None:
        self.nco.adjust_phase(d)

    def get_phase(self) -> float:
        return self.nco.get_phase()

    def get_frequency(self) -> float:
        return self.nco.get_frequency()


class OscillatorPrecise(Oscillator):
    """Tone source evaluating cos/sin directly instead of from a table."""

    ENGINE = OscillatorDirect


# ── loops ─────────────────────────────────────────────────────────────


def _rate_of(source, sample_hz: Optional[float]) -> float:
    if sample_hz is None:
        sample_hz = source.sample_frequency() if source is not None else math.nan
    if math.isnan(sample_hz):
        raise ConfigurationError("sample rate unknown: give a source with a rate or sample_hz")
    return sample_hz


class _Loop(Transform):
    input_type = ComplexSamples
    output_type = ComplexSamples

    def __init__(self, name, signal_hz, source, sample_hz, level, loop_bandwidth, executor) -> None:
        self.nco = OscillatorLookup(signal_hz, _rate_of(source, sample_hz), level)
        self.set_loop_bandwidth(loop_bandwidth)
        super().__init__(name, source, executor=executor)

    def set_loop_bandwidth(self, loop_bandwidth: float) -> None:
        if loop_bandwidth < 0:
            raise ConfigurationError(f"loop bandwidth must be >= 0 ({loop_bandwidth})")
        self.alpha = loop_bandwidth
        self.beta = math.sqrt(loop_bandwidth)


class Mixer(_Loop):
    """Multiply by the oscillator; with an estimator ``e(v, o)`` it is a PLL."""

    def __init__(
        self,
        signal_hz: float,
        source=None,
        sample_hz: Optional[float] = None,
        level: float = 1.0,
        loop_bandwidth: float = DEFAULT_LOOP_BANDWIDTH,
        error_estimator: Optional[Callable[[complex, complex], float]] = None,
        executor=None,
    ) -> None:
        self.error_estimator = error_estimator
        super().__init__("Mixer", signal_hz, source, sample_hz, level, loop_bandwidth, executor)

    def transform(self, x: Samples, out: Samples) -> None:
        xr, xi = x.components()
        if self.error_estimator is None:
            c, s = self.nco.block(len(x))
            out.assign(xr * c - xi * s, xr * s + xi * c)
            return
        n = len(x)
        out_r = np.empty(n, dtype=FLOAT)
        out_i = np.empty(n, dtype=FLOAT)
        nco, estimate = self.nco, self.error_estimator
        for k, (vr, vi) in enumerate(zip(xr.tolist(), xi.tolist())):
            c, s = nco.next()
            out_r[k] = vr * c - vi * s
            out_i[k] = vr * s + vi * c
            e = estimate(complex(vr, vi), complex(c, s))
            nco.adjust_frequency(e * self.alpha)
            nco.adjust_phase(e * self.beta)
        out.assign(out_r, out_i)


class TanhLookup:
    """tanh on [-2, 2] from a 1024 point table, saturating to +-1 outside."""

    def __init__(self) -> None:
        x = np.arange(TABLE_SIZE) / (TABLE_SIZE - 1) * 4 - 2
        self.table = np.tanh(x).astype(FLOAT).tolist()

    def __call__(self, x: float) -> float:
        if x > 2:
            return 1.0
        if x < -2:
            return -1.0
        return self.table[min(int(TABLE_SIZE // 2 + TABLE_SIZE // 4 * x), TABLE_SIZE - 1)]


_tanh = TanhLookup()


def error_estimator_2(o: complex) -> float:
    return o.real * o.imag


def error_estimator_2s(o: complex) -> float:
    return _tanh(abs(o) * o.real) * o.imag


class CostasLoop(_Loop):
    """Carrier recovery without a pilot: the estimator sees the mixed sample."""

    def __init__(
        self,
        signal_hz: float,
        source=None,
        sample_hz: Optional[float] = None,
        level: float = 1.0,
        loop_bandwidth: float = DEFAULT_LOOP_BANDWIDTH,
        error_estimator: Optional[Callable[[complex], float]] = None,
        scope_data=None,
        executor=None,
    ) -> None:
        self.error_estimator = error_estimator or error_estimator_2
        self.noise = 1.0
        self.scope_data = scope_data
        super().__init__("CostasLoop", signal_hz, source, sample_hz, level, loop_bandwidth, executor)

    def error_estimator_snr2(self, o: complex) -> float:
        """As ``error_estimator_2s`` with the modulus scaled by the noise level."""
        return _tanh(abs(o) / self.noise * o.real) * o.imag

    def transform(self, x: Samples, out: Samples) -> None:
        xr, xi = x.components()
        n = len(x)
        out_r = np.empty(n, dtype=FLOAT)
        out_i = np.empty(n, dtype=FLOAT)
        nco, estimate, scope = self.nco, self.error_estimator, self.scope_data
        for k, (vr, vi) in enumerate(zip(xr.tolist(), xi.tolist())):
            c, s = nco.next()
            r = vr * c - vi * s
            i = vr * s + vi * c
            out_r[k] = r
            out_i[k] = i
            e = estimate(complex(r, i))
            nco.adjust_frequency(e * self.alpha)
            nco.adjust_phase(e * self.beta)
            if scope is not None:
                scope.sample([nco.get_frequency(), nco.get_phase() / TWO_PI, e])
        out.assign(out_r, out_i)
