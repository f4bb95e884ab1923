"""
Modulators and demodulators for FM and AM.

Each demodulator expects CHANNEL-FILTERED IQ (narrow bandwidth), not raw
wideband IQ.  The receiver puts a Mixer and an UpFIRDown ahead of it.

Signal chain:
    Mixer → UpFIRDown (channel) → demodulator → [de-emphasis | AGC] → UpFIRDown (audio)

Key design rules:
  1. FM does NOT use AGC (FM has constant envelope).
  2. All stages preserve state across blocks (last sample, phase, filter
     state), so output never depends on how the stream is chunked.
  3. Samples stay float32/complex64.  The discriminator and the modulator
     phase are evaluated in double precision and rounded once, so a
     modulate/demodulate round trip is exact to float32 resolution.
"""
from __future__ import annotations

import logging
import math
from typing import Optional

import numpy as np

from .buffered import Transform
from .errors import ConfigurationError
from .filters import IIR22Filter
from .oscillator import OscillatorLookup
from .samples import FLOAT, ComplexSamples, RealSamples, Samples

log = logging.getLogger(__name__)


def _check_factor(name: str, factor: float) -> None:
    if not factor > 0:
        raise ConfigurationError(f"{name}: modulation factor must be > 0 ({factor})")


def _rate_of(source, sample_hz: Optional[float]) -> float:
    if sample_hz is None:
        sample_hz = source.sample_frequency() if source is not None else math.nan
    if not (sample_hz > 0 and math.isfinite(sample_hz)):
        raise ConfigurationError(f"sample rate must be a positive number ({sample_hz})")
    return sample_hz


# ── FM ────────────────────────────────────────────────────────────────


class FMDemodulate(Transform):
    """
    Polar discriminator: out[n] = arg{x*[n-1] · x[n]} / (2π · modulation_factor)

    ``modulation_factor`` is the peak deviation as a fraction of the sample
    rate.  The previous sample (initially 0) is carried across blocks.
    """

    input_type = ComplexSamples
    output_type = RealSamples

    def __init__(self, modulation_factor: float, source=None, executor=None) -> None:
        _check_factor("FMDemodulate", modulation_factor)
        self.modulation_factor = modulation_factor
        self.factor = 1.0 / (2.0 * math.pi * modulation_factor)
        self._prev = 0j
        super().__init__("FMDemodulate", source, executor=executor)

    def transform(self, x: Samples, out: Samples) -> None:
        if len(x) == 0:
            out.clear()
            return
        xr, xi = x.components()
        ext = np.empty(len(x) + 1, dtype=np.complex128)
        ext[0] = self._prev
        ext[1:].real = xr
        ext[1:].imag = xi
        self._prev = complex(ext[-1])
        w = np.conj(ext[:-1]) * ext[1:]
        out.assign((np.angle(w) * self.factor).astype(FLOAT))


class FMTestBaseband(Transform):
    """FM modulator: phase += x · 2π · modulation_factor; out = cos + j sin."""

    input_type = RealSamples
    output_type = ComplexSamples

    def __init__(self, modulation_factor: float, source=None, executor=None) -> None:
        _check_factor("FMTestBaseband", modulation_factor)
        self.modulation_factor = modulation_factor
        self.factor = 2.0 * math.pi * modulation_factor
        self.phase = 0.0
        super().__init__("FMTestBaseband", source, executor=executor)

    def transform(self, x: Samples, out: Samples) -> None:
        if len(x) == 0:
            out.clear()
            return
        phases = self.phase + np.cumsum(x.real.astype(np.float64) * self.factor)
        self.phase = math.remainder(float(phases[-1]), 2.0 * math.pi)
        out.assign(np.cos(phases).astype(FLOAT), np.sin(phases).astype(FLOAT))


class FMDeemphasis(IIR22Filter):
    """
    De-emphasis by bilinear transform of H(s) = ca / (s + ca),
    ca = 2 fs tan(1 / (2 fs tau)) (pre-warped corner).

    H(z) = b0 (1 + z^-1) / (1 - p1 z^-1) with unity gain at DC.
    """

    def __init__(self, source=None, tau: float = 75e-6, sample_hz: Optional[float] = None, executor=None) -> None:
        if not tau > 0:
            raise ConfigurationError(f"FMDeemphasis tau must be > 0 ({tau})")
        fs = _rate_of(source, sample_hz)
        fc = 1.0 / tau
        ca = 2.0 * fs * math.tan(fc / (2.0 * fs))
        k = -ca / (2.0 * fs)
        z1 = -1.0
        p1 = (1.0 + k) / (1.0 - k)
        b0 = -k / (1.0 - k)
        self.tau = tau
        super().__init__([b0, b0 * -z1], [1.0, -p1], source, RealSamples, executor)


# ── AM ────────────────────────────────────────────────────────────────


class AMEnvDemodulate(Transform):
    """Envelope of the mean-removed input, itself mean-removed per block."""

    input_type = ComplexSamples
    output_type = RealSamples

    def __init__(self, source=None, factor: float = 1.0, executor=None) -> None:
        _check_factor(type(self).__name__, factor)
        self.factor = FLOAT(factor)
        super().__init__(type(self).__name__, source, executor=executor)

    def transform(self, x: Samples, out: Samples) -> None:
        if len(x) == 0:
            out.clear()
            return
        xr, xi = x.components()
        m = np.hypot(xr - xr.mean(dtype=FLOAT), xi - xi.mean(dtype=FLOAT)) / self.factor
        out.assign(m - m.mean(dtype=FLOAT))


class AMEnvDemodulateX(AMEnvDemodulate):
    """Plain envelope |x| / factor."""

    def transform(self, x: Samples, out: Samples) -> None:
        out.assign(np.hypot(*x.components()) / self.factor)


class AMModulate(Transform):
    """out = carrier · ((0 if suppressed_carrier else 1) + x · factor)."""

    input_type = RealSamples
    output_type = ComplexSamples

    def __init__(
        self,
        carrier_hz: float,
        source=None,
        factor: float = 1.0,
        suppressed_carrier: bool = False,
        carrier_level: float = 1.0,
        sample_hz: Optional[float] = None,
        executor=None,
    ) -> None:
        self.carrier = OscillatorLookup(carrier_hz, _rate_of(source, sample_hz), carrier_level)
        self.factor = FLOAT(factor)
        self.suppressed_carrier = suppressed_carrier
        super().__init__("AMModulate", source, executor=executor)

    def transform(self, x: Samples, out: Samples) -> None:
        c, s = self.carrier.block(len(x))
        a = x.real * self.factor
        if not self.suppressed_carrier:
            a = a + FLOAT(1.0)
        out.assign(c * a, s * a)


# ── factory ───────────────────────────────────────────────────────────


def create_demodulator(mode: str, source=None, modulation_factor: float = 0.25) -> Transform:
    """Factory: create the right demodulator for the given mode."""
    mode = mode.lower()
    if mode == "fm":
        return FMDemodulate(modulation_factor, source)
    elif mode == "am":
        return AMEnvDemodulate(source)
    else:
        raise ConfigurationError(f"Unknown mode: {mode}")
