"""
Window functions for filter design and spectral analysis.

Every window is a function ``w(n, M)`` of the sample index ``n`` and the
denominator ``M``.  Evaluated over ``n = 0..length-1``:

    symmetric(length)  uses M = length - 1   (filter design)
    periodic(length)   uses M = length       (spectral analysis, FFT frames)

Most shapes are generalized cosine sums a0 + a1 cos(f) + a2 cos(2f) + ...
with f = 2 pi n / M.  The three HFT flat-top families are from Heinzel,
Rüdiger & Schilling, "Spectrum and spectral density estimation by the DFT".
Reference values in the tests come from scipy.signal.windows.
"""
from __future__ import annotations

from typing import Callable

import numpy as np
from scipy import special

from .errors import ConfigurationError

WindowFunction = Callable[[np.ndarray, int], np.ndarray]


def _general_cosine(n, M: int, *coefficients: float) -> np.ndarray:
    f = 2.0 * np.pi * np.asarray(n, dtype=np.float64) / M
    return sum(a * np.cos(k * f) for k, a in enumerate(coefficients))


def rectangular(n, M: int) -> np.ndarray:
    # aka. Dirichlet, boxcar
    return np.ones_like(np.asarray(n, dtype=np.float64))


def bartlett(n, M: int) -> np.ndarray:
    # aka. triangular
    n = np.asarray(n, dtype=np.float64)
    return 1.0 - 2.0 * np.abs(n - M / 2.0) / M


def hann(n, M: int) -> np.ndarray:
    # raised cosine
    return _general_cosine(n, M, 0.5, -0.5)


def hamming(n, M: int) -> np.ndarray:
    return _general_cosine(n, M, 0.54, -0.46)


def blackman(n, M: int) -> np.ndarray:
    return _general_cosine(n, M, 0.42, -0.50, 0.08)


def blackmanharris(n, M: int) -> np.ndarray:
    return _general_cosine(n, M, 0.35875, -0.48829, 0.14128, -0.01168)


def nuttall33(n, M: int) -> np.ndarray:
    return _general_cosine(n, M, 0.338946, -0.481973, 0.161054, -0.018027)


def nuttall37(n, M: int) -> np.ndarray:
    return _general_cosine(n, M, 0.3635819, -0.4891775, 0.1365995, -0.0106411)


def flattop(n, M: int) -> np.ndarray:
    """MATLAB ``flattopwin`` coefficients."""
    return _general_cosine(
        n, M, 0.21557895, -0.41663158, 0.277263158, -0.083578947, 0.006947368
    )


def hft70(n, M: int) -> np.ndarray:
    """Lowest sidelobe flat top with 3 cosine terms (-70.4 dB, first zero at 4 bins)."""
    return _general_cosine(n, M, 1.0, -1.90796, 1.07349, -0.18199)


def hft95(n, M: int) -> np.ndarray:
    """Lowest sidelobe flat top with 4 cosine terms (-95.0 dB).

    Very close to the flat top used by newer HP/Agilent spectrum analyzers.
    """
    return _general_cosine(n, M, 1.0, -1.9383379, 1.3045202, -0.4028270, 0.0350665)


def hft90d(n, M: int) -> np.ndarray:
    """4-term flat top constrained to an f^-3 sidelobe drop (-90.2 dB)."""
    return _general_cosine(n, M, 1.0, -1.942604, 1.340318, -0.440811, 0.043097)


def kaiser(beta: float) -> WindowFunction:
    """Return a Kaiser window function with shape parameter ``beta``."""
    if beta < 0:
        raise ConfigurationError(f"kaiser(), beta must be >= 0 ({beta})")
    i0_beta = special.i0(beta)

    def window(n, M: int) -> np.ndarray:
        r = 2.0 * np.asarray(n, dtype=np.float64) / M - 1.0
        return special.i0(beta * np.sqrt(np.clip(1.0 - r * r, 0.0, None))) / i0_beta

    window.__name__ = f"kaiser({beta:g})"
    return window


def periodic(length: int, window: WindowFunction = blackman, gain: float = 1.0) -> np.ndarray:
    """Periodic window for spectral analysis (denominator ``length``)."""
    n = np.arange(length)
    return (gain * window(n, length)).astype(np.float32)


def symmetric(length: int, window: WindowFunction = blackman, gain: float = 1.0) -> np.ndarray:
    """Symmetric window for filter design (denominator ``length - 1``)."""
    n = np.arange(length)
    return (gain * window(n, length - 1)).astype(np.float32)


WINDOWS = {
    "rectangular": rectangular,
    "bartlett": bartlett,
    "hann": hann,
    "hamming": hamming,
    "blackman": blackman,
    "blackmanharris": blackmanharris,
    "nuttall33": nuttall33,
    "nuttall37": nuttall37,
    "flattop": flattop,
    "hft70": hft70,
    "hft95": hft95,
    "hft90d": hft90d,
}


def by_name(name: str) -> WindowFunction:
    try:
        return WINDOWS[name.lower()]
    except KeyError:
        raise ConfigurationError(f"Unknown window: {name}") from None
