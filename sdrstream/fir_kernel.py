"""
FIR kernel synthesis: windowed-sinc low/high/band filters, Kaiser design
rules, notch/peak kernels and polyphase decomposition.

All functions are pure; they return float32 coefficient arrays ready to be
handed to FIRFilter / UpFIRDown.  Design arithmetic is carried out in double
precision and rounded once at the end (filter design is not on the sample
path).

References:
  - labbookpages.co.uk "FIR Filters by Windowing" (sinc kernels, examples)
  - scipy.signal.kaiser_beta / kaiserord (Kaiser design rules)
  - liquid-dsp liquid_firdes_notch() (notch kernel)
"""
from __future__ import annotations

import logging
from typing import Tuple

import numpy as np
from scipy import signal as sig

from .errors import ConfigurationError
from .window import WindowFunction, blackman, kaiser

log = logging.getLogger(__name__)


def _sinc_taps(ft: float, n: np.ndarray, m_2: float) -> np.ndarray:
    """sin(2 pi ft (n - M/2)) / (pi (n - M/2)), with the removable centre filled in."""
    d = n - m_2
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.sin(2.0 * np.pi * ft * d) / (np.pi * d)
    return np.where(d == 0.0, 2.0 * ft, out)


def _check_length(filter_length: int) -> None:
    if filter_length < 1:
        raise ConfigurationError(f"filter length must be >= 1 ({filter_length})")


def sinc_kernel(
    filter_length: int,
    normalized_transition_frequency: float,
    high_not_low_pass: bool,
    window: WindowFunction,
    gain: float = 1.0,
) -> np.ndarray:
    """Windowed sinc for a filter with one transition (low or high pass).

    ``gain`` of NaN leaves the kernel unscaled.  Otherwise a low pass is
    scaled for ``gain`` at DC (the coefficient sum) and a high pass for
    ``gain`` at the Nyquist frequency (the alternating coefficient sum).
    """
    _check_length(filter_length)
    ft = float(normalized_transition_frequency)
    if ft > 0.5:
        raise ConfigurationError("sinc_kernel: normalized transition frequency exceeds 0.5")
    half = filter_length // 2
    M = filter_length - 1
    m_2 = 0.5 * M
    odd = 2 * half != filter_length
    if high_not_low_pass and not odd:
        raise ConfigurationError("sinc_kernel: for a high pass filter, length must be odd")

    out = np.zeros(filter_length, dtype=np.float64)
    if odd:
        # centre tap is never windowed; subtracting the sinc from a Dirac pulse
        # gives the high pass
        out[half] = 1.0 - 2.0 * ft if high_not_low_pass else 2.0 * ft

    n = np.arange(half, dtype=np.float64)
    taps = _sinc_taps(-ft if high_not_low_pass else ft, n, m_2) * window(n, M)
    out[:half] = taps
    out[filter_length - half:] = taps[::-1]

    if not np.isnan(gain):
        if high_not_low_pass:
            norm = np.sum(out * np.cos(np.pi * (np.arange(filter_length) - half)))
        else:
            norm = np.sum(out)
        out *= gain / norm
    return out.astype(np.float32)


def dual_sinc_kernel(
    filter_length: int,
    normalized_transition1_frequency: float,
    normalized_transition2_frequency: float,
    band_stop_not_pass: bool,
    window: WindowFunction,
    gain: float = 1.0,
) -> np.ndarray:
    """Difference of two windowed sincs (band pass or band stop).

    A band stop is scaled for ``gain`` at DC; a band pass for ``gain`` at the
    centre of its pass band.
    """
    _check_length(filter_length)
    half = filter_length // 2
    if 2 * half == filter_length:
        raise ConfigurationError("dual_sinc_kernel: band pass/stop length must be odd")
    ft1 = float(normalized_transition1_frequency)
    ft2 = float(normalized_transition2_frequency)
    if not (0.0 <= ft1 < ft2 <= 0.5):
        raise ConfigurationError(
            f"dual_sinc_kernel: need 0 <= f1 < f2 <= 0.5 (f1={ft1}, f2={ft2})"
        )
    M = filter_length - 1
    m_2 = 0.5 * M

    out = np.zeros(filter_length, dtype=np.float64)
    centre = 2.0 * (ft2 - ft1)
    out[half] = 1.0 - centre if band_stop_not_pass else centre
    lo, hi = (ft2, ft1) if band_stop_not_pass else (ft1, ft2)

    n = np.arange(half, dtype=np.float64)
    taps = (_sinc_taps(hi, n, m_2) - _sinc_taps(lo, n, m_2)) * window(n, M)
    out[:half] = taps
    out[filter_length - half:] = taps[::-1]

    if not np.isnan(gain):
        if band_stop_not_pass:
            norm = np.sum(out)
        else:
            norm = abs(frequency_response(out, 0.5 * (ft1 + ft2)))
        out *= gain / norm
    return out.astype(np.float32)


def low_pass(
    filter_length: int,
    transition_frequency: float,
    sample_frequency: float,
    window: WindowFunction = blackman,
    gain: float = 1.0,
) -> np.ndarray:
    return sinc_kernel(filter_length, transition_frequency / sample_frequency, False, window, gain)


def high_pass(
    filter_length: int,
    transition_frequency: float,
    sample_frequency: float,
    window: WindowFunction = blackman,
    gain: float = 1.0,
) -> np.ndarray:
    return sinc_kernel(filter_length, transition_frequency / sample_frequency, True, window, gain)


def band_pass(
    filter_length: int,
    transition1_frequency: float,
    transition2_frequency: float,
    sample_frequency: float,
    window: WindowFunction = blackman,
    gain: float = 1.0,
) -> np.ndarray:
    return dual_sinc_kernel(
        filter_length,
        transition1_frequency / sample_frequency,
        transition2_frequency / sample_frequency,
        False,
        window,
        gain,
    )


def band_stop(
    filter_length: int,
    transition1_frequency: float,
    transition2_frequency: float,
    sample_frequency: float,
    window: WindowFunction = blackman,
    gain: float = 1.0,
) -> np.ndarray:
    return dual_sinc_kernel(
        filter_length,
        transition1_frequency / sample_frequency,
        transition2_frequency / sample_frequency,
        True,
        window,
        gain,
    )


# ── Kaiser design rules ───────────────────────────────────────────────


def kaiser_beta(attenuation: float) -> float:
    """Kaiser ``beta`` for a stop band attenuation in (positive) dB.

    Same piecewise fit as scipy.signal.kaiser_beta.
    """
    a = float(attenuation)
    if a > 50:
        return 0.1102 * (a - 8.7)
    if a > 21:
        return 0.5842 * (a - 21) ** 0.4 + 0.07886 * (a - 21)
    return 0.0


def kaiser_parameters(ripple: float, width: float) -> Tuple[int, float]:
    """Kaiser window length and ``beta`` for a ripple (dB) and transition width.

    ``width`` is normalized so that 1 corresponds to the Nyquist frequency.
    Returns ``(numtaps, beta)`` as scipy.signal.kaiserord does.
    """
    a = abs(float(ripple))
    if a < 8:
        raise ConfigurationError(
            f"kaiser_parameters: ripple attenuation {a} dB is too small for the Kaiser formula"
        )
    if width <= 0:
        raise ConfigurationError(f"kaiser_parameters: width must be > 0 ({width})")
    beta = kaiser_beta(a)
    numtaps = (a - 7.95) / 2.285 / (np.pi * width) + 1
    return int(np.ceil(numtaps)), beta


def kaiser_low_pass(
    transition_frequency: float,
    sample_frequency: float,
    ripple: float,
    width: float,
    gain: float = 1.0,
) -> np.ndarray:
    length, beta = kaiser_parameters(ripple, width)
    return sinc_kernel(length, transition_frequency / sample_frequency, False, kaiser(beta), gain)


def kaiser_low_pass_normalized(
    normalized_transition_frequency: float,
    ripple: float,
    width: float,
    gain: float = 1.0,
) -> np.ndarray:
    length, beta = kaiser_parameters(ripple, width)
    return sinc_kernel(length, normalized_transition_frequency, False, kaiser(beta), gain)


def kaiser_low_pass_length(
    filter_length: int,
    normalized_transition_frequency: float,
    stop_band_attenuation: float,
    gain: float = 1.0,
) -> np.ndarray:
    """Fixed-length Kaiser low pass (the liquid_firdes_kaiser parameterisation)."""
    beta = kaiser_beta(stop_band_attenuation)
    return sinc_kernel(filter_length, normalized_transition_frequency, False, kaiser(beta), gain)


def kaiser_high_pass(
    transition_frequency: float,
    sample_frequency: float,
    ripple: float,
    width: float,
    gain: float = 1.0,
) -> np.ndarray:
    length, beta = kaiser_parameters(ripple, width)
    length |= 1  # high pass needs an odd length
    return sinc_kernel(length, transition_frequency / sample_frequency, True, kaiser(beta), gain)


def kaiser_band_pass(
    transition1_frequency: float,
    transition2_frequency: float,
    sample_frequency: float,
    ripple: float,
    width: float,
    gain: float = 1.0,
) -> np.ndarray:
    length, beta = kaiser_parameters(ripple, width)
    return dual_sinc_kernel(
        length | 1,
        transition1_frequency / sample_frequency,
        transition2_frequency / sample_frequency,
        False,
        kaiser(beta),
        gain,
    )


def kaiser_band_stop(
    transition1_frequency: float,
    transition2_frequency: float,
    sample_frequency: float,
    ripple: float,
    width: float,
    gain: float = 1.0,
) -> np.ndarray:
    length, beta = kaiser_parameters(ripple, width)
    return dual_sinc_kernel(
        length | 1,
        transition1_frequency / sample_frequency,
        transition2_frequency / sample_frequency,
        True,
        kaiser(beta),
        gain,
    )


# ── Narrow band kernels ───────────────────────────────────────────────


def _check_narrow_band(name: str, frequency: float, attenuation: float, semi_length: int) -> None:
    if not -0.5 <= frequency <= 0.5:
        raise ConfigurationError(f"{name}(): frequency must be in [-0.5, 0.5] ({frequency})")
    if attenuation < 0:
        raise ConfigurationError(f"{name}(): stop band attenuation must be >= 0 ({attenuation})")
    if semi_length < 1:
        raise ConfigurationError(f"{name}(): semi-length must be >= 1 ({semi_length})")


def notch(
    filter_semi_length: int,
    normalized_notch_frequency: float,
    stop_band_attenuation: float,
) -> np.ndarray:
    """Linear phase notch of length ``2 * filter_semi_length + 1``.

    A Kaiser-windowed tone at the notch frequency, scaled so its projection
    on the tone is unity, is subtracted from a centred impulse.
    """
    _check_narrow_band("notch", normalized_notch_frequency, stop_band_attenuation, filter_semi_length)
    window = kaiser(kaiser_beta(stop_band_attenuation))
    length = 2 * filter_semi_length + 1
    i = np.arange(length, dtype=np.float64)
    p = -np.cos(2.0 * np.pi * normalized_notch_frequency * (i - filter_semi_length))
    out = p * window(i, length)
    out /= np.sum(out * p)
    out[filter_semi_length] += 1.0
    return out.astype(np.float32)


def dc_block(filter_semi_length: int, stop_band_attenuation: float) -> np.ndarray:
    return notch(filter_semi_length, 0.0, stop_band_attenuation)


def peak(
    filter_semi_length: int,
    normalized_peak_frequency: float,
    stop_band_attenuation: float,
) -> np.ndarray:
    """Narrow band pass (inverse of ``notch``) with unity gain at the peak frequency."""
    _check_narrow_band("peak", normalized_peak_frequency, stop_band_attenuation, filter_semi_length)
    window = kaiser(kaiser_beta(stop_band_attenuation))
    length = 2 * filter_semi_length + 1
    i = np.arange(length, dtype=np.float64)
    p = np.cos(2.0 * np.pi * normalized_peak_frequency * (i - filter_semi_length))
    out = p * window(i, length)
    out[filter_semi_length] += 1.0
    out /= abs(frequency_response(out, normalized_peak_frequency))
    return out.astype(np.float32)


# ── Polyphase decomposition / analysis ────────────────────────────────


def polyphase_bank(M: int, kernel, scale: float = 1.0) -> np.ndarray:
    """Split ``kernel`` into ``M`` reversed sub-filters, one row per phase.

    The kernel is zero padded to a multiple of ``M``.  Row ``i`` holds
    ``kernel[i::M]`` reversed, ready to be dotted against a sample window.
    ``scale`` is typically ``M`` for unity gain after interpolation.
    """
    kernel = np.asarray(kernel, dtype=np.float64)
    N = len(kernel)
    if M <= 0:
        raise ConfigurationError("polyphase_bank: size must be > 0")
    if N == 0:
        raise ConfigurationError("polyphase_bank: kernel must not be empty")
    if M > N:
        raise ConfigurationError(f"polyphase_bank: size {M} must not exceed kernel size {N}")
    F0 = kernel * scale
    pad = (N + M - 1) // M * M - N
    if pad > 0:
        log.debug("polyphase_bank M=%d N=%d pad %d", M, N, pad)
        F0 = np.concatenate((F0, np.zeros(pad)))
    P = len(F0) // M
    bank = F0.reshape(P, M).T[:, ::-1]
    return np.ascontiguousarray(bank, dtype=np.float32)


def frequency_response(coefficients, fc):
    """Complex response of ``coefficients`` at normalized frequency ``fc``.

    Accepts a scalar or an array of frequencies.
    """
    fc_arr = np.atleast_1d(np.asarray(fc, dtype=np.float64))
    _, h = sig.freqz(np.asarray(coefficients, dtype=np.float64), worN=-2.0 * np.pi * fc_arr)
    return complex(h[0]) if np.ndim(fc) == 0 else h
