"""
Spectral estimation for display.

Two read policies, one class each:

  SpectrumData      every N-sample segment (spacing D = N - overlap) is
                    windowed, transformed and |X|^2 summed; a read returns
                    the average in dB and resets the sum.  Segment
                    boundaries follow the stream, not the blocks: samples
                    left over from one block are carried into the next.

  SpectrumSmoothed  one transform of the latest N samples per block,
                    exponentially smoothed (alpha 0.1 per block, so
                    independent of how often the display reads).  freeze()
                    holds the current average until the next read.

Both are sinks with a lock-guarded snapshot read for a display thread.  The
zero frequency bin is rotated to the centre of the output, and a read with
nothing accumulated yet returns the -150 dB floor.
"""
from __future__ import annotations

import logging
import math
import threading
from typing import Optional

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from .buffered import Sink
from .errors import ConfigurationError
from .samples import FLOAT, ComplexSamples, Samples
from .window import WindowFunction, hann, periodic

log = logging.getLogger(__name__)

SUM_INITIAL_VALUE = 1.0e-15
FLOOR_DB = 10.0 * math.log10(SUM_INITIAL_VALUE)


def scaled_window(N: int, window: WindowFunction) -> np.ndarray:
    """Periodic window scaled to unit RMS, with the FFT factor sqrt(2/N) folded in."""
    w = periodic(N, window).astype(np.float64)
    rms = math.sqrt(float(np.sum(w * w)) / N)
    return (w * (math.sqrt(2.0) / (rms * math.sqrt(N)))).astype(FLOAT)


def _to_db(power: np.ndarray) -> np.ndarray:
    return np.fft.fftshift(10.0 * np.log10(power)).astype(FLOAT)


class _SpectrumSink(Sink):
    input_type = ComplexSamples

    def __init__(self, name: str, source, fft_length: int, window: WindowFunction) -> None:
        if fft_length < 2 or fft_length % 2:
            raise ConfigurationError(f"{name}: FFT length must be even and >= 2 ({fft_length})")
        self.N = fft_length
        self.window = scaled_window(fft_length, window)
        self.centre_hz = 0.0
        self._lock = threading.Lock()
        super().__init__(name, source)

    def sample_frequency(self) -> float:
        return self.input_frequency()

    def frequencies(self) -> np.ndarray:
        """Bin frequencies in Hz matching the order returned by a read."""
        fs = self.sample_frequency()
        return np.fft.fftshift(np.fft.fftfreq(self.N, d=1.0 / fs)) + self.centre_hz

    def _power(self, frames: np.ndarray) -> np.ndarray:
        """|FFT|^2 of each windowed row of ``frames``."""
        spectra = np.fft.fft(frames * self.window, axis=-1)
        return (spectra.real ** 2 + spectra.imag ** 2).astype(FLOAT)


class SpectrumData(_SpectrumSink):
    def __init__(
        self,
        source=None,
        fft_length: int = 1024,
        overlap: int = 0,
        window: WindowFunction = hann,
    ) -> None:
        if not 0 <= overlap < fft_length:
            raise ConfigurationError(f"SpectrumData overlap must be in [0, {fft_length}) ({overlap})")
        super().__init__("SpectrumData", source, fft_length, window)
        self.D = fft_length - overlap
        self._sum = np.full(fft_length, SUM_INITIAL_VALUE, dtype=FLOAT)
        self.number_summed = 0
        self._carry = np.empty(0, dtype=np.complex64)

    def process(self, block: Samples) -> None:
        with self._lock:
            buf = np.concatenate((self._carry, block.to_numpy()))
            count = (len(buf) - self.N) // self.D + 1 if len(buf) >= self.N else 0
            if count:
                frames = sliding_window_view(buf, self.N)[::self.D][:count]
                self._sum += self._power(frames).sum(axis=0)
                self.number_summed += count
            self._carry = buf[count * self.D:].copy()

    def get_db_and_clear(self) -> np.ndarray:
        """Average power in dB (full scale = 0 dB), zero frequency centred."""
        with self._lock:
            if self.number_summed == 0:
                return np.full(self.N, FLOOR_DB, dtype=FLOAT)
            db = _to_db(self._sum) - FLOAT(10.0 * math.log10(self.number_summed))
            self._sum.fill(SUM_INITIAL_VALUE)
            self.number_summed = 0
        return db


class SpectrumSmoothed(_SpectrumSink):
    def __init__(
        self,
        source=None,
        fft_length: int = 1024,
        window: WindowFunction = hann,
        alpha: float = 0.1,
    ) -> None:
        if not 0.0 < alpha <= 1.0:
            raise ConfigurationError(f"SpectrumSmoothed alpha must be in (0, 1] ({alpha})")
        super().__init__("SpectrumSmoothed", source, fft_length, window)
        self.alpha = FLOAT(alpha)
        self._latest = np.zeros(fft_length, dtype=np.complex64)
        self._filled = 0
        self._average: Optional[np.ndarray] = None
        self.frozen = False

    def freeze(self) -> None:
        """Hold the current average; the next read returns it and re-arms."""
        with self._lock:
            self.frozen = True

    def process(self, block: Samples) -> None:
        x = block.to_numpy()
        if len(x) == 0:
            return
        with self._lock:
            self._latest = np.concatenate((self._latest, x))[-self.N:]
            self._filled = min(self.N, self._filled + len(x))
            if self.frozen or self._filled < self.N:
                return
            power = self._power(self._latest)
            if self._average is None:
                self._average = power
            else:
                self._average += (power - self._average) * self.alpha

    def get_db_and_clear(self) -> np.ndarray:
        with self._lock:
            self.frozen = False
            if self._average is None:
                return np.full(self.N, FLOOR_DB, dtype=FLOAT)
            return _to_db(self._average + FLOAT(SUM_INITIAL_VALUE))
