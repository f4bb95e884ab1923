"""
Audio output sink via sounddevice **blocking writes** (no Python callback).

The pipeline pushes real blocks at the device rate into a ring buffer; a
dedicated thread reads fixed chunks from it and calls
sd.OutputStream.write(chunk).  That write() is a blocking C call that
releases the GIL while PortAudio plays the audio, so the DSP thread that
drives the pipeline is never held up by the device.

    pipeline ──process()──▶ [ring buffer] ──▶ _play_loop() ──▶ PortAudio

Key design rules:
  1. Audio timing is driven by PortAudio alone.
  2. Buffer underruns produce smooth silence (explicit zeros), not
     hardware glitches, and are counted.
  3. The sink refuses a source whose sample rate is not the device rate;
     resampling belongs upstream (UpFIRDown).
"""
from __future__ import annotations

import logging
import math
import threading
from typing import Callable, Optional

import numpy as np
import sounddevice as sd

from .buffered import Sink
from .errors import ConfigurationError
from .samples import FLOAT, RealSamples, Samples

log = logging.getLogger(__name__)


def _default_stream(sample_rate: float):
    # latency='high' asks PortAudio for a large internal buffer
    return sd.OutputStream(samplerate=sample_rate, channels=1, dtype="float32", latency="high")


class AudioOutput(Sink):
    """
    Blocking-write audio output with a pre-filled ring buffer.
    """

    input_type = RealSamples

    # Silence queued ahead of the first block, so the playback thread has
    # data to read while the pipeline starts up.
    PREFILL_SECONDS = 1.5

    # Frames per blocking write.  2048 / 48000 ≈ 42.7 ms per write.
    WRITE_FRAMES = 2048

    def __init__(
        self,
        source=None,
        sample_rate: float = 48000.0,
        buffer_seconds: float = 4.0,
        stream_factory: Callable[[float], object] = _default_stream,
    ) -> None:
        if not sample_rate > 0:
            raise ConfigurationError(f"AudioOutput sample rate must be > 0 ({sample_rate})")
        if buffer_seconds <= self.PREFILL_SECONDS:
            raise ConfigurationError("AudioOutput buffer must be longer than the pre-fill")
        self.sample_rate = sample_rate
        self._stream_factory = stream_factory
        buf_size = int(sample_rate * buffer_seconds)
        self._buf = np.zeros(buf_size, dtype=FLOAT)
        self._buf_size = buf_size
        self._prefill = int(sample_rate * self.PREFILL_SECONDS)
        self._write_pos = self._prefill
        self._read_pos = 0
        self._lock = threading.Lock()

        self._stream = None
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self.underflows = 0
        self.overflows = 0
        super().__init__("AudioOutput", source)

    def connect_source(self, source, asynchronous: bool = False) -> None:
        rate = source.sample_frequency()
        if not math.isclose(rate, self.sample_rate, rel_tol=1e-9):
            raise ConfigurationError(
                f"AudioOutput at {self.sample_rate:.0f} Hz cannot take {rate} Hz from {source.name}"
            )
        super().connect_source(source, asynchronous)

    # ── internal helpers ──────────────────────────────────────────────

    def _readable(self) -> int:
        return (self._write_pos - self._read_pos) % self._buf_size

    def _writable(self) -> int:
        return self._buf_size - 1 - self._readable()

    def _read_chunk(self, out: np.ndarray) -> int:
        """Copy up to len(out) frames from the ring, pad with silence; return frames copied."""
        chunk = len(out)
        with self._lock:
            n = min(chunk, self._readable())
            ri = self._read_pos
            if n > 0:
                end = ri + n
                if end <= self._buf_size:
                    out[:n, 0] = self._buf[ri:end]
                else:
                    first = self._buf_size - ri
                    out[:first, 0] = self._buf[ri:]
                    out[first:n, 0] = self._buf[:n - first]
                self._read_pos = (ri + n) % self._buf_size
            if n < chunk:
                out[n:, 0] = 0.0
                self.underflows += 1
        return n

    # ── playback thread ───────────────────────────────────────────────

    def _play_loop(self) -> None:
        """Dedicated playback thread.

        If the ring buffer runs dry the rest of the chunk is zeros, which
        keeps the PortAudio pipeline fed continuously.
        """
        out = np.zeros((self.WRITE_FRAMES, 1), dtype=FLOAT)
        while self._running:
            self._read_chunk(out)
            try:
                self._stream.write(out)
            except sd.PortAudioError as exc:
                # device closed or disconnected
                log.error("Audio stream write failed: %s", exc)
                self._running = False

    # ── public API ────────────────────────────────────────────────────

    def start(self) -> None:
        if self._stream is not None:
            return
        self._running = True
        self._stream = self._stream_factory(self.sample_rate)
        self._stream.start()
        self._thread = threading.Thread(target=self._play_loop, daemon=True, name="audio-playback")
        self._thread.start()
        log.info(
            "Audio started: %.0f Hz, pre-fill %.1f s, write %d frames",
            self.sample_rate, self.PREFILL_SECONDS, self.WRITE_FRAMES,
        )

    def process(self, block: Samples) -> None:
        self.write(block.real)

    def write(self, audio: np.ndarray) -> None:
        """Enqueue audio for playback; starts the device on first use."""
        if len(audio) == 0:
            return

        samples = np.ascontiguousarray(audio, dtype=FLOAT).ravel()
        n = len(samples)
        if n >= self._buf_size:
            samples = samples[n - self._buf_size + 1:]
            n = len(samples)

        with self._lock:
            space = self._writable()
            if n > space:
                # overflow: drop the oldest samples to make room
                self._read_pos = (self._read_pos + n - space) % self._buf_size
                self.overflows += 1
            wi = self._write_pos
            end = wi + n
            if end <= self._buf_size:
                self._buf[wi:end] = samples
            else:
                first = self._buf_size - wi
                self._buf[wi:] = samples[:first]
                self._buf[:n - first] = samples[first:]
            self._write_pos = (wi + n) % self._buf_size

        if self._stream is None:
            self.start()

    def stop(self) -> None:
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except sd.PortAudioError as exc:
                log.warning("Audio stream close failed: %s", exc)
            self._stream = None
            log.info("Audio stopped (underflows %d, overflows %d)", self.underflows, self.overflows)

    def resume(self) -> None:
        """Restart after stop(), with a fresh pre-fill of silence."""
        with self._lock:
            self._buf.fill(0.0)
            self._read_pos = 0
            self._write_pos = self._prefill
        self.start()
