"""
RTL-SDR acquisition as a pipeline Source.

RtlSource opens pyrtlsdr's RtlSdr from an RtlDeviceConfig (or takes any
driver object exposing ``read_samples(n)``) and runs a receive loop on its
own thread, pushing each read into the pipeline.  The pipeline's
backpressure simply delays the next read; the driver buffers in the
meantime.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .buffered import SampleSource
from .samples import COMPLEX, ComplexSamples

try:
    from rtlsdr import RtlSdr
except ImportError:  # pragma: no cover - hardware environment
    RtlSdr = None  # type: ignore[misc, assignment]

log = logging.getLogger(__name__)


@dataclass
class RtlDeviceConfig:
    device_index: int = 0
    center_freq_hz: float = 100e6
    sample_rate_hz: float = 2.4e6
    gain_db: float = 30.0
    direct_sampling_q: bool = False
    buffer_size: int = 131072  # 128k samples per read


class RtlSource(SampleSource):
    """Pipeline source reading complex blocks from an RTL-SDR.

    ``run()`` reads on the calling thread; ``start()`` runs it on a worker
    thread until ``stop()``.  A read error stops the loop and is re-raised
    from ``stop()``.  A driver passed in stays owned by the caller and is
    never closed here.
    """

    def __init__(self, config: RtlDeviceConfig, driver=None, executor=None) -> None:
        super().__init__("RtlSource", config.sample_rate_hz, ComplexSamples, executor)
        self.config = config
        self.block_size = config.buffer_size
        self.driver = driver
        self._owns_driver = False
        self._running = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[BaseException] = None
        self.blocks_read = 0

    # ── device ───────────────────────────────────────────────────────

    def open(self) -> None:
        if self.driver is not None:
            return
        if RtlSdr is None:
            raise RuntimeError(
                "pyrtlsdr is not installed. Install it with 'pip install pyrtlsdr'."
            )

        cfg = self.config
        sdr = RtlSdr(cfg.device_index)
        sdr.sample_rate = cfg.sample_rate_hz
        sdr.center_freq = cfg.center_freq_hz
        sdr.gain = cfg.gain_db
        if cfg.direct_sampling_q:
            # 2 = Q branch on most RTL-SDRs
            sdr.set_direct_sampling(2)

        self.driver = sdr
        self._owns_driver = True
        log.info(
            "RTL-SDR %d open: %.6f MHz, %.0f S/s, gain %.1f dB",
            cfg.device_index,
            cfg.center_freq_hz / 1e6,
            cfg.sample_rate_hz,
            cfg.gain_db,
        )

    def close(self) -> None:
        if self._owns_driver and self.driver is not None:
            self.driver.close()
            self.driver = None
            self._owns_driver = False
            log.info("RTL-SDR %d closed", self.config.device_index)

    def retune(self, center_freq_hz: float) -> None:
        """Move the tuner; downstream stages see the new centre on the next block."""
        if self.driver is None:
            raise RuntimeError("Device not opened")
        self.driver.center_freq = center_freq_hz
        self.config.center_freq_hz = center_freq_hz
        log.info("RTL-SDR tuned to %.6f MHz", center_freq_hz / 1e6)

    # ── receive loop ─────────────────────────────────────────────────

    def read_once(self) -> None:
        if self.driver is None:
            raise RuntimeError("Device not opened")
        self.push(np.asarray(self.driver.read_samples(self.block_size), dtype=COMPLEX))
        self.blocks_read += 1

    def run(self, max_blocks: Optional[int] = None) -> None:
        self.open()
        self._running.set()
        self._loop(max_blocks)

    def _loop(self, max_blocks: Optional[int] = None) -> None:
        try:
            while self._running.is_set() and (max_blocks is None or self.blocks_read < max_blocks):
                self.read_once()
            self.wait_async()
        finally:
            self._running.clear()

    def _run_logged(self) -> None:
        try:
            self._loop()
        except Exception as exc:
            log.error("RtlSource receive loop failed: %s", exc)
            self._error = exc

    def start(self) -> None:
        if self._thread is not None:
            return
        self.open()
        self._error = None
        self._running.set()
        self._thread = threading.Thread(target=self._run_logged, daemon=True, name="rtl-receive")
        self._thread.start()

    def stop(self) -> None:
        self._running.clear()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
        self.close()
        if self._error is not None:
            error, self._error = self._error, None
            raise error
