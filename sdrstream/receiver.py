"""
Canonical receive chains.

  FM:  Mixer(tune) → UpFIRDown(channel) → FMDemodulate → FMDeemphasis → UpFIRDown(audio)
  AM:  Mixer(tune) → UpFIRDown(channel) → AMEnvDemodulate → AGC → UpFIRDown(audio)

With an executor, a SpectrumData estimator hangs off the raw source as an
asynchronous sink, so the display costs the receive path one join per block.
"""
from __future__ import annotations

import logging
import math
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import List, Optional

from .agc import AGC
from .buffered import Transform
from .config import ReceiverConfig
from .demod import FMDeemphasis, create_demodulator
from .errors import ConfigurationError
from .oscillator import Mixer
from .resample import UpFIRDown
from .spectrum import SpectrumData

log = logging.getLogger(__name__)


@dataclass
class Receiver:
    source: object
    config: ReceiverConfig
    mixer: Mixer
    channel: UpFIRDown
    demodulator: Transform
    post: Transform
    audio: UpFIRDown
    spectrum: Optional[SpectrumData] = None
    stages: List[object] = field(default_factory=list)

    @property
    def output(self) -> UpFIRDown:
        """Last stage; connect the audio sink here."""
        return self.audio

    def retune(self, tune_offset_hz: float) -> None:
        """Move the mixer to a new offset from the source's centre frequency."""
        fs = self.source.sample_frequency()
        self.mixer.nco.set_frequency(-2.0 * math.pi * tune_offset_hz / fs)
        self.config.tune_offset_hz = tune_offset_hz
        log.info("Retuned to %.0f Hz offset", tune_offset_hz)

    def close(self) -> None:
        """Detach every stage from its upstream, last first."""
        for stage in reversed(self.stages):
            stage.disconnect_source()
        self.source.wait_async()


def _whole_hz(rate: float, what: str) -> int:
    if not (rate > 0 and math.isfinite(rate)) or rate != int(rate):
        raise ConfigurationError(f"{what} must be a positive whole number of Hz ({rate})")
    return int(rate)


def build_receiver(source, config: ReceiverConfig, executor: Optional[Executor] = None) -> Receiver:
    config.validate()
    input_hz = _whole_hz(source.sample_frequency(), "source sample rate")
    channel_hz = _whole_hz(config.channel_rate_hz, "channel rate")
    audio_hz = _whole_hz(config.audio_rate_hz, "audio rate")
    if channel_hz > input_hz:
        raise ConfigurationError(f"channel rate {channel_hz} exceeds source rate {input_hz}")

    mixer = Mixer(-config.tune_offset_hz, source, loop_bandwidth=config.loop_bandwidth)
    channel = UpFIRDown(channel_hz, input_hz, source=mixer, filter_semi_length=config.resampler_semi_length)

    if config.mode == "fm":
        demodulator = create_demodulator("fm", channel, config.fm_deviation_hz / channel_hz)
        post = FMDeemphasis(demodulator, tau=config.deemphasis_tau_s)
    else:
        demodulator = create_demodulator("am", channel)
        post = AGC(demodulator, reference=0.5)

    audio = UpFIRDown(audio_hz, channel_hz, source=post, filter_semi_length=config.resampler_semi_length)

    spectrum = None
    if executor is not None:
        if source.executor is None:
            source.executor = executor
        spectrum = SpectrumData(fft_length=config.fft_length, overlap=config.fft_overlap)
        spectrum.connect_source(source, asynchronous=True)

    stages = [mixer, channel, demodulator, post, audio] + ([spectrum] if spectrum is not None else [])
    log.info(
        "Receiver %s: %d Hz → channel %d Hz → audio %d Hz, offset %.0f Hz%s",
        config.mode.upper(),
        input_hz,
        channel_hz,
        audio_hz,
        config.tune_offset_hz,
        ", spectrum attached" if spectrum is not None else "",
    )
    return Receiver(source, config, mixer, channel, demodulator, post, audio, spectrum, stages)
