from __future__ import annotations

import argparse
import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

import numpy as np

from .buffered import CaptureSink, SampleSource
from .config import ReceiverConfig, load_device_config, load_receiver_config
from .demod import FMTestBaseband
from .logger import setup_logging
from .oscillator import Mixer
from .receiver import build_receiver
from .rtl_device import RtlDeviceConfig, RtlSource
from .samples import RealSamples

log = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG = ROOT_DIR / "config" / "receiver.json"


def _peak_hz(spectrum) -> float:
    db = spectrum.get_db_and_clear()
    return float(spectrum.frequencies()[int(np.argmax(db))])


def run_radio_mode(
    device_cfg: RtlDeviceConfig,
    receiver_cfg: ReceiverConfig,
    center_freq_hz: float,
) -> None:
    """
    Classic radio: RTL-SDR → receive chain → sound card.

    The tuner sits ``tune_offset_hz`` below the station so the wanted signal
    is clear of the DC spike; the mixer brings it back to zero.
    """
    # imported here so 'tone' mode runs without an audio device
    from .audio_output import AudioOutput

    device_cfg.center_freq_hz = center_freq_hz - receiver_cfg.tune_offset_hz
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="dsp") as pool:
        source = RtlSource(device_cfg, executor=pool)
        receiver = build_receiver(source, receiver_cfg, executor=pool)
        receiver.spectrum.centre_hz = device_cfg.center_freq_hz
        audio = AudioOutput(receiver.output, sample_rate=receiver_cfg.audio_rate_hz)
        print(
            f"Radio mode: {receiver_cfg.mode.upper()} at {center_freq_hz/1e6:.6f} MHz "
            "(Ctrl-C to quit)"
        )
        source.start()
        try:
            while True:
                time.sleep(1.0)
                print(f"Spectrum peak: {_peak_hz(receiver.spectrum)/1e6:10.6f} MHz", end="\r", flush=True)
        except KeyboardInterrupt:
            print("\nStopping radio mode.")
        finally:
            try:
                source.stop()
            finally:
                audio.stop()
                source.sink_wait_time.log_accumulated()
                source.sink_process_time.log_accumulated()
                receiver.close()


def run_tone_mode(
    receiver_cfg: ReceiverConfig,
    input_rate_hz: float,
    tone_hz: float,
    seconds: float,
    block_size: int = 16384,
) -> Optional[float]:
    """
    Synthetic FM station: a tone, FM modulated at the configured deviation and
    shifted to ``tune_offset_hz``, fed through the same chain as radio mode.

    Prints and returns the recovered audio level (peak, from the RMS).
    """
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="dsp") as pool:
        audio_in = SampleSource("ToneSource", input_rate_hz, RealSamples)
        modulator = FMTestBaseband(receiver_cfg.fm_deviation_hz / input_rate_hz, audio_in)
        station = Mixer(receiver_cfg.tune_offset_hz, modulator)
        receiver = build_receiver(station, receiver_cfg, executor=pool)
        capture = CaptureSink(receiver.output, RealSamples, name="AudioCapture")

        total = int(seconds * input_rate_hz)
        step = 2.0 * math.pi * tone_hz / input_rate_hz
        for start in range(0, total, block_size):
            n = min(block_size, total - start)
            audio_in.push(np.cos(step * np.arange(start, start + n)).astype(np.float32))
        station.wait_async()

        audio = capture.samples()
        peak_hz = _peak_hz(receiver.spectrum)
        receiver.close()

    if len(audio) == 0:
        print("Tone mode: no audio produced")
        return None
    # skip the filter start-up
    settled = audio[len(audio) // 4:]
    level = math.sqrt(2.0) * float(np.sqrt(np.mean(settled.astype(np.float64) ** 2)))
    print(
        f"Tone mode: {receiver_cfg.mode.upper()} {tone_hz:.0f} Hz tone, "
        f"{len(audio)} audio samples at {receiver_cfg.audio_rate_hz:.0f} Hz, "
        f"recovered level {level:.3f}, spectrum peak {peak_hz:.0f} Hz"
    )
    return level


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(
        description=(
            "Streaming SDR receiver.\n"
            "Two modes:\n"
            "  1) 'radio' – RTL-SDR to sound card (AM/FM)\n"
            "  2) 'tone'  – synthetic FM test signal through the same chain"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--mode",
        choices=["radio", "tone"],
        default="radio",
        help="Operating mode: hardware radio vs synthetic test tone.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="JSON file with 'receiver' and 'device' sections.",
    )
    parser.add_argument(
        "--freq-mhz",
        type=float,
        default=None,
        help="Station frequency in MHz for 'radio' mode (default: device center_freq_hz).",
    )
    parser.add_argument(
        "--demod",
        choices=["am", "fm"],
        default=None,
        help="Demodulation type (overrides the config file).",
    )
    parser.add_argument(
        "--tone-hz",
        type=float,
        default=1000.0,
        help="Test tone frequency for 'tone' mode.",
    )
    parser.add_argument(
        "--seconds",
        type=float,
        default=1.0,
        help="Length of the synthetic signal for 'tone' mode.",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=Path("logs"),
        help="Directory for sdrstream.log.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    args = parser.parse_args(argv)

    setup_logging(args.log_dir, logging.DEBUG if args.verbose else logging.INFO)

    if args.config.exists():
        receiver_cfg = load_receiver_config(args.config)
        device_cfg = load_device_config(args.config)
    else:
        log.warning("Config %s not found, using defaults", args.config)
        receiver_cfg = ReceiverConfig()
        device_cfg = RtlDeviceConfig()
    if args.demod is not None:
        receiver_cfg.mode = args.demod

    if args.mode == "radio":
        center_hz = args.freq_mhz * 1e6 if args.freq_mhz is not None else device_cfg.center_freq_hz
        run_radio_mode(device_cfg, receiver_cfg, center_hz)
    else:
        receiver_cfg.mode = "fm"
        run_tone_mode(receiver_cfg, device_cfg.sample_rate_hz, args.tone_hz, args.seconds)


if __name__ == "__main__":
    main()
