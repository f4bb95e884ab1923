"""
Receiver configuration loaded from JSON.

The file holds an optional "receiver" section (ReceiverConfig) and an
optional "device" section (RtlDeviceConfig):

    {
      "receiver": {"mode": "fm", "channel_rate_hz": 240000, ...},
      "device":   {"center_freq_hz": 100.1e6, "gain_db": 30.0}
    }

Only the receiver builder and the CLI read this; every stage constructor
still takes explicit parameters.
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Type, TypeVar, Union

from .errors import ConfigurationError
from .rtl_device import RtlDeviceConfig

log = logging.getLogger(__name__)

MODES = ("fm", "am")

T = TypeVar("T")


@dataclass
class ReceiverConfig:
    mode: str = "fm"
    tune_offset_hz: float = 0.0
    channel_rate_hz: float = 240_000.0
    audio_rate_hz: float = 48_000.0
    deemphasis_tau_s: float = 75e-6
    fm_deviation_hz: float = 75_000.0
    resampler_semi_length: int = 12
    fft_length: int = 1024
    fft_overlap: int = 0
    loop_bandwidth: float = 0.1

    def validate(self) -> "ReceiverConfig":
        if self.mode not in MODES:
            raise ConfigurationError(f"Unknown mode: {self.mode} (expected one of {', '.join(MODES)})")
        for name in ("channel_rate_hz", "audio_rate_hz", "deemphasis_tau_s", "fm_deviation_hz"):
            if not getattr(self, name) > 0:
                raise ConfigurationError(f"{name} must be > 0 ({getattr(self, name)})")
        for name in ("channel_rate_hz", "audio_rate_hz"):
            if float(getattr(self, name)) != int(getattr(self, name)):
                raise ConfigurationError(f"{name} must be a whole number of Hz ({getattr(self, name)})")
        if self.fm_deviation_hz * 2 > self.channel_rate_hz:
            raise ConfigurationError("fm_deviation_hz must be at most half the channel rate")
        if self.resampler_semi_length < 1:
            raise ConfigurationError("resampler_semi_length must be >= 1")
        if self.fft_length < 2 or self.fft_length % 2:
            raise ConfigurationError(f"fft_length must be even and >= 2 ({self.fft_length})")
        if not 0 <= self.fft_overlap < self.fft_length:
            raise ConfigurationError(f"fft_overlap must be in [0, fft_length) ({self.fft_overlap})")
        if self.loop_bandwidth < 0:
            raise ConfigurationError("loop_bandwidth must be >= 0")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _from_section(cls: Type[T], section: Dict[str, Any], name: str) -> T:
    known = {f.name for f in fields(cls)}
    unknown = set(section) - known
    if unknown:
        raise ConfigurationError(f"Unknown {name} setting(s): {', '.join(sorted(unknown))}")
    return cls(**section)


def _read(path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{path}: invalid JSON ({exc})") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected a JSON object")
    return data


def load_receiver_config(path: Union[str, Path]) -> ReceiverConfig:
    data = _read(path)
    cfg = _from_section(ReceiverConfig, data.get("receiver", {}), "receiver").validate()
    log.info("Receiver config from %s: %s", path, cfg)
    return cfg


def load_device_config(path: Union[str, Path]) -> RtlDeviceConfig:
    data = _read(path)
    return _from_section(RtlDeviceConfig, data.get("device", {}), "device")
