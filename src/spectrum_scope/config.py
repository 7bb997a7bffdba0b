"""Configuration for the spectrum viewer and its analysis session."""

from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import Any, Dict, Optional

from .mapping import BandPolicy, FrequencyAxis
from .utils import is_power_of_two

DEFAULT_CONFIG_NAME = "spectrum_scope_config.json"

_ALIASES = {
    "samplerate": "sample_rate",
    "fft": "fft_size",
    "transform_size": "fft_size",
    "smoothing_time_constant": "smoothing",
    "pitch_detection_interval": "pitch_interval",
    "policy": "band_policy",
}


@dataclasses.dataclass
class AnalyzerConfig:
    """Settings shared by the transform provider, session and viewer."""

    sample_rate: int = 44100
    fft_size: int = 8192
    hop: int = 512
    smoothing: float = 0.8
    min_decibels: float = -100.0
    max_decibels: float = -30.0
    bands: int = 64
    axis: str = "log"
    band_policy: str = "sample"
    oversample_bins: int = 0
    pitch_interval: float = 0.1
    history_length: int = 50
    mode: str = "spectrum"
    frame_interval_ms: int = 16
    device: Optional[str] = None
    demo: bool = False
    input_path: Optional[str] = None
    loop: bool = False
    log_level: str = "INFO"

    @property
    def frequency_axis(self) -> FrequencyAxis:
        return FrequencyAxis.parse(self.axis)

    @property
    def policy(self) -> BandPolicy:
        return BandPolicy.parse(self.band_policy)

    def validate(self) -> "AnalyzerConfig":
        if not is_power_of_two(self.fft_size):
            raise ValueError(f"fft_size must be a power of two, got {self.fft_size}")
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        if self.hop <= 0:
            raise ValueError("hop must be positive")
        if self.bands < 1:
            raise ValueError("bands must be >= 1")
        if not 0.0 <= self.smoothing < 1.0:
            raise ValueError("smoothing must be within [0, 1)")
        if self.min_decibels >= self.max_decibels:
            raise ValueError("min_decibels must be below max_decibels")
        if self.pitch_interval < 0:
            raise ValueError("pitch_interval must be non-negative")
        if self.history_length < 1:
            raise ValueError("history_length must be >= 1")
        if self.mode not in ("spectrum", "spectrogram"):
            raise ValueError(f"Unknown display mode: {self.mode!r}")
        FrequencyAxis.parse(self.axis)
        BandPolicy.parse(self.band_policy)
        return self

    @staticmethod
    def from_dict(raw: Dict[str, Any]) -> "AnalyzerConfig":
        normalized = dict(raw)

        if "pitch_interval_ms" in normalized:
            ms = normalized.pop("pitch_interval_ms")
            normalized.setdefault("pitch_interval", float(ms) / 1000.0)

        for legacy_key, new_key in _ALIASES.items():
            if legacy_key in normalized:
                normalized.setdefault(new_key, normalized.pop(legacy_key))

        known = {f.name for f in dataclasses.fields(AnalyzerConfig)}
        filtered = {k: v for k, v in normalized.items() if k in known}
        return AnalyzerConfig(**filtered)


def default_config_path() -> Path:
    return Path(__file__).with_name(DEFAULT_CONFIG_NAME)


def load_config_dict(path: Optional[Path] = None) -> Dict[str, Any]:
    """Read a JSON configuration file (the packaged defaults when ``path`` is ``None``)."""

    config_path = default_config_path() if path is None else Path(path)
    with config_path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def load_config(path: Optional[Path] = None) -> AnalyzerConfig:
    return AnalyzerConfig.from_dict(load_config_dict(path))


__all__ = [
    "AnalyzerConfig",
    "DEFAULT_CONFIG_NAME",
    "default_config_path",
    "load_config",
    "load_config_dict",
]
