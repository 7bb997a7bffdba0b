"""Spectrum mapping, pitch estimation and a live spectrum viewer."""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

__all__ = [
    "AnalysisSession",
    "AnalyserTransform",
    "AnalyzerConfig",
    "ArraySource",
    "AudioSource",
    "BandPolicy",
    "DemoSource",
    "FileSource",
    "FrequencyAxis",
    "MicSource",
    "SessionState",
    "SpectrogramHistory",
    "SpectrumViewer",
    "TransformSizeError",
    "band_frequencies",
    "detect_pitch",
    "estimate_pitch",
    "main",
    "map_spectrum",
    "map_to_bands",
]

_EXPORT_MAP = {
    "AnalysisSession": ("spectrum_scope.session", "AnalysisSession"),
    "SessionState": ("spectrum_scope.session", "SessionState"),
    "SpectrogramHistory": ("spectrum_scope.session", "SpectrogramHistory"),
    "AnalyserTransform": ("spectrum_scope.transform", "AnalyserTransform"),
    "TransformSizeError": ("spectrum_scope.transform", "TransformSizeError"),
    "AnalyzerConfig": ("spectrum_scope.config", "AnalyzerConfig"),
    "ArraySource": ("spectrum_scope.audio_sources", "ArraySource"),
    "AudioSource": ("spectrum_scope.audio_sources", "AudioSource"),
    "DemoSource": ("spectrum_scope.audio_sources", "DemoSource"),
    "FileSource": ("spectrum_scope.audio_sources", "FileSource"),
    "MicSource": ("spectrum_scope.audio_sources", "MicSource"),
    "BandPolicy": ("spectrum_scope.mapping", "BandPolicy"),
    "FrequencyAxis": ("spectrum_scope.mapping", "FrequencyAxis"),
    "band_frequencies": ("spectrum_scope.mapping", "band_frequencies"),
    "map_spectrum": ("spectrum_scope.mapping", "map_spectrum"),
    "map_to_bands": ("spectrum_scope.mapping", "map_to_bands"),
    "detect_pitch": ("spectrum_scope.pitch", "detect_pitch"),
    "estimate_pitch": ("spectrum_scope.pitch", "estimate_pitch"),
    "SpectrumViewer": ("spectrum_scope.visualizer", "SpectrumViewer"),
    "main": ("spectrum_scope.cli", "main"),
}


if TYPE_CHECKING:  # pragma: no cover - only for type checkers
    from spectrum_scope.audio_sources import (
        ArraySource,
        AudioSource,
        DemoSource,
        FileSource,
        MicSource,
    )
    from spectrum_scope.cli import main
    from spectrum_scope.config import AnalyzerConfig
    from spectrum_scope.mapping import (
        BandPolicy,
        FrequencyAxis,
        band_frequencies,
        map_spectrum,
        map_to_bands,
    )
    from spectrum_scope.pitch import detect_pitch, estimate_pitch
    from spectrum_scope.session import AnalysisSession, SessionState, SpectrogramHistory
    from spectrum_scope.transform import AnalyserTransform, TransformSizeError
    from spectrum_scope.visualizer import SpectrumViewer


def __getattr__(name: str) -> Any:
    """Lazily import heavy submodules on demand."""

    if name in _EXPORT_MAP:
        module_name, attribute = _EXPORT_MAP[name]
        module = import_module(module_name)
        value = getattr(module, attribute)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(__all__))
