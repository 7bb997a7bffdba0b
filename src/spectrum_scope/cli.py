"""Command-line entrypoint for the spectrum viewer."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any, Callable, Optional

from .audio_sources import AudioSource, DemoSource, FileSource, MicSource, sd
from .config import AnalyzerConfig, load_config_dict
from .mapping import BandPolicy
from .session import AnalysisSession
from .transform import AnalyserTransform

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", type=Path, default=None)
    known, _ = pre.parse_known_args(argv)
    defaults = load_config_dict(known.config)

    parser = argparse.ArgumentParser(
        description="Live spectrum / spectrogram viewer with pitch readout",
        parents=[pre],
    )
    parser.add_argument(
        "--mode",
        choices=["spectrum", "spectrogram"],
        default=defaults.get("mode", "spectrum"),
    )
    parser.add_argument("--bands", type=int, default=int(defaults.get("bands", 64)))
    parser.add_argument(
        "--axis", choices=["log", "linear"], default=defaults.get("axis", "log")
    )
    parser.add_argument(
        "--samplerate", type=int, default=int(defaults.get("sample_rate", 44100))
    )
    parser.add_argument("--fft", type=int, default=int(defaults.get("fft_size", 8192)))
    parser.add_argument("--hop", type=int, default=int(defaults.get("hop", 512)))
    parser.add_argument(
        "--policy",
        choices=[p.value for p in BandPolicy],
        default=defaults.get("band_policy", "sample"),
        help="Band reduction: one bin per band, the fixed frequency-point grid, or log peak-hold.",
    )
    parser.add_argument(
        "--oversample",
        type=int,
        default=int(defaults.get("oversample_bins", 0)),
        help="Resample the raw spectrum onto this many bins before mapping (0 disables).",
    )
    parser.add_argument("--device", type=str, default=None)
    parser.add_argument("--demo", action="store_true")
    parser.add_argument("--file", type=Path, default=None, help="Analyse an audio file.")
    parser.add_argument("--loop", action="store_true", help="Loop the audio file.")
    parser.add_argument(
        "--log-level",
        default=defaults.get("log_level", "INFO"),
        help="Python logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> AnalyzerConfig:
    config_kwargs: dict[str, Any] = dict(load_config_dict(args.config))
    config_kwargs.update(
        {
            "mode": args.mode,
            "bands": args.bands,
            "axis": args.axis,
            "band_policy": args.policy,
            "sample_rate": args.samplerate,
            "fft_size": args.fft,
            "hop": args.hop,
            "oversample_bins": args.oversample,
            "device": args.device,
            "demo": args.demo,
            "input_path": str(args.file) if args.file is not None else None,
            "loop": args.loop,
            "log_level": args.log_level,
        }
    )
    return AnalyzerConfig.from_dict(config_kwargs).validate()


def create_source(config: AnalyzerConfig) -> AudioSource:
    if config.input_path:
        return FileSource(Path(config.input_path), config.hop, loop=config.loop)
    if config.demo or sd is None:
        return DemoSource(config.sample_rate, config.hop)
    try:
        return MicSource(config.sample_rate, config.hop, device=config.device)
    except Exception as exc:  # pragma: no cover - interactive fallback
        logger.warning("Could not initialize microphone input: %s", exc)
        logger.warning(
            "Falling back to demo mode. Use --device to select input or install sounddevice."
        )
        return DemoSource(config.sample_rate, config.hop)


def provider_factory(config: AnalyzerConfig) -> Callable[[], AnalyserTransform]:
    """Deferred provider construction, run by :meth:`AnalysisSession.initialize`."""

    def _factory() -> AnalyserTransform:
        return AnalyserTransform(
            create_source(config),
            config.fft_size,
            smoothing=config.smoothing,
            min_decibels=config.min_decibels,
            max_decibels=config.max_decibels,
        )

    return _factory


def build_session(config: AnalyzerConfig) -> AnalysisSession:
    return AnalysisSession(
        provider_factory(config),
        pitch_interval=config.pitch_interval,
        history_length=config.history_length,
        oversample_bins=config.oversample_bins,
    )


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = build_config(args)

    from .visualizer import SpectrumViewer

    viewer = SpectrumViewer(build_session(config), config)
    viewer.run()


__all__ = [
    "build_config",
    "build_session",
    "create_source",
    "main",
    "parse_args",
    "provider_factory",
]
