"""Transform provider turning an audio source into byte spectra and waveforms."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import numpy as np

from .audio_sources import AudioSource
from .utils import db_to_bytes, dbfs, hann_window, is_power_of_two, read_only, samples_to_bytes

logger = logging.getLogger(__name__)

MIN_TRANSFORM_SIZE = 32
MAX_TRANSFORM_SIZE = 32768
DEFAULT_SAMPLE_RATE = 44100
MAX_READS_PER_PULL = 64


class TransformSizeError(ValueError):
    """Raised when a transform size is not a power of two in the supported range."""


class ProviderUnavailableError(RuntimeError):
    """Raised when the underlying audio source cannot be opened."""


@dataclass(frozen=True)
class ProviderStatus:
    initialized: bool
    active: bool


class TransformProvider(Protocol):
    """Interface the analysis session expects from a transform provider."""

    sample_rate: int
    transform_size: int

    def open(self) -> None: ...

    def close(self) -> None: ...

    def resume(self) -> None: ...

    def suspend(self) -> None: ...

    def get_raw_spectrum(self) -> Optional[np.ndarray]: ...

    def get_raw_waveform(self) -> Optional[np.ndarray]: ...

    def set_transform_size(self, size: int) -> None: ...

    def status(self) -> ProviderStatus: ...


def validate_transform_size(size: int) -> int:
    """Return ``size`` as an ``int`` or raise :class:`TransformSizeError`."""

    if not is_power_of_two(size) or not (MIN_TRANSFORM_SIZE <= int(size) <= MAX_TRANSFORM_SIZE):
        raise TransformSizeError(
            f"Transform size must be a power of two between {MIN_TRANSFORM_SIZE} "
            f"and {MAX_TRANSFORM_SIZE}, got {size!r}"
        )
    return int(size)


class AnalyserTransform:
    """Windowed FFT over the most recent ``transform_size`` samples of a source.

    Each spectrum pull drains the source, transforms the newest block,
    smooths the magnitudes against the previous pull and scales the result
    from ``[min_decibels, max_decibels]`` onto bytes.  Waveform pulls return
    the newest ``transform_size // 2`` samples as bytes centred on 128.

    Both accessors hand out fresh read-only arrays and return ``None``
    before :meth:`open`, after :meth:`close` and while suspended.
    """

    def __init__(
        self,
        source: AudioSource,
        transform_size: int = 8192,
        *,
        smoothing: float = 0.8,
        min_decibels: float = -100.0,
        max_decibels: float = -30.0,
    ) -> None:
        if not 0.0 <= smoothing < 1.0:
            raise ValueError("smoothing must be within [0, 1)")
        if min_decibels >= max_decibels:
            raise ValueError("min_decibels must be below max_decibels")

        self.source = source
        self.sample_rate = int(getattr(source, "samplerate", DEFAULT_SAMPLE_RATE))
        self.transform_size = validate_transform_size(transform_size)
        self.smoothing = float(smoothing)
        self.min_decibels = float(min_decibels)
        self.max_decibels = float(max_decibels)

        self._opened = False
        self._running = False
        self._allocate(keep_samples=False)

    @property
    def bin_count(self) -> int:
        return self.transform_size // 2

    def _allocate(self, keep_samples: bool) -> None:
        n = self.transform_size
        ring = np.zeros(n, dtype=np.float32)
        if keep_samples and getattr(self, "_ring", None) is not None:
            tail = self._ring[-n:]
            ring[-tail.size :] = tail
        self._ring = ring
        self._window = hann_window(n)
        self._smoothed = np.zeros(n // 2, dtype=np.float64)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open(self) -> None:
        if self._opened:
            return
        self._allocate(keep_samples=False)
        try:
            self.source.start()
        except Exception as exc:
            raise ProviderUnavailableError(f"Could not start audio source: {exc}") from exc
        self._opened = True
        self._running = True
        logger.debug(
            "Transform provider opened (%d Hz, transform size %d)",
            self.sample_rate,
            self.transform_size,
        )

    def close(self) -> None:
        if not self._opened:
            return
        self.source.stop()
        self._opened = False
        self._running = False
        self._ring = np.zeros(0, dtype=np.float32)
        self._smoothed = np.zeros(0, dtype=np.float64)

    def resume(self) -> None:
        if not self._opened or self._running:
            return
        self.source.resume()
        self._running = True

    def suspend(self) -> None:
        if not self._running:
            return
        # Paced sources stop their clock so no audio is skipped while paused.
        self.source.pause()
        self._running = False

    def status(self) -> ProviderStatus:
        return ProviderStatus(initialized=self._opened, active=self._opened and self._running)

    def set_transform_size(self, size: int) -> None:
        size = validate_transform_size(size)
        if size == self.transform_size:
            return
        self.transform_size = size
        self._allocate(keep_samples=self._opened)

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------
    def _pump(self) -> None:
        chunks = []
        for _ in range(MAX_READS_PER_PULL):
            chunk = self.source.read()
            if chunk.size == 0:
                break
            chunks.append(np.asarray(chunk, dtype=np.float32))
        if not chunks:
            return
        fresh = np.concatenate(chunks)
        n = self._ring.size
        if fresh.size >= n:
            self._ring[:] = fresh[-n:]
        else:
            self._ring = np.roll(self._ring, -fresh.size)
            self._ring[-fresh.size :] = fresh

    def _available(self) -> bool:
        return self._opened and self._running

    def get_raw_spectrum(self) -> Optional[np.ndarray]:
        if not self._available():
            return None
        self._pump()
        spec = np.fft.rfft(self._ring * self._window, n=self.transform_size)
        mag = np.abs(spec[: self.bin_count]) / self.transform_size
        self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * mag
        return read_only(db_to_bytes(dbfs(self._smoothed), self.min_decibels, self.max_decibels))

    def get_raw_waveform(self) -> Optional[np.ndarray]:
        if not self._available():
            return None
        self._pump()
        return read_only(samples_to_bytes(self._ring[-self.bin_count :]))


__all__ = [
    "AnalyserTransform",
    "DEFAULT_SAMPLE_RATE",
    "ProviderStatus",
    "ProviderUnavailableError",
    "TransformProvider",
    "TransformSizeError",
    "validate_transform_size",
]
