"""Caller-owned analysis session wrapping a transform provider.

The session owns the provider's lifetime (construct, initialize, start/stop,
dispose) and gates every data accessor on that lifetime.  Nothing here ever
raises to the caller for missing data or a failed provider: accessors fall
back to ``None``/zeros/``0.0`` and lifecycle calls report ``False``.
"""

from __future__ import annotations

import enum
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional, Tuple

import numpy as np

from .mapping import BandPolicy, FrequencyAxis, check_bands, map_spectrum, oversample_spectrum
from .pitch import estimate_pitch
from .transform import DEFAULT_SAMPLE_RATE, TransformProvider, TransformSizeError

logger = logging.getLogger(__name__)

DEFAULT_PITCH_INTERVAL = 0.1
DEFAULT_HISTORY_LENGTH = 50


class SessionState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    ACTIVE = "active"
    IDLE = "idle"
    DISPOSED = "disposed"


@dataclass(frozen=True)
class SessionStatus:
    initialized: bool
    active: bool


@dataclass(frozen=True)
class AnalysisFrame:
    """Result of one frame-clock poll."""

    bands: np.ndarray
    pitch: float
    pitch_updated: bool
    timestamp: float
    clarity: float = 0.0


class SpectrogramHistory:
    """Fixed-length window of the most recent display-band snapshots."""

    def __init__(self, length: int = DEFAULT_HISTORY_LENGTH) -> None:
        if length < 1:
            raise ValueError("history length must be >= 1")
        self.length = int(length)
        self._rows: Deque[np.ndarray] = deque(maxlen=self.length)
        self._bands: Optional[int] = None

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def bands(self) -> Optional[int]:
        return self._bands

    def push(self, bands: np.ndarray) -> None:
        row = np.array(bands, dtype=np.float64)
        if self._bands is not None and row.size != self._bands:
            self._rows.clear()
        self._bands = row.size
        self._rows.append(row)

    def clear(self) -> None:
        self._rows.clear()
        self._bands = None

    def snapshot(self) -> np.ndarray:
        """Return a ``(length, bands)`` array, oldest row first, zero-padded at the top."""

        width = self._bands or 0
        out = np.zeros((self.length, width), dtype=np.float64)
        if self._rows:
            out[self.length - len(self._rows) :] = np.vstack(self._rows)
        return out


class AnalysisSession:
    """Lifecycle and activity gating around a :class:`TransformProvider`.

    ``provider_factory`` is called by :meth:`initialize`, so acquiring the
    device (or decoding a file) happens there and not at construction.
    """

    def __init__(
        self,
        provider_factory: Callable[[], TransformProvider],
        *,
        pitch_interval: float = DEFAULT_PITCH_INTERVAL,
        history_length: int = DEFAULT_HISTORY_LENGTH,
        oversample_bins: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = provider_factory
        self._provider: Optional[TransformProvider] = None
        self.state = SessionState.UNINITIALIZED
        self.pitch_interval = float(pitch_interval)
        self.oversample_bins = int(oversample_bins)
        self.clock = clock
        self.history = SpectrogramHistory(history_length)
        self.last_error: Optional[BaseException] = None
        self._last_pitch = 0.0
        self._last_clarity = 0.0
        self._last_pitch_time: Optional[float] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def initialize(self) -> bool:
        if self.state is SessionState.DISPOSED:
            return False
        if self.state is not SessionState.UNINITIALIZED:
            return True
        provider = None
        try:
            provider = self._factory()
            provider.open()
            # Provider starts paused; start() resumes it.
            provider.suspend()
        except Exception as exc:
            self.last_error = exc
            logger.error("Failed to initialize audio analysis: %s", exc)
            if provider is not None:
                self._close_quietly(provider)
            return False
        self._provider = provider
        self.last_error = None
        self.state = SessionState.INITIALIZED
        return True

    def start(self) -> bool:
        if self.state is SessionState.ACTIVE:
            return True
        if self.state not in (SessionState.INITIALIZED, SessionState.IDLE):
            logger.warning("Cannot start analysis session in state %s", self.state.value)
            return False
        if self._provider is None:
            logger.warning("Cannot start analysis session without a provider")
            return False
        self._provider.resume()
        self.state = SessionState.ACTIVE
        return True

    def stop(self) -> None:
        if self.state is not SessionState.ACTIVE:
            return
        if self._provider is not None:
            self._provider.suspend()
        self.state = SessionState.IDLE

    def dispose(self) -> None:
        if self.state is SessionState.DISPOSED:
            return
        if self._provider is not None:
            self._close_quietly(self._provider)
        self._provider = None
        self.history.clear()
        self._last_pitch = 0.0
        self._last_clarity = 0.0
        self._last_pitch_time = None
        self.state = SessionState.DISPOSED

    @staticmethod
    def _close_quietly(provider: TransformProvider) -> None:
        try:
            provider.close()
        except Exception as exc:
            logger.warning("Error while releasing audio provider: %s", exc)

    def __enter__(self) -> "AnalysisSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    # ------------------------------------------------------------------
    # Status & configuration
    # ------------------------------------------------------------------
    def status(self) -> SessionStatus:
        return SessionStatus(
            initialized=self.state
            in (SessionState.INITIALIZED, SessionState.ACTIVE, SessionState.IDLE),
            active=self.state is SessionState.ACTIVE,
        )

    @property
    def active(self) -> bool:
        return self.state is SessionState.ACTIVE

    @property
    def sample_rate(self) -> int:
        if self._provider is None:
            return DEFAULT_SAMPLE_RATE
        return int(self._provider.sample_rate)

    @property
    def transform_size(self) -> int:
        if self._provider is None:
            return 0
        return int(self._provider.transform_size)

    def set_transform_size(self, size: int) -> bool:
        """Change the transform size; ``False`` keeps the previous configuration."""

        if self._provider is None:
            return False
        try:
            self._provider.set_transform_size(size)
        except TransformSizeError as exc:
            self.last_error = exc
            logger.warning("Rejected transform size change: %s", exc)
            return False
        self.history.clear()
        return True

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------
    def get_raw_spectrum(self) -> Optional[np.ndarray]:
        if not self.active or self._provider is None:
            return None
        return self._provider.get_raw_spectrum()

    def get_raw_waveform(self) -> Optional[np.ndarray]:
        if not self.active or self._provider is None:
            return None
        return self._provider.get_raw_waveform()

    def map_to_bands(
        self,
        bands: int,
        axis: FrequencyAxis = FrequencyAxis.LOGARITHMIC,
        *,
        refine: Optional[bool] = None,
        policy: BandPolicy = BandPolicy.SAMPLE,
    ) -> np.ndarray:
        """Current display values; zeros (of the policy's length) while inactive.

        ``bands`` is validated in every state, so a bad count raises
        ``ValueError`` whether or not audio is flowing.
        """

        bands = check_bands(bands)
        policy = BandPolicy.parse(policy)
        raw = self.get_raw_spectrum()
        if (
            policy is BandPolicy.SAMPLE
            and raw is not None
            and raw.size
            and self.oversample_bins > raw.size
        ):
            raw = oversample_spectrum(raw, self.oversample_bins)
        return map_spectrum(raw, self.sample_rate, bands, axis, policy, refine=refine)

    def detect_pitch(self) -> float:
        return self.estimate_pitch()[0]

    def estimate_pitch(self) -> Tuple[float, float]:
        """``(frequency, clarity)`` of the current waveform, ``(0.0, 0.0)`` when unavailable."""

        waveform = self.get_raw_waveform()
        if waveform is None:
            return 0.0, 0.0
        return estimate_pitch(waveform, self.sample_rate)

    @property
    def last_pitch(self) -> float:
        return self._last_pitch

    @property
    def last_clarity(self) -> float:
        return self._last_clarity

    def poll(
        self,
        bands: int,
        axis: FrequencyAxis = FrequencyAxis.LOGARITHMIC,
        *,
        policy: BandPolicy = BandPolicy.SAMPLE,
        now: Optional[float] = None,
    ) -> AnalysisFrame:
        """Run one frame: map bands, record history, refresh pitch when due."""

        now = self.clock() if now is None else now
        values = self.map_to_bands(bands, axis, policy=policy)
        if not self.active:
            return AnalysisFrame(
                bands=values,
                pitch=self._last_pitch,
                pitch_updated=False,
                timestamp=now,
                clarity=self._last_clarity,
            )

        self.history.push(values)

        updated = False
        due = self._last_pitch_time is None or (now - self._last_pitch_time) >= self.pitch_interval
        if due:
            pitch, clarity = self.estimate_pitch()
            if pitch > 0:
                self._last_pitch = pitch
                self._last_clarity = clarity
                updated = True
            self._last_pitch_time = now

        return AnalysisFrame(
            bands=values,
            pitch=self._last_pitch,
            pitch_updated=updated,
            timestamp=now,
            clarity=self._last_clarity,
        )


__all__ = [
    "AnalysisFrame",
    "AnalysisSession",
    "SessionState",
    "SessionStatus",
    "SpectrogramHistory",
]
