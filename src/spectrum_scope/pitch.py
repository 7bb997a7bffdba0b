"""Autocorrelation pitch estimation on byte waveforms."""

from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import numpy as np

from .utils import WAVEFORM_CENTER

MAX_PITCH_HZ = 1000.0
A4_HZ = 440.0
NOTE_NAMES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")


def _centred(waveform: Optional[Sequence[float]]) -> np.ndarray:
    if waveform is None or len(waveform) == 0:
        return np.zeros(0, dtype=np.float64)
    return np.asarray(waveform, dtype=np.float64) - WAVEFORM_CENTER


def autocorrelation(waveform: Optional[Sequence[float]]) -> np.ndarray:
    """Raw autocorrelation of a byte waveform for lags ``0 .. N-1``.

    ``corr[lag] = sum((x[i] - 128) * (x[i + lag] - 128))`` over the overlap,
    so the sum shrinks with the lag as fewer samples take part.
    """

    x = _centred(waveform)
    if x.size == 0:
        return x
    full = np.correlate(x, x, mode="full")
    return full[x.size - 1 :]


def normalized_autocorrelation(waveform: Optional[Sequence[float]]) -> np.ndarray:
    """Autocorrelation divided by its zero-lag energy; zeros for silence."""

    corr = autocorrelation(waveform)
    if corr.size == 0 or corr[0] <= 0:
        return np.zeros_like(corr)
    return corr / corr[0]


def min_period(sample_rate: float, max_frequency: float = MAX_PITCH_HZ) -> int:
    """Smallest lag searched, in samples; shorter lags would exceed ``max_frequency``."""

    return int(math.floor(float(sample_rate) / float(max_frequency)))


def detect_pitch(
    waveform: Optional[Sequence[float]],
    sample_rate: float,
    *,
    max_frequency: float = MAX_PITCH_HZ,
) -> float:
    """Estimate the fundamental frequency of ``waveform`` in Hertz.

    The lag with the largest autocorrelation at or beyond
    :func:`min_period` wins and the estimate is ``sample_rate / lag``.
    Returns ``0.0`` when nothing is found: empty input, silence, or a buffer
    too short to contain the minimum period.
    """

    return estimate_pitch(waveform, sample_rate, max_frequency=max_frequency)[0]


def estimate_pitch(
    waveform: Optional[Sequence[float]],
    sample_rate: float,
    *,
    max_frequency: float = MAX_PITCH_HZ,
) -> Tuple[float, float]:
    """Return ``(frequency, clarity)`` for ``waveform``.

    Clarity is the normalised autocorrelation at the winning lag, 1.0 for a
    perfectly periodic buffer and close to 0 for noise.  Both are ``0.0``
    when no pitch is found.  Scaling by the zero-lag energy does not move
    the maximum, so the frequency always equals :func:`detect_pitch`.
    """

    corr = normalized_autocorrelation(waveform)
    start = max(min_period(sample_rate, max_frequency), 1)
    if corr.size <= start:
        return 0.0, 0.0

    window = corr[start:]
    offset = int(np.argmax(window))
    if window[offset] <= 0.0:
        return 0.0, 0.0

    max_lag = start + offset
    return float(sample_rate) / max_lag, float(window[offset])


def frequency_to_note(freq: float) -> Tuple[Optional[str], Optional[float]]:
    """Nearest equal-tempered note name and its deviation in cents.

    Cents are positive when ``freq`` is sharp.  Non-positive frequencies
    give ``(None, None)``.
    """

    if not freq or freq <= 0 or not math.isfinite(freq):
        return None, None

    semitones = 12.0 * math.log2(freq / A4_HZ)
    nearest = int(round(semitones))
    cents = 100.0 * (semitones - nearest)
    midi = 69 + nearest
    name = f"{NOTE_NAMES[midi % 12]}{midi // 12 - 1}"
    return name, cents


__all__ = [
    "MAX_PITCH_HZ",
    "autocorrelation",
    "detect_pitch",
    "estimate_pitch",
    "frequency_to_note",
    "min_period",
    "normalized_autocorrelation",
]
