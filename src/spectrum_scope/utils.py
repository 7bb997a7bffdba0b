"""Utility helpers shared by the transform provider and the mapper."""

from __future__ import annotations

import numpy as np

EPS = 1e-12
BYTE_MAX = 255.0
WAVEFORM_CENTER = 128


def dbfs(x: np.ndarray) -> np.ndarray:
    """Convert a linear magnitude array into dBFS."""
    return 20.0 * np.log10(np.maximum(x, EPS))


def hann_window(n: int) -> np.ndarray:
    """Return a Hann window of length ``n`` as ``float32``."""
    return (0.5 - 0.5 * np.cos(2.0 * np.pi * np.arange(n) / n)).astype(np.float32)


def is_power_of_two(n: int) -> bool:
    """Return ``True`` when ``n`` is a positive integral power of two."""
    return isinstance(n, (int, np.integer)) and n > 0 and (int(n) & (int(n) - 1)) == 0


def clamp_intensity(values: np.ndarray) -> np.ndarray:
    """Clip display intensities into the byte range ``[0, 255]``."""
    return np.clip(np.asarray(values, dtype=np.float64), 0.0, BYTE_MAX)


def db_to_bytes(
    db: np.ndarray, min_decibels: float, max_decibels: float
) -> np.ndarray:
    """Scale a dB array linearly from ``[min_decibels, max_decibels]`` to bytes."""

    span = max(float(max_decibels) - float(min_decibels), EPS)
    scaled = BYTE_MAX * (np.asarray(db, dtype=np.float64) - min_decibels) / span
    return np.clip(np.floor(scaled), 0, BYTE_MAX).astype(np.uint8)


def samples_to_bytes(samples: np.ndarray) -> np.ndarray:
    """Map float samples in ``[-1, 1]`` onto unsigned bytes centred at 128."""

    scaled = WAVEFORM_CENTER * (1.0 + np.asarray(samples, dtype=np.float64))
    return np.clip(np.floor(scaled), 0, BYTE_MAX).astype(np.uint8)


def read_only(array: np.ndarray) -> np.ndarray:
    """Return ``array`` with its ``writeable`` flag cleared."""
    array.flags.writeable = False
    return array


__all__ = [
    "BYTE_MAX",
    "EPS",
    "WAVEFORM_CENTER",
    "clamp_intensity",
    "db_to_bytes",
    "dbfs",
    "hann_window",
    "is_power_of_two",
    "read_only",
    "samples_to_bytes",
]
