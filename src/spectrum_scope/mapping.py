"""Frequency-axis mapping from raw transform bins to display bands.

The raw spectrum handed out by a transform provider has equal-width bins
spanning ``0`` to the Nyquist frequency.  Display code wants something else:
a fixed number of bands spread over the audible 20 Hz - 20 kHz range, either
evenly in Hertz (:attr:`FrequencyAxis.LINEAR`) or evenly in octaves
(:attr:`FrequencyAxis.LOGARITHMIC`).  Low frequencies are badly served by
equal-width bins, so the logarithmic mapping also looks at the neighbouring
bins below 2 kHz and boosts everything under 100 Hz.

All functions here are pure and never fail on missing data: an empty or
``None`` spectrum simply maps to zeros.
"""

from __future__ import annotations

import enum
import math
from typing import Optional, Sequence

import numpy as np

from .utils import BYTE_MAX, clamp_intensity

MIN_DISPLAY_FREQ = 20.0
MAX_DISPLAY_FREQ = 20000.0

REFINE_BELOW_HZ = 2000.0
NEIGHBOUR_WEIGHT = 0.8

BOOST_BELOW_HZ = 100.0
BOOST_AT_MIN = 2.0
BOOST_AT_LIMIT = 1.2

SMOOTH_BELOW_HZ = 1000.0
SMOOTH_MAX_RANGE = 5

DEFAULT_FREQUENCY_POINTS = (
    20, 30, 40, 50, 60, 75, 90, 110, 130, 160, 190, 220, 260, 300, 350, 400,
    450, 500, 550, 600, 650, 700, 800, 900, 1000, 1200, 1400, 1600, 1800,
    2000, 2500, 3000, 3500, 4000, 5000, 6000, 7000, 8000, 9000, 10000, 12000,
    14000, 16000, 20000,
)


class FrequencyAxis(enum.Enum):
    """Spacing of display bands along the frequency axis."""

    LINEAR = "linear"
    LOGARITHMIC = "log"

    @classmethod
    def parse(cls, value: "str | FrequencyAxis") -> "FrequencyAxis":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key in ("linear", "lin"):
            return cls.LINEAR
        if key in ("log", "logarithmic", "log10"):
            return cls.LOGARITHMIC
        raise ValueError(f"Unknown frequency axis: {value!r}")


class BandPolicy(enum.Enum):
    """How raw bins are reduced to display values.

    ``SAMPLE`` reads one bin per band (:func:`map_to_bands`), ``POINTS``
    reads the fixed :data:`DEFAULT_FREQUENCY_POINTS` grid
    (:func:`sample_frequency_points`) and ``PEAK`` keeps the loudest bin of
    each logarithmic band (:func:`aggregate_log_bands`).
    """

    SAMPLE = "sample"
    POINTS = "points"
    PEAK = "peak"

    @classmethod
    def parse(cls, value: "str | BandPolicy") -> "BandPolicy":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"Unknown band policy: {value!r}")


def _is_empty(raw: Optional[Sequence[float]]) -> bool:
    return raw is None or len(raw) == 0


def check_bands(bands: int) -> int:
    """Validate a requested band count; raises ``ValueError`` below 1."""

    bands = int(bands)
    if bands < 1:
        raise ValueError(f"bands must be >= 1, got {bands}")
    return bands


def bin_width(sample_rate: float, bin_count: int) -> float:
    """Width in Hertz of one raw bin when ``bin_count`` bins span the Nyquist range."""

    return (float(sample_rate) / 2.0) / max(int(bin_count), 1)


def band_frequencies(bands: int, axis: FrequencyAxis = FrequencyAxis.LOGARITHMIC) -> np.ndarray:
    """Return the target frequency (Hz) each display band samples.

    Linear bands run from 20 Hz to 20 kHz inclusive; a single band sits on
    20 Hz.  Logarithmic bands sit at the centre of ``bands`` equal slices of
    the ``log10`` range, so none lands exactly on either boundary.
    """

    bands = check_bands(bands)
    axis = FrequencyAxis.parse(axis)
    k = np.arange(bands, dtype=np.float64)

    if axis is FrequencyAxis.LINEAR:
        if bands == 1:
            return np.array([MIN_DISPLAY_FREQ])
        return MIN_DISPLAY_FREQ + (k / (bands - 1)) * (MAX_DISPLAY_FREQ - MIN_DISPLAY_FREQ)

    log_min = math.log10(MIN_DISPLAY_FREQ)
    log_max = math.log10(MAX_DISPLAY_FREQ)
    centre = (k + 0.5) / bands
    return 10.0 ** (log_min + centre * (log_max - log_min))


def frequency_to_bin(freq: float, width: float, bin_count: int) -> int:
    """Nearest raw bin for ``freq``, clamped to ``[0, bin_count - 1]``."""

    if bin_count <= 0:
        raise ValueError("bin_count must be positive")
    index = int(math.floor(float(freq) / width + 0.5)) if width > 0 else 0
    return min(max(index, 0), bin_count - 1)


def source_bins(
    bin_count: int,
    sample_rate: float,
    bands: int,
    axis: FrequencyAxis = FrequencyAxis.LOGARITHMIC,
) -> np.ndarray:
    """Raw bin index read by every display band (monotonic non-decreasing)."""

    width = bin_width(sample_rate, bin_count)
    freqs = band_frequencies(bands, axis)
    # np.round rounds half to even; keep the half-up rule of frequency_to_bin.
    index = np.floor(freqs / width + 0.5).astype(np.int64)
    return np.clip(index, 0, int(bin_count) - 1)


def low_frequency_boost(freq: float) -> float:
    """Amplitude multiplier applied to bands at or below 100 Hz.

    The factor falls linearly from 2.0 at 20 Hz to 1.2 at 100 Hz and is
    held at 2.0 below 20 Hz.  Frequencies above 100 Hz are left untouched.
    """

    freq = float(freq)
    if freq > BOOST_BELOW_HZ:
        return 1.0
    span = BOOST_BELOW_HZ - MIN_DISPLAY_FREQ
    factor = BOOST_AT_MIN - (BOOST_AT_MIN - BOOST_AT_LIMIT) * (freq - MIN_DISPLAY_FREQ) / span
    return float(min(max(factor, BOOST_AT_LIMIT), BOOST_AT_MIN))


def map_to_bands(
    raw: Optional[Sequence[float]],
    sample_rate: float,
    bands: int,
    axis: FrequencyAxis = FrequencyAxis.LOGARITHMIC,
    *,
    refine: Optional[bool] = None,
) -> np.ndarray:
    """Map a raw magnitude spectrum onto ``bands`` display bands.

    Parameters
    ----------
    raw:
        Byte magnitudes, one per equal-width bin from 0 Hz to Nyquist.  An
        empty or ``None`` spectrum yields ``bands`` zeros.
    sample_rate:
        Sample rate of the signal that produced ``raw``.
    bands:
        Number of output bands; must be at least 1.
    axis:
        Linear or logarithmic spacing between 20 Hz and 20 kHz.
    refine:
        Apply the low-frequency neighbour/boost refinement.  ``None`` enables
        it on the logarithmic axis only.
    """

    bands = check_bands(bands)
    axis = FrequencyAxis.parse(axis)
    if _is_empty(raw):
        return np.zeros(bands, dtype=np.float64)

    values = np.asarray(raw, dtype=np.float64)
    count = values.size
    if refine is None:
        refine = axis is FrequencyAxis.LOGARITHMIC

    freqs = band_frequencies(bands, axis)
    index = source_bins(count, sample_rate, bands, axis)
    result = values[index]

    if refine:
        prev_vals = values[np.maximum(index - 1, 0)] * NEIGHBOUR_WEIGHT
        next_vals = values[np.minimum(index + 1, count - 1)] * NEIGHBOUR_WEIGHT
        low = freqs < REFINE_BELOW_HZ
        result = np.where(low, np.maximum.reduce([result, prev_vals, next_vals]), result)
        boost = np.array([low_frequency_boost(f) for f in freqs])
        result = result * boost

    return clamp_intensity(result)


def oversample_spectrum(raw: Optional[Sequence[float]], bin_count: int) -> np.ndarray:
    """Resample ``raw`` onto ``bin_count`` equal-width bins by linear interpolation.

    Both spectra cover 0 Hz to Nyquist, so a fine-grained synthetic spectrum
    can be fed to :func:`map_to_bands` with the original sample rate.
    """

    bin_count = int(bin_count)
    if bin_count < 1:
        raise ValueError("bin_count must be >= 1")
    if _is_empty(raw):
        return np.zeros(0, dtype=np.float64)

    values = np.asarray(raw, dtype=np.float64)
    src = np.arange(values.size, dtype=np.float64) / values.size
    dst = np.arange(bin_count, dtype=np.float64) / bin_count
    return np.interp(dst, src, values)


def sample_frequency_points(
    raw: Optional[Sequence[float]],
    sample_rate: float,
    frequencies: Sequence[float] = DEFAULT_FREQUENCY_POINTS,
) -> np.ndarray:
    """Read the spectrum at arbitrary frequencies.

    Each point is linearly interpolated between its two surrounding bins.
    Below 1 kHz the value is replaced by a distance-weighted average over a
    neighbourhood that widens towards 0 Hz, and points strictly below 100 Hz get
    :func:`low_frequency_boost`.  Points beyond either end of the spectrum
    take the first or last bin.
    """

    freqs = np.asarray(frequencies, dtype=np.float64)
    if _is_empty(raw):
        return np.zeros(freqs.size, dtype=np.float64)

    values = np.asarray(raw, dtype=np.float64)
    count = values.size
    width = bin_width(sample_rate, count)
    result = np.zeros(freqs.size, dtype=np.float64)

    for i, target in enumerate(freqs):
        exact = target / width
        lower = int(math.floor(exact))
        upper = int(math.ceil(exact))
        if lower < 0:
            result[i] = values[0]
            continue
        if upper >= count:
            result[i] = values[count - 1]
            continue

        fraction = exact - lower
        value = values[lower] * (1.0 - fraction) + values[upper] * fraction

        if target < SMOOTH_BELOW_HZ:
            total = value
            weight = 1.0
            reach = int(math.ceil(SMOOTH_MAX_RANGE * (1.0 - target / SMOOTH_BELOW_HZ)))
            for j in range(1, reach + 1):
                w = (reach - j + 1) / (reach + 1)
                total += values[max(0, lower - j)] * w + values[min(count - 1, upper + j)] * w
                weight += 2.0 * w
            value = total / weight

        if target < BOOST_BELOW_HZ:
            value = min(BYTE_MAX, value * low_frequency_boost(target))

        result[i] = value

    return clamp_intensity(result)


def aggregate_log_bands(
    raw: Optional[Sequence[float]], sample_rate: float, bands: int
) -> np.ndarray:
    """Peak-hold every raw bin into its logarithmic 20 Hz - 20 kHz band.

    Unlike :func:`map_to_bands`, which samples one bin per band, this keeps
    the loudest bin that falls inside each band.  Bands no bin lands in stay
    at zero.
    """

    bands = check_bands(bands)
    result = np.zeros(bands, dtype=np.float64)
    if _is_empty(raw):
        return result

    values = np.asarray(raw, dtype=np.float64)
    freqs = np.arange(values.size, dtype=np.float64) * bin_width(sample_rate, values.size)
    mask = (freqs >= MIN_DISPLAY_FREQ) & (freqs < MAX_DISPLAY_FREQ)
    if not np.any(mask):
        return result

    position = np.log10(freqs[mask] / MIN_DISPLAY_FREQ) / math.log10(
        MAX_DISPLAY_FREQ / MIN_DISPLAY_FREQ
    )
    band_index = np.minimum(np.floor(bands * position).astype(np.int64), bands - 1)
    np.maximum.at(result, band_index, values[mask])
    return clamp_intensity(result)


def display_frequencies(
    bands: int,
    axis: FrequencyAxis = FrequencyAxis.LOGARITHMIC,
    policy: BandPolicy = BandPolicy.SAMPLE,
) -> np.ndarray:
    """Frequency (Hz) of every value :func:`map_spectrum` returns for ``policy``.

    Peak-hold bands are always logarithmic and the point grid ignores
    ``bands`` and ``axis`` altogether.
    """

    bands = check_bands(bands)
    policy = BandPolicy.parse(policy)
    if policy is BandPolicy.POINTS:
        return np.asarray(DEFAULT_FREQUENCY_POINTS, dtype=np.float64)
    if policy is BandPolicy.PEAK:
        return band_frequencies(bands, FrequencyAxis.LOGARITHMIC)
    return band_frequencies(bands, axis)


def map_spectrum(
    raw: Optional[Sequence[float]],
    sample_rate: float,
    bands: int,
    axis: FrequencyAxis = FrequencyAxis.LOGARITHMIC,
    policy: BandPolicy = BandPolicy.SAMPLE,
    *,
    refine: Optional[bool] = None,
) -> np.ndarray:
    """Reduce ``raw`` to display values with the chosen :class:`BandPolicy`."""

    bands = check_bands(bands)
    policy = BandPolicy.parse(policy)
    if policy is BandPolicy.POINTS:
        return sample_frequency_points(raw, sample_rate)
    if policy is BandPolicy.PEAK:
        return aggregate_log_bands(raw, sample_rate, bands)
    return map_to_bands(raw, sample_rate, bands, axis, refine=refine)


__all__ = [
    "BandPolicy",
    "DEFAULT_FREQUENCY_POINTS",
    "FrequencyAxis",
    "MAX_DISPLAY_FREQ",
    "MIN_DISPLAY_FREQ",
    "aggregate_log_bands",
    "band_frequencies",
    "bin_width",
    "check_bands",
    "display_frequencies",
    "frequency_to_bin",
    "low_frequency_boost",
    "map_spectrum",
    "map_to_bands",
    "oversample_spectrum",
    "sample_frequency_points",
    "source_bins",
]
