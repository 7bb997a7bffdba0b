"""Tests for the byte-spectrum transform provider and audio sources."""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from spectrum_scope.audio_sources import ArraySource, AudioSource, DemoSource
from spectrum_scope.transform import (
    AnalyserTransform,
    ProviderUnavailableError,
    TransformSizeError,
    validate_transform_size,
)

SR = 44100


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class BrokenSource(AudioSource):
    samplerate = SR

    def start(self) -> None:
        raise OSError("permission denied")

    def read(self) -> np.ndarray:
        return np.zeros(0, dtype=np.float32)

    def stop(self) -> None:
        pass


def _sine_source(freq: float = 1000.0, seconds: float = 1.0) -> ArraySource:
    t = np.arange(int(SR * seconds)) / SR
    return ArraySource(0.5 * np.sin(2 * np.pi * freq * t), SR, 512)


def test_unavailable_before_open():
    provider = AnalyserTransform(_sine_source(), 2048)
    assert provider.get_raw_spectrum() is None
    assert provider.get_raw_waveform() is None
    assert provider.status().initialized is False


def test_spectrum_snapshot_shape_and_peak():
    provider = AnalyserTransform(_sine_source(1000.0), 2048)
    provider.open()

    spectrum = provider.get_raw_spectrum()

    assert spectrum.shape == (1024,)
    assert spectrum.dtype == np.uint8
    assert not spectrum.flags.writeable
    peak = int(np.argmax(spectrum))
    assert abs(peak - 1000.0 / (SR / 2048)) <= 1.5


def test_snapshots_are_independent():
    provider = AnalyserTransform(_sine_source(), 2048)
    provider.open()
    first = provider.get_raw_spectrum()
    second = provider.get_raw_spectrum()
    assert first is not second
    # Smoothing converges towards the steady-state magnitude.
    assert int(second.max()) >= int(first.max())


def test_waveform_bytes_centred():
    provider = AnalyserTransform(_sine_source(), 2048)
    provider.open()

    waveform = provider.get_raw_waveform()

    assert waveform.shape == (1024,)
    assert waveform.dtype == np.uint8
    assert 60 <= int(waveform.min()) < 128 < int(waveform.max()) <= 192
    assert abs(float(waveform.mean()) - 128) < 4


def test_suspend_and_close_gate_access():
    provider = AnalyserTransform(_sine_source(), 2048)
    provider.open()
    provider.suspend()
    assert provider.get_raw_spectrum() is None
    assert provider.status().active is False

    provider.resume()
    assert provider.get_raw_spectrum() is not None

    provider.close()
    assert provider.get_raw_waveform() is None
    assert provider.status().initialized is False


@pytest.mark.parametrize("size", [4095, 0, -8, 16, 65536, 3.5])
def test_invalid_transform_size_is_rejected(size):
    provider = AnalyserTransform(_sine_source(), 2048)
    with pytest.raises(TransformSizeError):
        provider.set_transform_size(size)
    assert provider.transform_size == 2048


def test_transform_size_change_reallocates():
    provider = AnalyserTransform(_sine_source(), 2048)
    provider.open()
    provider.set_transform_size(1024)
    assert provider.transform_size == 1024
    assert provider.get_raw_spectrum().shape == (512,)
    assert provider.get_raw_waveform().shape == (512,)


def test_validate_transform_size():
    assert validate_transform_size(32768) == 32768
    with pytest.raises(ValueError):
        validate_transform_size(1000)


def test_open_failure_raises_provider_error():
    provider = AnalyserTransform(BrokenSource(), 2048)
    with pytest.raises(ProviderUnavailableError):
        provider.open()


def test_invalid_decibel_range():
    with pytest.raises(ValueError):
        AnalyserTransform(_sine_source(), 2048, min_decibels=-30, max_decibels=-30)


def test_demo_source_is_paced_by_clock():
    clock = FakeClock()
    source = DemoSource(8000, 256, clock=clock)
    source.start()

    assert source.read().size == 0
    clock.now = 0.01
    assert source.read().size == 80
    clock.now = 1.0
    assert source.read().size == 256


def test_array_source_serves_blocks_until_exhausted():
    source = ArraySource(np.arange(1000, dtype=np.float32), 8000, 400)
    source.start()
    sizes = [source.read().size for _ in range(4)]
    assert sizes == [400, 400, 200, 0]
    assert source.exhausted


def test_array_source_loops():
    source = ArraySource(np.arange(10, dtype=np.float32), 8000, 4, loop=True)
    source.start()
    blocks = [source.read() for _ in range(4)]
    assert blocks[2].tolist() == [8.0, 9.0]
    assert blocks[3].tolist() == [0.0, 1.0, 2.0, 3.0]


def test_paced_source_pause_freezes_clock():
    clock = FakeClock()
    source = DemoSource(8000, 4096, clock=clock)
    source.start()
    source.read()

    clock.now = 0.25
    assert source.read().size == 2000
    source.pause()
    clock.now = 3.0
    source.resume()
    assert source.read().size == 0

    clock.now = 3.25
    assert source.read().size == 2000


def test_provider_suspend_pauses_source():
    clock = FakeClock()
    source = ArraySource(np.zeros(SR * 4, dtype=np.float32), SR, 512, clock=clock)
    provider = AnalyserTransform(source, 2048)
    provider.open()
    provider.get_raw_waveform()

    provider.suspend()
    provider.suspend()
    clock.now = 2.0
    provider.resume()
    provider.resume()
    provider.get_raw_waveform()
    assert source.position == 0

    clock.now = 2.5
    provider.get_raw_waveform()
    assert source.position == SR // 2
