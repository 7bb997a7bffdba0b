from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from spectrum_scope.audio_sources import ArraySource
from spectrum_scope.mapping import DEFAULT_FREQUENCY_POINTS, BandPolicy, FrequencyAxis
from spectrum_scope.session import AnalysisSession, SessionState, SpectrogramHistory
from spectrum_scope.transform import (
    AnalyserTransform,
    ProviderStatus,
    ProviderUnavailableError,
    validate_transform_size,
)

from test_transform import FakeClock

SR = 44100


def _byte_sine(freq: float, n: int = 2048) -> np.ndarray:
    t = np.arange(n) / SR
    return np.round(128 + 100 * np.sin(2 * np.pi * freq * t)).astype(np.uint8)


class FakeProvider:
    """In-memory provider returning fixed buffers."""

    def __init__(self, transform_size: int = 4096) -> None:
        self.sample_rate = SR
        self.transform_size = transform_size
        self.spectrum = np.full(transform_size // 2, 50, dtype=np.uint8)
        self.waveform = _byte_sine(440.0, transform_size // 2)
        self.opened = False
        self.running = False
        self.closed = False
        self.waveform_reads = 0

    def open(self) -> None:
        self.opened = True
        self.running = True

    def close(self) -> None:
        self.opened = False
        self.running = False
        self.closed = True

    def resume(self) -> None:
        self.running = True

    def suspend(self) -> None:
        self.running = False

    def get_raw_spectrum(self):
        return self.spectrum if self.running else None

    def get_raw_waveform(self):
        self.waveform_reads += 1
        return self.waveform if self.running else None

    def set_transform_size(self, size: int) -> None:
        self.transform_size = validate_transform_size(size)

    def status(self) -> ProviderStatus:
        return ProviderStatus(self.opened, self.running)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def session(provider) -> AnalysisSession:
    return AnalysisSession(lambda: provider)


def test_uninitialized_session_returns_sentinels(session):
    status = session.status()
    assert (status.initialized, status.active) == (False, False)
    assert session.get_raw_spectrum() is None
    assert session.get_raw_waveform() is None
    assert session.detect_pitch() == 0.0
    assert session.map_to_bands(8).tolist() == [0.0] * 8
    assert session.start() is False


def test_lifecycle(session, provider):
    assert session.initialize() is True
    assert session.state is SessionState.INITIALIZED
    assert session.status().initialized is True
    assert session.get_raw_spectrum() is None

    assert session.start() is True
    assert session.state is SessionState.ACTIVE
    assert session.get_raw_spectrum() is not None
    assert session.detect_pitch() == pytest.approx(440.0, rel=0.05)

    session.stop()
    assert session.state is SessionState.IDLE
    assert session.status().active is False
    assert session.get_raw_waveform() is None
    assert provider.closed is False

    assert session.start() is True
    session.dispose()
    assert session.state is SessionState.DISPOSED
    assert provider.closed is True


def test_disposed_session_is_inert(session):
    session.initialize()
    session.start()
    session.dispose()

    assert session.initialize() is False
    assert session.start() is False
    assert session.set_transform_size(1024) is False
    assert session.detect_pitch() == 0.0
    assert not np.any(session.map_to_bands(5))
    assert session.status().initialized is False
    frame = session.poll(5, now=1.0)
    assert frame.pitch == 0.0
    assert not np.any(frame.bands)


def test_factory_failure_reports_false():
    def factory():
        raise ProviderUnavailableError("permission denied")

    session = AnalysisSession(factory)
    assert session.initialize() is False
    assert session.state is SessionState.UNINITIALIZED
    assert isinstance(session.last_error, ProviderUnavailableError)


def test_open_failure_closes_provider(provider):
    def broken_open():
        raise OSError("device busy")

    provider.open = broken_open
    session = AnalysisSession(lambda: provider)
    assert session.initialize() is False
    assert isinstance(session.last_error, OSError)
    assert provider.closed is True


def test_map_to_bands_length(session):
    session.initialize()
    session.start()
    for bands in (1, 4, 64):
        result = session.map_to_bands(bands, FrequencyAxis.LINEAR)
        assert result.shape == (bands,)
        assert np.all(result == 50.0)


def test_oversampled_mapping(provider):
    session = AnalysisSession(lambda: provider, oversample_bins=20000)
    session.initialize()
    session.start()
    result = session.map_to_bands(32)
    assert result.shape == (32,)
    assert result[0] > result[-1] == pytest.approx(50.0)


def test_invalid_transform_size_keeps_previous(session):
    session.initialize()
    assert session.set_transform_size(4095) is False
    assert session.transform_size == 4096
    assert session.last_error is not None

    assert session.set_transform_size(2048) is True
    assert session.transform_size == 2048


def test_transform_size_with_real_provider():
    t = np.arange(SR) / SR
    source = ArraySource(0.5 * np.sin(2 * np.pi * 440 * t), SR, 512)
    session = AnalysisSession(lambda: AnalyserTransform(source, 4096))
    assert session.initialize()
    session.start()

    assert session.set_transform_size(4095) is False
    assert session.get_raw_spectrum().shape == (2048,)

    assert session.set_transform_size(8192) is True
    assert session.get_raw_spectrum().shape == (4096,)
    assert session.get_raw_waveform().shape == (4096,)


def test_pitch_detection_is_throttled(session, provider):
    session.initialize()
    session.start()

    frames = [session.poll(16, now=t) for t in (0.0, 0.05, 0.12, 0.15, 0.25)]

    assert provider.waveform_reads == 3
    assert [f.pitch_updated for f in frames] == [True, False, True, False, True]
    assert all(f.pitch == pytest.approx(440.0, rel=0.05) for f in frames)


def test_zero_pitch_keeps_previous_estimate(session, provider):
    session.initialize()
    session.start()
    first = session.poll(8, now=0.0)

    provider.waveform = np.full_like(provider.waveform, 128)
    second = session.poll(8, now=1.0)

    assert second.pitch == first.pitch
    assert second.pitch_updated is False


def test_poll_records_history(provider):
    session = AnalysisSession(lambda: provider, history_length=3)
    session.initialize()
    session.start()
    for t in range(5):
        session.poll(6, now=float(t))
    assert len(session.history) == 3
    assert session.history.snapshot().shape == (3, 6)


def test_inactive_poll_returns_zero_frame(session):
    session.initialize()
    frame = session.poll(10, now=0.0)
    assert frame.bands.shape == (10,)
    assert not np.any(frame.bands)
    assert len(session.history) == 0


def test_context_manager_disposes(provider):
    with AnalysisSession(lambda: provider) as session:
        session.initialize()
        session.start()
    assert session.state is SessionState.DISPOSED
    assert provider.closed


def test_history_evicts_oldest():
    history = SpectrogramHistory(2)
    history.push(np.array([1.0, 1.0]))
    history.push(np.array([2.0, 2.0]))
    history.push(np.array([3.0, 3.0]))

    assert history.snapshot().tolist() == [[2.0, 2.0], [3.0, 3.0]]


def test_history_pads_and_resets_on_band_change():
    history = SpectrogramHistory(3)
    history.push(np.array([5.0, 6.0]))
    assert history.snapshot().tolist() == [[0.0, 0.0], [0.0, 0.0], [5.0, 6.0]]

    history.push(np.array([1.0, 2.0, 3.0]))
    assert len(history) == 1
    assert history.bands == 3

    with pytest.raises(ValueError):
        SpectrogramHistory(0)


def test_inactive_poll_rejects_bad_band_count(session):
    with pytest.raises(ValueError):
        session.poll(0, now=0.0)
    session.initialize()
    with pytest.raises(ValueError):
        session.poll(-3, now=0.0)
    with pytest.raises(ValueError):
        session.map_to_bands(0)


def test_start_and_stop_without_provider(session):
    session.initialize()
    session.start()
    session._provider = None

    session.stop()
    assert session.state is SessionState.IDLE
    assert session.start() is False


def test_poll_point_grid_policy(session):
    session.initialize()
    session.start()
    frame = session.poll(16, policy=BandPolicy.POINTS, now=0.0)

    assert frame.bands.shape == (len(DEFAULT_FREQUENCY_POINTS),)
    # 20 Hz gets the full 2x boost, 100 Hz and above none.
    assert frame.bands[0] == pytest.approx(100.0)
    assert np.allclose(frame.bands[7:], 50.0)
    assert session.history.snapshot().shape == (session.history.length, 44)


def test_poll_peak_policy(session, provider):
    session.initialize()
    session.start()
    provider.spectrum = np.zeros_like(provider.spectrum)
    provider.spectrum[93] = 200  # ~1 kHz

    peak = session.poll(10, policy="peak", now=0.0)
    sampled = session.poll(10, policy=BandPolicy.SAMPLE, now=1.0)

    assert peak.bands.shape == (10,)
    assert peak.bands[5] == 200.0
    assert np.count_nonzero(peak.bands) == 1
    assert sampled.bands[5] < 200.0


def test_inactive_poll_matches_policy_length(session):
    session.initialize()
    frame = session.poll(8, policy=BandPolicy.POINTS, now=0.0)
    assert frame.bands.shape == (44,)
    assert not np.any(frame.bands)


def test_poll_reports_pitch_clarity(session, provider):
    session.initialize()
    session.start()
    frame = session.poll(8, now=0.0)
    assert 0.8 < frame.clarity <= 1.0
    assert session.last_clarity == frame.clarity

    provider.waveform = np.full_like(provider.waveform, 128)
    assert session.poll(8, now=1.0).clarity == frame.clarity


def test_paused_session_does_not_skip_file_audio():
    clock = FakeClock()
    ramp = np.arange(80000, dtype=np.float32) / 80000.0
    source = ArraySource(ramp, 8000, 512, clock=clock)
    session = AnalysisSession(lambda: AnalyserTransform(source, 1024), clock=clock)
    assert session.initialize()
    assert session.start()

    session.get_raw_waveform()
    clock.now = 1.0
    session.get_raw_waveform()
    assert source.position == 8000

    session.stop()
    clock.now = 6.0
    session.start()
    session.get_raw_waveform()
    assert source.position == 8000

    clock.now = 6.5
    session.get_raw_waveform()
    assert source.position == 12000
