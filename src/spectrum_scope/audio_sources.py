"""Audio source abstractions feeding the transform provider."""
from __future__ import annotations

import logging
import queue
import time
from pathlib import Path
from typing import Callable, Optional

import numpy as np
from scipy.io import wavfile

try:  # Optional dependency
    import sounddevice as sd
except Exception:  # pragma: no cover - optional dependency may be absent in CI
    sd = None  # type: ignore[assignment]

try:  # Optional dependency - may not be available in CI
    import soundfile as sf  # type: ignore
except Exception:  # pragma: no cover - soundfile is optional
    sf = None  # type: ignore

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class AudioSource:
    """Abstract audio stream interface.

    ``read`` never blocks: it returns whatever mono ``float32`` samples are
    pending, or an empty array when there are none.
    """

    samplerate: int

    def start(self) -> None:  # pragma: no cover - interface method
        raise NotImplementedError

    def read(self) -> np.ndarray:  # pragma: no cover - interface method
        raise NotImplementedError

    def stop(self) -> None:  # pragma: no cover - interface method
        raise NotImplementedError

    def pause(self) -> None:
        """Stop the stream's clock while the consumer is not reading."""

    def resume(self) -> None:
        """Continue after :meth:`pause` from where the stream left off."""


class MicSource(AudioSource):
    """Audio source backed by the default system microphone."""

    def __init__(self, samplerate: int, hop: int, device: Optional[str] = None) -> None:
        if sd is None:
            raise RuntimeError("sounddevice is not available. Install it or use --demo.")

        self.samplerate = samplerate
        self.hop = hop
        self.device = device
        self.q: "queue.Queue[np.ndarray]" = queue.Queue(maxsize=64)
        self.stream = None

    def _callback(self, indata, frames, time_info, status):  # pragma: no cover - sounddevice callback
        if status:
            logger.debug("Input stream status: %s", status)
        if indata.ndim == 2 and indata.shape[1] > 1:
            mono = indata.mean(axis=1).copy()
        else:
            mono = indata[:, 0].copy() if indata.ndim == 2 else indata.copy()
        try:
            self.q.put_nowait(mono)
        except queue.Full:
            pass

    def start(self) -> None:
        if sd is None:  # pragma: no cover - guarded in __init__
            raise RuntimeError("sounddevice is not available.")
        self.stream = sd.InputStream(
            channels=1,
            samplerate=self.samplerate,
            blocksize=self.hop,
            device=self.device,
            callback=self._callback,
            dtype="float32",
        )
        self.stream.start()

    def read(self) -> np.ndarray:
        try:
            return self.q.get_nowait()
        except queue.Empty:
            return np.array([], dtype=np.float32)

    def stop(self) -> None:
        if self.stream is not None:
            try:  # pragma: no cover - depends on audio backend
                self.stream.stop()
                self.stream.close()
            except Exception as exc:
                logger.warning("Failed to close input stream: %s", exc)
            self.stream = None

    def resume(self) -> None:
        # Blocks captured while paused are stale.
        while True:
            try:
                self.q.get_nowait()
            except queue.Empty:
                break


class _PacedSource(AudioSource):
    """Hands out samples no faster than real time when a clock is given."""

    def __init__(self, samplerate: int, hop: int, clock: Optional[Clock] = None) -> None:
        self.samplerate = int(samplerate)
        self.hop = int(hop)
        self.clock = clock
        self._t0: Optional[float] = None
        self._paused_at: Optional[float] = None
        self._served = 0

    def _due(self) -> int:
        if self.clock is None:
            return self.hop
        if self._t0 is None:
            self._t0 = self.clock()
        elapsed = self.clock() - self._t0
        owed = int(elapsed * self.samplerate) - self._served
        return max(0, min(owed, self.hop))

    def start(self) -> None:
        self._t0 = None
        self._paused_at = None
        self._served = 0

    def stop(self) -> None:
        pass

    def pause(self) -> None:
        if self.clock is None or self._t0 is None or self._paused_at is not None:
            return
        self._paused_at = self.clock()

    def resume(self) -> None:
        if self._paused_at is None:
            return
        # Shift the origin so the paused interval is never owed.
        self._t0 += self.clock() - self._paused_at
        self._paused_at = None


class DemoSource(_PacedSource):
    """Synthetic audio source used when no microphone is available."""

    def __init__(self, samplerate: int, hop: int, clock: Optional[Clock] = time.monotonic) -> None:
        super().__init__(samplerate, hop, clock)
        self.t = 0

    def read(self) -> np.ndarray:
        n = self._due()
        if n == 0:
            return np.array([], dtype=np.float32)
        sr = self.samplerate
        t = (self.t + np.arange(n)) / sr
        chirp = np.sin(2 * np.pi * (100 + (t % 8.0) * 0.5e3) * t) * 0.4
        tone1 = 0.25 * np.sin(2 * np.pi * 440 * t)
        tone2 = 0.2 * np.sin(2 * np.pi * 880 * t + 0.3)
        noise = 0.02 * np.random.randn(n)
        y = chirp + tone1 + tone2 + noise
        self.t += n
        self._served += n
        y = np.tanh(1.5 * y)
        return y.astype(np.float32)


class ArraySource(_PacedSource):
    """Serve a preloaded mono signal in ``hop``-sized blocks."""

    def __init__(
        self,
        samples: np.ndarray,
        samplerate: int,
        hop: int,
        clock: Optional[Clock] = None,
        loop: bool = False,
    ) -> None:
        super().__init__(samplerate, hop, clock)
        self.samples = np.asarray(samples, dtype=np.float32)
        self.loop = loop
        self.position = 0

    @property
    def exhausted(self) -> bool:
        return not self.loop and self.position >= self.samples.size

    def start(self) -> None:
        super().start()
        self.position = 0

    def read(self) -> np.ndarray:
        if self.samples.size == 0 or self.exhausted:
            return np.array([], dtype=np.float32)
        n = self._due()
        if n == 0:
            return np.array([], dtype=np.float32)
        if self.loop and self.position >= self.samples.size:
            self.position = 0
        chunk = self.samples[self.position : self.position + n]
        self.position += chunk.size
        self._served += chunk.size
        return chunk.copy()


def load_audio(path: Path) -> tuple[np.ndarray, int]:
    """Decode an audio file into mono ``float32`` samples and its sample rate."""

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)

    if sf is not None:
        audio, sr = sf.read(path)
        if audio.ndim > 1:
            audio = audio.mean(axis=1)
    else:
        sr, audio = wavfile.read(path)
        if audio.ndim > 1:
            audio = audio.mean(axis=1)
        if audio.dtype != np.float32:
            max_val = (
                np.iinfo(audio.dtype).max
                if np.issubdtype(audio.dtype, np.integer)
                else 1.0
            )
            audio = audio.astype(np.float32) / max_val

    return np.asarray(audio, dtype=np.float32), int(sr)


class FileSource(ArraySource):
    """Audio file decoded up front and streamed in real time."""

    def __init__(
        self,
        path: Path,
        hop: int,
        clock: Optional[Clock] = time.monotonic,
        loop: bool = False,
    ) -> None:
        self.path = Path(path)
        samples, sr = load_audio(self.path)
        super().__init__(samples, sr, hop, clock=clock, loop=loop)
        logger.info(
            "Loaded %s (%.1f s at %d Hz)", self.path, samples.size / max(sr, 1), sr
        )


__all__ = [
    "ArraySource",
    "AudioSource",
    "DemoSource",
    "FileSource",
    "MicSource",
    "load_audio",
    "sd",
]
