"""Matplotlib spectrum / scrolling spectrogram viewer."""

from __future__ import annotations

import logging
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np

from .config import AnalyzerConfig
from .mapping import BandPolicy, FrequencyAxis, display_frequencies
from .pitch import frequency_to_note
from .session import AnalysisFrame, AnalysisSession

logger = logging.getLogger(__name__)


def pitch_label(pitch: float, clarity: Optional[float] = None) -> str:
    """Title text for the current pitch estimate."""

    if pitch <= 0:
        return "Pitch: --"
    note, cents = frequency_to_note(pitch)
    label = f"Pitch: {round(pitch)} Hz ({note} {cents:+.0f} cents)"
    if clarity is not None:
        label += f" clarity {clarity:.2f}"
    return label


class SpectrumViewer:
    """Draw an :class:`AnalysisSession` once per canvas timer tick."""

    def __init__(self, session: AnalysisSession, config: Optional[AnalyzerConfig] = None) -> None:
        if config is None:
            config = AnalyzerConfig()
        self.config = config
        self.session = session
        self.bands = int(config.bands)
        self.axis = config.frequency_axis
        self.policy = config.policy
        self.mode = config.mode
        self.paused = False
        self._set_frequencies()

        self.fig, self.ax = plt.subplots(figsize=(12, 6))
        self.fig.canvas.mpl_connect("key_press_event", self.on_key)
        self._build_axes()

    # ------------------------------------------------------------------
    # Figure setup
    # ------------------------------------------------------------------
    def _set_frequencies(self) -> None:
        self.band_freqs = display_frequencies(self.bands, self.axis, self.policy)
        self.width = int(self.band_freqs.size)

    def _build_axes(self) -> None:
        self.ax.clear()
        self.line = None
        self.im = None
        if self.mode == "spectrogram":
            data = self.session.history.snapshot()
            if data.shape[1] != self.width:
                data = np.zeros((self.session.history.length, self.width))
            self.im = self.ax.imshow(
                data.T,
                origin="lower",
                aspect="auto",
                interpolation="nearest",
                vmin=0.0,
                vmax=255.0,
                extent=(-data.shape[0], 0, 0, self.width),
            )
            ticks = np.linspace(0, self.width - 1, min(self.width, 8)).astype(int)
            self.ax.set_yticks(ticks + 0.5)
            self.ax.set_yticklabels([_format_freq(self.band_freqs[t]) for t in ticks])
            self.ax.set_xlabel("Frames")
            self.ax.set_ylabel("Frequency")
        else:
            (self.line,) = self.ax.plot(self.band_freqs, np.zeros(self.width), lw=1.5)
            linear = self.policy is BandPolicy.SAMPLE and self.axis is FrequencyAxis.LINEAR
            self.ax.set_xscale("linear" if linear else "log")
            self.ax.set_xlim(self.band_freqs[0], max(self.band_freqs[-1], self.band_freqs[0] + 1))
            self.ax.set_ylim(0, 255)
            self.ax.set_xlabel("Frequency (Hz)")
            self.ax.set_ylabel("Amplitude")
            self.ax.grid(True, alpha=0.25, which="both")
        self._set_title(self.session.last_pitch, self.session.last_clarity)

    def _set_title(self, pitch: float, clarity: Optional[float] = None) -> None:
        state = "paused" if self.paused else f"{self.mode}, {self.policy.value}"
        self.ax.set_title(f"{pitch_label(pitch, clarity)}  |  {state}")

    # ------------------------------------------------------------------
    # Event handlers & UI updates
    # ------------------------------------------------------------------
    def on_key(self, event) -> None:
        if event.key in ("q", "escape"):
            plt.close(self.fig)
        elif event.key == "p":
            self.paused = not self.paused
            if self.paused:
                self.session.stop()
            else:
                self.session.start()
            self._set_title(self.session.last_pitch, self.session.last_clarity)
            self.fig.canvas.draw_idle()
        elif event.key == "m":
            self.mode = "spectrogram" if self.mode == "spectrum" else "spectrum"
            self._build_axes()
            self.fig.canvas.draw_idle()
        elif event.key == "b":
            policies = list(BandPolicy)
            self.policy = policies[(policies.index(self.policy) + 1) % len(policies)]
            self._set_frequencies()
            self._build_axes()
            self.fig.canvas.draw_idle()

    def update(self, frame: AnalysisFrame) -> None:
        if self.line is not None:
            self.line.set_ydata(frame.bands)
        if self.im is not None:
            self.im.set_data(self.session.history.snapshot().T)
        self._set_title(frame.pitch, frame.clarity)
        self.fig.canvas.draw_idle()

    def tick(self) -> None:
        if self.paused:
            return
        frame = self.session.poll(self.bands, self.axis, policy=self.policy)
        self.update(frame)

    def run(self) -> None:
        if not self.session.initialize():
            logger.error("Audio input unavailable: %s", self.session.last_error)
            return
        self.session.start()
        try:
            timer = self.fig.canvas.new_timer(interval=int(self.config.frame_interval_ms))
            timer.add_callback(self.tick)
            timer.start()
            plt.show()
        finally:
            self.session.dispose()


def _format_freq(freq: float) -> str:
    if freq >= 1000:
        return f"{freq / 1000:.1f}k"
    return f"{freq:.0f}"


__all__ = ["SpectrumViewer", "pitch_label"]
