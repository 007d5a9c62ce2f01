"""Pitch tracking over a bounded excerpt of a recording."""

import logging
import threading
from typing import Iterator, List, Optional, Tuple

import numpy as np
import librosa

from ..core import (
    AudioStream,
    AnalysisFrame,
    AnalysisConfig,
    PitchObservation,
    OperationCancelled,
)
from ..core.constants import CENTS_PER_SEMITONE, SEMITONES_PER_OCTAVE
from .pitch import FrequencyEstimator, frequency_to_midi

logger = logging.getLogger(__name__)


class PitchTracker:
    """Turn an excerpt of a recording into cents deviations from the A440 grid.

    The analyzed excerpt is chosen by a tunable policy, not a guarantee:
    it starts ``config.start_fraction`` into the file (a quarter by default,
    past most intros and fade-ins) and spans ``config.window_seconds``.
    Frames whose amplitude does not exceed the silence threshold are
    dropped, never zero-filled.
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        estimator: Optional[FrequencyEstimator] = None,
    ):
        self.config = config or AnalysisConfig()
        self.estimator = estimator or FrequencyEstimator.from_config(self.config)

    def track(
        self,
        source: AudioStream,
        cancel: Optional[threading.Event] = None,
    ) -> List[float]:
        """
        Analyze the excerpt and collect deviation samples.

        Args:
            source: Decoded audio (any channel count / sample rate)
            cancel: Checked between frames; when set, the pass stops

        Returns:
            Deviations in cents, one per accepted frame. Empty when no
            frame carried a usable pitch.

        Raises:
            OperationCancelled: If ``cancel`` was set during the pass
        """
        return self._collect(self.iter_observations(source, cancel))

    def track_excerpt(
        self,
        excerpt: AudioStream,
        cancel: Optional[threading.Event] = None,
    ) -> List[float]:
        """Like ``track`` for audio that has already been cut to the window."""
        return self._collect(self.iter_observations(excerpt, cancel, cut=False))

    def _collect(self, observations: Iterator[PitchObservation]) -> List[float]:
        threshold = self.config.silence_threshold
        deviations = []
        total = 0
        for observation in observations:
            total += 1
            if not observation.is_voiced(threshold):
                continue
            deviations.append(self.deviation_cents(observation.frequency_hz))

        logger.debug("Accepted %d of %d frames", len(deviations), total)
        return deviations

    def iter_observations(
        self,
        source: AudioStream,
        cancel: Optional[threading.Event] = None,
        cut: bool = True,
    ) -> Iterator[PitchObservation]:
        """Yield one raw observation per frame of the analysis window."""
        window, sr = self.analysis_window(source, cut)
        frame_length = self.config.frame_length
        hop = self.config.hop_length

        if len(window) < frame_length:
            return

        n_frames = 1 + (len(window) - frame_length) // hop
        for i in range(n_frames):
            if cancel is not None and cancel.is_set():
                raise OperationCancelled("Pitch tracking cancelled")
            start = i * hop
            frame = AnalysisFrame(window[start:start + frame_length], sr)
            yield self.estimator.estimate(frame)

    def analysis_window(self, source: AudioStream, cut: bool = True) -> Tuple[np.ndarray, int]:
        """
        Cut the excerpt to analyze and bring it to the analysis rate.

        Args:
            source: Decoded audio
            cut: Apply the window policy; False analyzes all of ``source``

        Returns:
            Tuple of (mono samples, sample rate)
        """
        sr = source.sample_rate
        if cut:
            start, count = self.window_bounds(source.length, sr)
            source = AudioStream(source.frames(start, count), sr)
            logger.debug("Analysis window: %.2fs from %.2fs", count / sr, start / sr)
        mono = source.to_mono().samples[:, 0]

        target_sr = self.config.analysis_sr
        if sr != target_sr and mono.size:
            mono = librosa.resample(mono, orig_sr=sr, target_sr=target_sr)
            sr = target_sr
        return mono, sr

    def window_bounds(self, length: int, sample_rate: int) -> Tuple[int, int]:
        """
        Source frame range of the analysis window.

        Starts at ``start_fraction`` of the file and stops early at the end
        of the file. When less than one analysis frame remains after the
        offset, the window starts at the beginning instead.
        """
        count = int(round(self.config.window_seconds * sample_rate))
        start = int(length * self.config.start_fraction)
        min_frames = int(np.ceil(
            self.config.frame_length * sample_rate / self.config.analysis_sr
        ))

        if length - start < min_frames:
            start = 0
        return start, min(count, length - start)

    def deviation_cents(self, frequency_hz: float) -> float:
        """
        Cents between a frequency and its reference pitch on the A440 grid.

        Without an anchor note the reference is the nearest semitone, giving
        (-50, +50]. With ``anchor_note`` set the reference is the nearest
        note of that pitch class, giving [-600, +600).
        """
        midi = frequency_to_midi(frequency_hz)
        anchor = self.config.anchor_note
        if anchor is None:
            deviation = midi - np.round(midi)
            # Keep the half-way case on the positive side
            if deviation <= -0.5:
                deviation += 1.0
        else:
            half = SEMITONES_PER_OCTAVE / 2
            deviation = (midi - anchor + half) % SEMITONES_PER_OCTAVE - half
        return float(deviation * CENTS_PER_SEMITONE)
