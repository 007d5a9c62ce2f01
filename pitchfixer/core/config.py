"""Tunable configuration for analysis and rendering."""

from dataclasses import dataclass
from typing import Optional

from .constants import (
    DEFAULT_ANALYSIS_SR,
    DEFAULT_BLOCK_SIZE,
    DEFAULT_FFT_SIZE,
    DEFAULT_FMAX,
    DEFAULT_FMIN,
    DEFAULT_FRAME_LENGTH,
    DEFAULT_HOP_LENGTH,
    DEFAULT_MIN_CLARITY,
    DEFAULT_MIN_RELIABLE_COUNT,
    DEFAULT_OVERSAMPLING,
    DEFAULT_SILENCE_THRESHOLD,
    DEFAULT_START_FRACTION,
    DEFAULT_WINDOW_SECONDS,
    DEFAULT_YIN_THRESHOLD,
)


@dataclass
class AnalysisConfig:
    """Configuration for pitch tracking.

    Attributes:
        start_fraction: Where the analysis window starts, as a fraction of the
            file duration (default: 0.25). A heuristic for skipping intros.
        window_seconds: Duration of material analyzed (default: 3.0)
        frame_length: Samples per analysis frame (default: 2048)
        hop_length: Samples between frame starts (default: 1024)
        analysis_sr: Sample rate the window is resampled to (default: 22050)
        fmin: Lowest detectable fundamental in Hz (default: 65)
        fmax: Highest detectable fundamental in Hz (default: 2093)
        silence_threshold: RMS amplitude a frame must exceed to count (default: 0.01)
        min_clarity: Minimum periodicity for a frame to be voiced (default: 0.5)
        yin_threshold: Dip threshold of the normalized difference function (default: 0.15)
        anchor_note: MIDI note whose pitch class deviations are measured against.
            None folds every reading to the nearest semitone (default: None)
        min_reliable_count: Accepted frames below which a result is flagged as
            unreliable by callers (default: 3). Aggregation itself ignores it.
    """

    start_fraction: float = DEFAULT_START_FRACTION
    window_seconds: float = DEFAULT_WINDOW_SECONDS
    frame_length: int = DEFAULT_FRAME_LENGTH
    hop_length: int = DEFAULT_HOP_LENGTH
    analysis_sr: int = DEFAULT_ANALYSIS_SR
    fmin: float = DEFAULT_FMIN
    fmax: float = DEFAULT_FMAX
    silence_threshold: float = DEFAULT_SILENCE_THRESHOLD
    min_clarity: float = DEFAULT_MIN_CLARITY
    yin_threshold: float = DEFAULT_YIN_THRESHOLD
    anchor_note: Optional[int] = None
    min_reliable_count: int = DEFAULT_MIN_RELIABLE_COUNT

    def __post_init__(self):
        if not 0.0 <= self.start_fraction < 1.0:
            raise ValueError(f"start_fraction must be in [0, 1), got {self.start_fraction}")
        if self.window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {self.window_seconds}")
        if self.frame_length < 64:
            raise ValueError(f"frame_length too small: {self.frame_length}")
        if not 0 < self.hop_length <= self.frame_length:
            raise ValueError(
                f"hop_length must be in (0, frame_length], got {self.hop_length}"
            )
        if not 0 < self.fmin < self.fmax < self.analysis_sr / 2:
            raise ValueError(
                f"Invalid frequency range: fmin={self.fmin}, fmax={self.fmax}, "
                f"sr={self.analysis_sr}"
            )
        if self.analysis_sr / self.fmin >= self.frame_length / 2:
            raise ValueError(
                f"frame_length {self.frame_length} too short for fmin {self.fmin} Hz"
            )
        if self.silence_threshold < 0:
            raise ValueError("silence_threshold must be non-negative")
        if self.anchor_note is not None and not 0 <= self.anchor_note <= 127:
            raise ValueError(f"anchor_note must be a MIDI note, got {self.anchor_note}")

    @property
    def window_frames(self) -> int:
        """Number of samples in the analysis window at ``analysis_sr``."""
        return int(round(self.window_seconds * self.analysis_sr))


@dataclass
class RenderConfig:
    """Configuration for offline rendering.

    Attributes:
        block_size: Frames requested from the render graph per step (default: 4096)
        fft_size: Phase vocoder frame size (default: 2048)
        oversampling: Analysis frames per FFT length (default: 4)
    """

    block_size: int = DEFAULT_BLOCK_SIZE
    fft_size: int = DEFAULT_FFT_SIZE
    oversampling: int = DEFAULT_OVERSAMPLING

    def __post_init__(self):
        if self.block_size <= 0:
            raise ValueError(f"block_size must be positive, got {self.block_size}")
        if self.fft_size < 16 or self.fft_size & (self.fft_size - 1):
            raise ValueError(f"fft_size must be a power of two >= 16, got {self.fft_size}")
        if self.oversampling < 2 or self.fft_size % self.oversampling:
            raise ValueError(
                f"oversampling must be >= 2 and divide fft_size, got {self.oversampling}"
            )
