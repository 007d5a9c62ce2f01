"""Data types shared by the analysis, render and service layers."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

import numpy as np

from .constants import (
    OUTPUT_BIT_RATE,
    OUTPUT_CHANNELS,
    OUTPUT_SAMPLE_RATE,
)


class AudioStream:
    """Decoded audio: an immutable ``(frames, channels)`` float32 array.

    The stream never hands out writable memory. ``frames()`` returns
    read-only views so a reader cannot alter what another reader sees.
    """

    def __init__(self, samples: np.ndarray, sample_rate: int):
        samples = np.asarray(samples, dtype=np.float32)
        if samples.ndim == 1:
            samples = samples[:, np.newaxis]
        if samples.ndim != 2:
            raise ValueError(f"Expected 1-D or 2-D samples, got shape {samples.shape}")
        if sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got {sample_rate}")

        # Own a private copy so outside references cannot mutate it.
        samples = np.array(samples, dtype=np.float32, order="C", copy=True)
        samples.setflags(write=False)
        self._samples = samples
        self.sample_rate = int(sample_rate)

    @property
    def length(self) -> int:
        """Number of sample frames."""
        return self._samples.shape[0]

    @property
    def channels(self) -> int:
        return self._samples.shape[1]

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return self.length / self.sample_rate

    @property
    def samples(self) -> np.ndarray:
        """Read-only view of all frames."""
        return self._samples

    def frames(self, start: int, count: int) -> np.ndarray:
        """Return a read-only view of ``count`` frames from ``start`` (clamped)."""
        stop = max(0, min(int(start) + int(count), self.length))
        start = max(0, min(int(start), stop))
        return self._samples[start:stop]

    def to_mono(self) -> "AudioStream":
        """Average all channels into a new single-channel stream."""
        if self.channels == 1:
            return self
        return AudioStream(self._samples.mean(axis=1), self.sample_rate)

    def __len__(self) -> int:
        return self.length

    def __repr__(self) -> str:
        return (
            f"AudioStream(frames={self.length}, channels={self.channels}, "
            f"sample_rate={self.sample_rate})"
        )


@dataclass(frozen=True)
class AnalysisFrame:
    """One mono analysis window handed to the frequency estimator."""

    samples: np.ndarray
    sample_rate: int

    def __len__(self) -> int:
        return len(self.samples)


@dataclass(frozen=True)
class PitchObservation:
    """Pitch estimate for a single frame.

    ``frequency_hz`` is only meaningful when ``amplitude`` exceeds the
    silence threshold; estimators report ``amplitude=0`` for frames
    without a trustworthy pitch.
    """

    frequency_hz: float
    amplitude: float
    clarity: float = 0.0

    def is_voiced(self, silence_threshold: float) -> bool:
        return self.amplitude > silence_threshold and self.frequency_hz > 0


class AnalysisStatus(Enum):
    """How an analysis ended."""

    OK = "ok"
    NO_PITCH = "no_pitch"
    UNREADABLE = "unreadable"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PitchAnalysisResult:
    """Estimated tuning reference of a recording.

    ``cents_offset`` is the correction to apply: positive means shift the
    source up to reach A440. ``reliability`` counts accepted frames; a
    result with ``reliability == 0`` means no usable pitch was found and
    is distinct from a measured offset of zero. ``spread_cents`` is the
    median absolute deviation of the accepted readings.
    """

    detected_hz: float = 0.0
    cents_offset: float = 0.0
    reliability: int = 0
    status: AnalysisStatus = AnalysisStatus.NO_PITCH
    spread_cents: float = 0.0

    @classmethod
    def empty(cls, status: AnalysisStatus = AnalysisStatus.NO_PITCH) -> "PitchAnalysisResult":
        """Sentinel result for 'no usable pitch found'."""
        return cls(detected_hz=0.0, cents_offset=0.0, reliability=0, status=status)

    @property
    def has_pitch(self) -> bool:
        return self.reliability > 0

    def is_reliable(self, min_count: int) -> bool:
        return self.reliability >= max(1, min_count)

    @property
    def hz_label(self) -> str:
        return f"{self.detected_hz:.1f} Hz"

    @property
    def cents_label(self) -> str:
        return f"{self.cents_offset:+.1f} cents"


@dataclass(frozen=True)
class OutputFormat:
    """Fixed encoding target for corrected files."""

    codec: str
    container: str
    extension: str
    sample_rate: int = OUTPUT_SAMPLE_RATE
    channels: int = OUTPUT_CHANNELS
    bit_rate: Optional[int] = None
    subtype: Optional[str] = None  # soundfile subtype for PCM formats

    @property
    def is_pcm(self) -> bool:
        return self.codec == "pcm"


# AAC in an MPEG-4 container: the default, constant regardless of source format.
AAC_M4A = OutputFormat(
    codec="aac",
    container="mp4",
    extension=".m4a",
    bit_rate=OUTPUT_BIT_RATE,
)

PCM_WAV = OutputFormat(
    codec="pcm",
    container="WAV",
    extension=".wav",
    subtype="PCM_16",
)

OUTPUT_FORMATS = {
    "m4a": AAC_M4A,
    "wav": PCM_WAV,
}


@dataclass(frozen=True)
class CorrectionRequest:
    """Everything one render needs. Consumed exactly once."""

    source: AudioStream
    cents: float
    destination: Path
    output_format: OutputFormat = AAC_M4A


@dataclass(frozen=True)
class CorrectionOutcome:
    """Result of a correct-and-export operation."""

    success: bool
    destination: Optional[Path] = None
    cents: float = 0.0
    frames_written: int = 0
    cancelled: bool = False
    error: Optional[str] = field(default=None)

    @classmethod
    def failure(cls, destination, cents: float, error: str) -> "CorrectionOutcome":
        return cls(success=False, destination=destination, cents=cents, error=error)

    @classmethod
    def aborted(cls, destination, cents: float) -> "CorrectionOutcome":
        return cls(success=False, destination=destination, cents=cents, cancelled=True)
