"""Core types, constants and configuration for PitchFixer."""

from .types import (
    AudioStream,
    AnalysisFrame,
    PitchObservation,
    AnalysisStatus,
    PitchAnalysisResult,
    OutputFormat,
    AAC_M4A,
    PCM_WAV,
    OUTPUT_FORMATS,
    CorrectionRequest,
    CorrectionOutcome,
)
from .config import AnalysisConfig, RenderConfig
from .constants import (
    PITCH_NAMES,
    REFERENCE_HZ,
    REFERENCE_MIDI,
    CENTS_PER_OCTAVE,
)
from .errors import (
    PitchFixerError,
    SourceDecodeError,
    RenderSetupError,
    BlockRenderError,
    DestinationBusyError,
    EncoderError,
    OperationCancelled,
)

__all__ = [
    "AudioStream",
    "AnalysisFrame",
    "PitchObservation",
    "AnalysisStatus",
    "PitchAnalysisResult",
    "OutputFormat",
    "AAC_M4A",
    "PCM_WAV",
    "OUTPUT_FORMATS",
    "CorrectionRequest",
    "CorrectionOutcome",
    "AnalysisConfig",
    "RenderConfig",
    "PITCH_NAMES",
    "REFERENCE_HZ",
    "REFERENCE_MIDI",
    "CENTS_PER_OCTAVE",
    "PitchFixerError",
    "SourceDecodeError",
    "RenderSetupError",
    "BlockRenderError",
    "DestinationBusyError",
    "EncoderError",
    "OperationCancelled",
]
