"""PitchFixer - Retune recordings to an A440 reference.

Architecture Layers:
    1. input/     - Decode audio files into AudioStreams
    2. analysis/  - Frame pitch estimation, tracking and median aggregation
    3. render/    - Streaming pitch shift, render graph, encoders
    4. service    - Background analyze/correct operations
    5. cli        - Command-line front end
"""

__version__ = "0.1.0"

# Core types
from .core import (
    AudioStream,
    AnalysisConfig,
    RenderConfig,
    AnalysisStatus,
    PitchAnalysisResult,
    CorrectionOutcome,
    AAC_M4A,
    PCM_WAV,
)

# Input layer
from .input import AudioLoader

# Analysis layer
from .analysis import FrequencyEstimator, PitchTracker, OffsetAggregator

# Render layer
from .render import OfflineRenderer, PhaseVocoderShifter

# Service
from .service import PitchCorrectionService, OperationHandle

__all__ = [
    # Core
    "AudioStream",
    "AnalysisConfig",
    "RenderConfig",
    "AnalysisStatus",
    "PitchAnalysisResult",
    "CorrectionOutcome",
    "AAC_M4A",
    "PCM_WAV",
    # Input
    "AudioLoader",
    # Analysis
    "FrequencyEstimator",
    "PitchTracker",
    "OffsetAggregator",
    # Render
    "OfflineRenderer",
    "PhaseVocoderShifter",
    # Service
    "PitchCorrectionService",
    "OperationHandle",
]
