"""Render layer - Offline pitch correction and encoding.

- Streaming phase vocoder shift stage
- Per-operation render graph
- Encoders (ffmpeg AAC, soundfile PCM)
- Block-by-block offline renderer
"""

from .shifter import PhaseVocoderShifter
from .graph import RenderGraph, RenderStatus
from .encoder import Encoder, FFmpegEncoder, SoundFileEncoder, open_encoder, find_ffmpeg
from .renderer import OfflineRenderer, conform

__all__ = [
    "PhaseVocoderShifter",
    "RenderGraph",
    "RenderStatus",
    "Encoder",
    "FFmpegEncoder",
    "SoundFileEncoder",
    "open_encoder",
    "find_ffmpeg",
    "OfflineRenderer",
    "conform",
]
