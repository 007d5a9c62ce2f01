"""Input layer - Decode audio files into AudioStreams."""

from .loader import AudioLoader

__all__ = ["AudioLoader"]
