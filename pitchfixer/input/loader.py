"""Audio loading: decode a file into an AudioStream."""

import logging
import numpy as np
import librosa
import soundfile as sf
from pathlib import Path
from typing import Dict, Optional, Union

from ..core import AudioStream, SourceDecodeError

logger = logging.getLogger(__name__)


class AudioLoader:
    """Handles audio file decoding and channel/rate conversion."""

    SUPPORTED_FORMATS = {
        ".wav", ".flac", ".aiff", ".aif", ".ogg", ".mp3", ".m4a", ".mp4", ".aac",
    }

    def __init__(
        self,
        target_sr: Optional[int] = None,
        channels: Optional[int] = None,
    ):
        """
        Initialize AudioLoader.

        Args:
            target_sr: Resample to this rate. None keeps the native rate.
            channels: Force 1 or 2 channels. None keeps the native layout.
        """
        if channels is not None and channels not in (1, 2):
            raise ValueError(f"channels must be 1, 2 or None, got {channels}")
        self.target_sr = target_sr
        self.channels = channels

    def load(
        self,
        path: Union[str, Path],
        offset: float = 0.0,
        duration: Optional[float] = None,
    ) -> AudioStream:
        """
        Decode an audio file.

        Args:
            path: Path to audio file
            offset: Start reading this many seconds in
            duration: Read at most this many seconds (None reads to the end)

        Returns:
            AudioStream with frames laid out as (frames, channels)

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If file format not supported
            SourceDecodeError: If the file cannot be decoded
        """
        path = self._check_path(path)

        try:
            # librosa reads through soundfile and falls back to audioread
            # for containers libsndfile cannot open (m4a, aac).
            audio, sr = librosa.load(
                str(path), sr=self.target_sr, mono=False, offset=offset, duration=duration
            )
        except Exception as e:
            raise SourceDecodeError(f"Cannot decode {path.name}: {e}") from e

        audio = np.atleast_2d(audio).T  # (channels, n) -> (n, channels)
        if audio.shape[0] == 0:
            raise SourceDecodeError(f"No audio frames in {path.name}")

        audio = self._map_channels(audio)
        logger.debug(
            "Decoded %s: %d frames, %d ch @ %d Hz",
            path.name, audio.shape[0], audio.shape[1], sr,
        )
        return AudioStream(audio, int(sr))

    def duration(self, path: Union[str, Path]) -> float:
        """Length in seconds, read from the header where the container has one."""
        path = self._check_path(path)
        try:
            return float(librosa.get_duration(path=str(path)))
        except Exception as e:
            raise SourceDecodeError(f"Cannot read duration of {path.name}: {e}") from e

    def info(self, path: Union[str, Path]) -> Dict[str, float]:
        """Return sample rate, channels, frames and duration without decoding."""
        path = self._check_path(path)
        try:
            meta = sf.info(str(path))
            return {
                "sample_rate": meta.samplerate,
                "channels": meta.channels,
                "frames": meta.frames,
                "duration": meta.duration,
            }
        except RuntimeError:
            # Compressed container libsndfile cannot parse: decode fully.
            stream = AudioLoader().load(path)
            return {
                "sample_rate": stream.sample_rate,
                "channels": stream.channels,
                "frames": stream.length,
                "duration": stream.duration,
            }

    def _check_path(self, path: Union[str, Path]) -> Path:
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Audio file not found: {path}")

        if path.suffix.lower() not in self.SUPPORTED_FORMATS:
            raise ValueError(
                f"Unsupported format: {path.suffix}. "
                f"Supported: {sorted(self.SUPPORTED_FORMATS)}"
            )
        return path

    def _map_channels(self, audio: np.ndarray) -> np.ndarray:
        """Convert a (frames, channels) array to the requested channel count."""
        if self.channels is None or audio.shape[1] == self.channels:
            return audio
        if self.channels == 1:
            return audio.mean(axis=1, keepdims=True)
        if audio.shape[1] == 1:
            return np.repeat(audio, 2, axis=1)
        # More than two channels: keep the front pair
        return audio[:, :2]
