"""Per-operation render graph: source cursor feeding the shift stage."""

import logging
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from ..core import AudioStream, RenderConfig, RenderSetupError
from .shifter import PhaseVocoderShifter

logger = logging.getLogger(__name__)


class RenderStatus(Enum):
    """Outcome of a single ``render_offline`` call."""

    SUCCESS = "success"
    INSUFFICIENT_DATA = "insufficient_data"
    ERROR = "error"


class RenderGraph:
    """Source -> pitch shifter pipeline owned by exactly one render.

    Build one per operation and use it as a context manager; it is torn
    down on every exit path and cannot be reused afterwards. The graph
    keeps a ``sample_time`` clock of frames delivered and hides the
    shifter latency: the first ``latency`` shifted frames are discarded
    and the tail is flushed with silence, so the graph delivers exactly
    ``source.length`` frames in total.
    """

    def __init__(
        self,
        source: AudioStream,
        cents: float,
        config: Optional[RenderConfig] = None,
    ):
        self.config = config or RenderConfig()
        self.source = source
        self.shifter = PhaseVocoderShifter(
            cents,
            sample_rate=source.sample_rate,
            channels=source.channels,
            fft_size=self.config.fft_size,
            oversampling=self.config.oversampling,
        )
        self.sample_time = 0
        self._read_position = 0
        self._to_discard = self.shifter.latency
        self._ready = np.zeros((0, source.channels), dtype=np.float32)
        self._closed = False

    @property
    def length(self) -> int:
        return self.source.length

    @property
    def maximum_frame_count(self) -> int:
        return self.config.block_size

    def __enter__(self) -> "RenderGraph":
        if self._closed:
            raise RenderSetupError("Render graph has already been torn down")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Release the shifter and buffered audio."""
        if not self._closed:
            logger.debug("Tearing down render graph at frame %d", self.sample_time)
        self._closed = True
        self.shifter = None
        self._ready = np.zeros((0, self.source.channels), dtype=np.float32)

    def render_offline(self, frame_count: int) -> Tuple[RenderStatus, np.ndarray]:
        """
        Render the next ``frame_count`` frames.

        Args:
            frame_count: Frames to render, at most ``maximum_frame_count``

        Returns:
            Tuple of (status, block). The block is empty unless status is
            SUCCESS. Asking for more frames than remain in the source is
            reported as INSUFFICIENT_DATA.
        """
        empty = np.zeros((0, self.source.channels), dtype=np.float32)
        if self._closed:
            return RenderStatus.ERROR, empty
        if frame_count <= 0 or frame_count > self.maximum_frame_count:
            return RenderStatus.ERROR, empty
        if frame_count > self.length - self.sample_time:
            return RenderStatus.INSUFFICIENT_DATA, empty

        try:
            while self._ready.shape[0] < frame_count:
                self._pull()
        except (ValueError, FloatingPointError) as e:
            logger.error("Shift stage failed at frame %d: %s", self.sample_time, e)
            return RenderStatus.ERROR, empty

        block = self._ready[:frame_count]
        self._ready = self._ready[frame_count:]
        self.sample_time += frame_count
        return RenderStatus.SUCCESS, block

    def _pull(self) -> None:
        """Push one block of source (or flush silence) through the shifter."""
        size = self.config.block_size
        chunk = self.source.frames(self._read_position, size)
        if chunk.shape[0] == 0:
            chunk = np.zeros((size, self.source.channels), dtype=np.float32)
        self._read_position += chunk.shape[0]

        shifted = self.shifter.process(chunk)
        if self._to_discard:
            skip = min(self._to_discard, shifted.shape[0])
            shifted = shifted[skip:]
            self._to_discard -= skip
        self._ready = np.concatenate([self._ready, shifted])
