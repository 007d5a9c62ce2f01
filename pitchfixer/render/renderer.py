"""Offline rendering of a pitch-corrected copy of a recording."""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional, Union

import numpy as np
import librosa

from ..core import (
    AudioStream,
    CorrectionRequest,
    CorrectionOutcome,
    OutputFormat,
    AAC_M4A,
    RenderConfig,
    PitchFixerError,
    BlockRenderError,
    OperationCancelled,
)
from .encoder import Encoder, open_encoder
from .graph import RenderGraph, RenderStatus

logger = logging.getLogger(__name__)


class OfflineRenderer:
    """Render a uniformly pitch-shifted copy, block by block.

    The loop asks the render graph for at most ``block_size`` frames at a
    time, sizing each request from the frames still remaining so the last
    block is partial rather than padded. Any block that does not render
    successfully stops the whole operation and the partial output is
    discarded. Setup problems (shift amount, destination, encoder) are
    reported before the first block.
    """

    def __init__(
        self,
        config: Optional[RenderConfig] = None,
        encoder_factory: Callable[[Path, OutputFormat], Encoder] = open_encoder,
        graph_factory: Callable[..., RenderGraph] = RenderGraph,
    ):
        self.config = config or RenderConfig()
        self.encoder_factory = encoder_factory
        self.graph_factory = graph_factory

    def render(
        self,
        request: CorrectionRequest,
        cancel: Optional[threading.Event] = None,
    ) -> CorrectionOutcome:
        """
        Render one correction request.

        Args:
            request: Source, shift in cents, destination and output format
            cancel: Checked between blocks; when set, output is discarded

        Returns:
            CorrectionOutcome with success, failure or cancellation
        """
        destination = Path(request.destination)
        try:
            frames = self._run(request, destination, cancel)
        except OperationCancelled:
            logger.info("Render to %s cancelled", destination.name)
            return CorrectionOutcome.aborted(destination, request.cents)
        except (PitchFixerError, OSError) as e:
            logger.error("Render to %s failed: %s", destination.name, e)
            return CorrectionOutcome.failure(destination, request.cents, str(e))

        return CorrectionOutcome(
            success=True,
            destination=destination,
            cents=request.cents,
            frames_written=frames,
        )

    def render_to(
        self,
        source: AudioStream,
        cents: float,
        destination: Union[str, Path],
        output_format: OutputFormat = AAC_M4A,
        cancel: Optional[threading.Event] = None,
    ) -> CorrectionOutcome:
        """Convenience wrapper building the CorrectionRequest."""
        request = CorrectionRequest(
            source=source,
            cents=cents,
            destination=Path(destination),
            output_format=output_format,
        )
        return self.render(request, cancel)

    def _run(
        self,
        request: CorrectionRequest,
        destination: Path,
        cancel: Optional[threading.Event],
    ) -> int:
        fmt = request.output_format
        source = conform(request.source, fmt)
        block_size = self.config.block_size

        logger.info(
            "Rendering %.1fs at %+.2f cents -> %s",
            source.duration, request.cents, destination.name,
        )

        with self.graph_factory(source, request.cents, self.config) as graph, \
                self.encoder_factory(destination, fmt) as encoder:
            block_index = 0
            while graph.sample_time < source.length:
                if cancel is not None and cancel.is_set():
                    raise OperationCancelled(f"Render cancelled at block {block_index}")

                remaining = source.length - graph.sample_time
                status, block = graph.render_offline(min(remaining, block_size))
                if status is not RenderStatus.SUCCESS:
                    raise BlockRenderError(
                        f"Block {block_index} failed with status '{status.value}'",
                        block_index=block_index,
                        status=status,
                    )
                encoder.write(block)
                block_index += 1

            encoder.finalize()
            logger.debug("Rendered %d blocks", block_index)
            return encoder.frames_written


def conform(source: AudioStream, output_format: OutputFormat) -> AudioStream:
    """Resample and channel-map a stream to the fixed output layout."""
    samples = source.samples
    if source.sample_rate != output_format.sample_rate:
        samples = librosa.resample(
            np.ascontiguousarray(samples.T),
            orig_sr=source.sample_rate,
            target_sr=output_format.sample_rate,
        ).T

    channels = output_format.channels
    if samples.shape[1] != channels:
        if channels == 1:
            samples = samples.mean(axis=1, keepdims=True)
        elif samples.shape[1] == 1:
            samples = np.repeat(samples, channels, axis=1)
        else:
            samples = samples[:, :channels]

    if samples is source.samples:
        return source
    return AudioStream(samples, output_format.sample_rate)
