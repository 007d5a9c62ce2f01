"""Exception hierarchy for PitchFixer.

These are raised inside the analysis and render layers. The service layer
catches them at the operation boundary and turns them into tagged results,
so callers of ``PitchCorrectionService`` never see them directly.
"""


class PitchFixerError(Exception):
    """Base class for all PitchFixer errors."""


class SourceDecodeError(PitchFixerError):
    """The source file exists but could not be decoded into samples."""


class RenderSetupError(PitchFixerError):
    """The render pipeline could not be configured (shift amount, encoder, destination)."""


class BlockRenderError(PitchFixerError):
    """A single render block did not complete successfully."""

    def __init__(self, message: str, block_index: int = -1, status=None):
        super().__init__(message)
        self.block_index = block_index
        self.status = status


class DestinationBusyError(RenderSetupError):
    """Another render already targets the same output path."""


class OperationCancelled(PitchFixerError):
    """A cooperative cancellation request was honoured."""


class EncoderError(PitchFixerError):
    """The output encoder rejected audio or failed to finalize the file."""
