"""Pitch correction service: background analysis and export.

The service is the only entry point callers need. Every call returns an
``OperationHandle`` immediately and does its work on a worker thread.
Each handle resolves exactly once, and its callback (if any) runs exactly
once, through an optional ``dispatch`` function so the caller decides
which thread or event loop sees the result.

Failures never escape as exceptions: analysis reports an
``AnalysisStatus`` on its result and correction reports a
``CorrectionOutcome``.
"""

import asyncio
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Generic, Optional, Set, TypeVar, Union

from .core import (
    AudioStream,
    AnalysisConfig,
    RenderConfig,
    AnalysisStatus,
    PitchAnalysisResult,
    CorrectionRequest,
    CorrectionOutcome,
    OutputFormat,
    AAC_M4A,
    DestinationBusyError,
    OperationCancelled,
    SourceDecodeError,
)
from .input import AudioLoader
from .analysis import PitchTracker, OffsetAggregator
from .render import OfflineRenderer

logger = logging.getLogger(__name__)

T = TypeVar("T")
Source = Union[str, Path, AudioStream]
Dispatch = Callable[[Callable[[], None]], None]


class OperationHandle(Generic[T]):
    """A single in-flight analyze or correct call.

    Wraps a future that may only be resolved once; a second resolution
    raises ``RuntimeError`` instead of being silently ignored.
    """

    def __init__(
        self,
        name: str,
        callback: Optional[Callable[[T], None]] = None,
        dispatch: Optional[Dispatch] = None,
    ):
        self.name = name
        self.future: Future = Future()
        self._cancel = threading.Event()
        self._callback = callback
        self._dispatch = dispatch
        self._resolved = False
        self._lock = threading.Lock()

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel

    def cancel(self) -> None:
        """Ask the operation to stop at the next frame or block boundary."""
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: Optional[float] = None) -> T:
        """Block until the operation resolves and return its result."""
        return self.future.result(timeout)

    def resolve(self, value: T) -> None:
        """Deliver the result. Must be called exactly once."""
        with self._lock:
            if self._resolved:
                raise RuntimeError(f"{self.name} resolved twice")
            self._resolved = True
        self.future.set_result(value)

        if self._callback is None:
            return
        if self._dispatch is not None:
            self._dispatch(lambda: self._invoke(value))
        else:
            self._invoke(value)

    def _invoke(self, value: T) -> None:
        try:
            self._callback(value)
        except Exception:
            logger.exception("Callback for %s raised", self.name)


class PitchCorrectionService:
    """Analyze tuning and export corrected copies in the background.

    Holds no per-operation state: every call builds its own tracker,
    render graph and encoder. The only shared state is the set of output
    paths claimed by running or queued corrections; a second ``correct``
    aimed at a claimed destination is rejected with a failed outcome.

    The service never chains analysis into correction on its own; whether
    a result is trustworthy enough to export is the caller's decision.
    """

    def __init__(
        self,
        analysis_config: Optional[AnalysisConfig] = None,
        render_config: Optional[RenderConfig] = None,
        max_workers: int = 2,
        dispatch: Optional[Dispatch] = None,
        renderer: Optional[OfflineRenderer] = None,
    ):
        """
        Initialize PitchCorrectionService.

        Args:
            analysis_config: Window/threshold policy for analysis
            render_config: Block and shift-stage settings for export
            max_workers: Worker threads
            dispatch: Default function used to run callbacks on the
                caller's context, e.g. ``loop.call_soon_threadsafe``
            renderer: Renderer override (mainly for tests)
        """
        self.analysis_config = analysis_config or AnalysisConfig()
        self.render_config = render_config or RenderConfig()
        self.dispatch = dispatch
        self.renderer = renderer or OfflineRenderer(self.render_config)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="pitchfixer"
        )
        self._busy: Set[Path] = set()
        self._busy_lock = threading.Lock()

    def __enter__(self) -> "PitchCorrectionService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # ----- analyze -----

    def analyze(
        self,
        source: Source,
        callback: Optional[Callable[[PitchAnalysisResult], None]] = None,
        dispatch: Optional[Dispatch] = None,
    ) -> OperationHandle[PitchAnalysisResult]:
        """
        Estimate the tuning reference of a recording.

        Args:
            source: File path or decoded AudioStream
            callback: Called once with the PitchAnalysisResult
            dispatch: Overrides the service-wide dispatch for this call

        Returns:
            Handle resolving to a PitchAnalysisResult
        """
        handle = OperationHandle("analyze", callback, dispatch or self.dispatch)
        self._submit(handle, self._run_analysis, source, handle.cancel_event)
        return handle

    async def analyze_async(self, source: Source) -> PitchAnalysisResult:
        handle = self.analyze(source)
        return await asyncio.wrap_future(handle.future)

    def _run_analysis(self, source: Source, cancel: threading.Event) -> PitchAnalysisResult:
        tracker = PitchTracker(self.analysis_config)
        try:
            excerpt = self._analysis_excerpt(source, tracker)
        except (FileNotFoundError, ValueError, SourceDecodeError) as e:
            logger.warning("Cannot analyze %s: %s", _describe(source), e)
            return PitchAnalysisResult.empty(AnalysisStatus.UNREADABLE)

        try:
            deviations = tracker.track_excerpt(excerpt, cancel)
        except OperationCancelled:
            logger.info("Analysis of %s cancelled", _describe(source))
            return PitchAnalysisResult.empty(AnalysisStatus.CANCELLED)

        result = OffsetAggregator().aggregate(deviations)
        logger.info(
            "Analyzed %s: %s, offset %s, %d frames",
            _describe(source), result.hz_label, result.cents_label, result.reliability,
        )
        return result

    def _analysis_excerpt(self, source: Source, tracker: PitchTracker) -> AudioStream:
        """Cut the analysis window, decoding only that part of a file."""
        if isinstance(source, AudioStream):
            start, count = tracker.window_bounds(source.length, source.sample_rate)
            return AudioStream(source.frames(start, count), source.sample_rate)

        sr = self.analysis_config.analysis_sr
        loader = AudioLoader(target_sr=sr, channels=1)
        length = int(round(loader.duration(source) * sr))
        start, count = tracker.window_bounds(length, sr)
        return loader.load(source, offset=start / sr, duration=count / sr)

    # ----- correct -----

    def correct(
        self,
        source: Source,
        correction: Union[PitchAnalysisResult, float],
        destination: Union[str, Path],
        output_format: OutputFormat = AAC_M4A,
        callback: Optional[Callable[[CorrectionOutcome], None]] = None,
        dispatch: Optional[Dispatch] = None,
    ) -> OperationHandle[CorrectionOutcome]:
        """
        Render a pitch-corrected copy.

        The destination is claimed here, at submission. A call aimed at a
        path that an earlier call (running or still queued) is writing
        resolves straight away with a failed outcome.

        Args:
            source: File path or decoded AudioStream
            correction: An analysis result (its ``cents_offset`` is used
                verbatim) or a shift in cents
            destination: Output file path
            output_format: Fixed encoding target (AAC .m4a by default)
            callback: Called once with the CorrectionOutcome
            dispatch: Overrides the service-wide dispatch for this call

        Returns:
            Handle resolving to a CorrectionOutcome
        """
        handle = OperationHandle("correct", callback, dispatch or self.dispatch)
        try:
            destination = Path(destination)
            key = self._claim(destination)
        except (TypeError, OSError, DestinationBusyError) as e:
            logger.warning("Rejected correction to %s: %s", destination, e)
            handle.resolve(
                CorrectionOutcome.failure(destination, _reported_cents(correction), str(e))
            )
            return handle

        try:
            self._submit(
                handle, self._run_correction,
                source, correction, destination, output_format, handle.cancel_event, key,
            )
        except RuntimeError:
            # Executor already shut down
            self._release(key)
            raise
        return handle

    async def correct_async(
        self,
        source: Source,
        correction: Union[PitchAnalysisResult, float],
        destination: Union[str, Path],
        output_format: OutputFormat = AAC_M4A,
    ) -> CorrectionOutcome:
        handle = self.correct(source, correction, destination, output_format)
        return await asyncio.wrap_future(handle.future)

    def _run_correction(
        self,
        source: Source,
        correction: Union[PitchAnalysisResult, float],
        destination: Path,
        output_format: OutputFormat,
        cancel: threading.Event,
        key: Path,
    ) -> CorrectionOutcome:
        try:
            try:
                cents = _to_cents(correction)
            except (TypeError, ValueError) as e:
                logger.warning("Invalid correction %r: %s", correction, e)
                return CorrectionOutcome.failure(
                    destination, 0.0, f"Invalid correction {correction!r}: {e}"
                )

            try:
                stream = self._load(
                    source,
                    target_sr=output_format.sample_rate,
                    channels=output_format.channels,
                )
            except (FileNotFoundError, ValueError, SourceDecodeError) as e:
                logger.warning("Cannot read %s: %s", _describe(source), e)
                return CorrectionOutcome.failure(destination, cents, str(e))

            request = CorrectionRequest(stream, cents, destination, output_format)
            return self.renderer.render(request, cancel)
        finally:
            self._release(key)

    def _claim(self, destination: Path) -> Path:
        key = destination.expanduser().resolve()
        with self._busy_lock:
            if key in self._busy:
                raise DestinationBusyError(f"A render to {destination} is already in progress")
            self._busy.add(key)
        return key

    def _release(self, key: Path) -> None:
        with self._busy_lock:
            self._busy.discard(key)

    # ----- plumbing -----

    def _load(self, source: Source, target_sr, channels) -> AudioStream:
        if isinstance(source, AudioStream):
            return source
        return AudioLoader(target_sr=target_sr, channels=channels).load(source)

    def _submit(self, handle: OperationHandle, fn, *args) -> None:
        def run():
            try:
                value = fn(*args)
            except Exception as e:
                # Last line of defence: unexpected errors still resolve the handle.
                logger.exception("%s failed unexpectedly", handle.name)
                value = self._unexpected_failure(handle, args, e)
            handle.resolve(value)

        self._executor.submit(run)

    @staticmethod
    def _unexpected_failure(handle: OperationHandle, args, error: Exception):
        if handle.name == "analyze":
            return PitchAnalysisResult.empty(AnalysisStatus.UNREADABLE)
        correction, destination = args[1], args[2]
        return CorrectionOutcome.failure(
            destination, _reported_cents(correction), f"Unexpected error: {error}"
        )


def _to_cents(correction: Union[PitchAnalysisResult, float]) -> float:
    if isinstance(correction, PitchAnalysisResult):
        return correction.cents_offset
    return float(correction)


def _reported_cents(correction) -> float:
    """Shift to report on a failed outcome; 0.0 when the value is unusable."""
    try:
        return _to_cents(correction)
    except (TypeError, ValueError):
        return 0.0


def _describe(source: Source) -> str:
    if isinstance(source, AudioStream):
        return repr(source)
    return Path(source).name
