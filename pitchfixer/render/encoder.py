"""Output encoders for rendered audio.

Encoders never write to the destination directly. Audio goes to a hidden
partial file beside it, which is moved into place by ``finalize()`` and
deleted by ``abort()``, so a failed or cancelled render leaves nothing
behind at the destination path.
"""

import logging
import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import soundfile as sf

from ..core import OutputFormat, RenderSetupError, EncoderError

logger = logging.getLogger(__name__)


class Encoder(ABC):
    """Writes blocks of (frames, channels) float audio to one destination."""

    def __init__(self, destination: Union[str, Path], output_format: OutputFormat):
        self.destination = Path(destination)
        self.output_format = output_format
        self.partial_path = self.destination.with_name(
            f".{self.destination.stem}.partial{self.destination.suffix}"
        )
        self.frames_written = 0
        self._finalized = False
        self._opened = False

    def __enter__(self) -> "Encoder":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._finalized:
            self.abort()

    def open(self) -> None:
        """Prepare the partial file. Raises RenderSetupError on failure."""
        try:
            self.destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RenderSetupError(f"Cannot create {self.destination.parent}: {e}") from e
        if self.destination.is_dir():
            raise RenderSetupError(f"Destination is a directory: {self.destination}")
        self._open()
        self._opened = True

    def write(self, block: np.ndarray) -> None:
        """Append a block. Raises EncoderError if the encoder fails."""
        if not self._opened or self._finalized:
            raise EncoderError("Encoder is not open")
        block = np.asarray(block, dtype=np.float32)
        if block.ndim != 2 or block.shape[1] != self.output_format.channels:
            raise EncoderError(
                f"Expected blocks of {self.output_format.channels} channels, "
                f"got shape {block.shape}"
            )
        self._write(block)
        self.frames_written += block.shape[0]

    def finalize(self) -> Path:
        """Close the stream and move the finished file into place."""
        self._close()
        try:
            os.replace(self.partial_path, self.destination)
        except OSError as e:
            self.abort()
            raise EncoderError(f"Cannot move output into place: {e}") from e
        self._finalized = True
        logger.debug("Wrote %d frames to %s", self.frames_written, self.destination)
        return self.destination

    def abort(self) -> None:
        """Stop encoding and delete any partial output."""
        try:
            self._kill()
        finally:
            self._finalized = True
            if self.partial_path.exists():
                self.partial_path.unlink()
                logger.debug("Discarded partial output %s", self.partial_path)

    @abstractmethod
    def _open(self) -> None:
        pass

    @abstractmethod
    def _write(self, block: np.ndarray) -> None:
        pass

    @abstractmethod
    def _close(self) -> None:
        """Flush and close normally; raise EncoderError on failure."""

    @abstractmethod
    def _kill(self) -> None:
        """Release resources without producing a valid file."""


class SoundFileEncoder(Encoder):
    """PCM output through libsndfile."""

    def __init__(self, destination, output_format: OutputFormat):
        super().__init__(destination, output_format)
        self._file: Optional[sf.SoundFile] = None

    def _open(self) -> None:
        fmt = self.output_format
        try:
            self._file = sf.SoundFile(
                str(self.partial_path),
                mode="w",
                samplerate=fmt.sample_rate,
                channels=fmt.channels,
                format=fmt.container,
                subtype=fmt.subtype,
            )
        except (RuntimeError, OSError, ValueError) as e:
            raise RenderSetupError(f"Cannot open {self.destination} for writing: {e}") from e

    def _write(self, block: np.ndarray) -> None:
        try:
            self._file.write(np.clip(block, -1.0, 1.0))
        except (RuntimeError, OSError) as e:
            raise EncoderError(f"Write failed: {e}") from e

    def _close(self) -> None:
        if self._file is not None:
            try:
                self._file.close()
            except (RuntimeError, OSError) as e:
                raise EncoderError(f"Cannot close output: {e}") from e
            finally:
                self._file = None

    def _kill(self) -> None:
        if self._file is not None:
            try:
                self._file.close()
            except (RuntimeError, OSError) as e:
                logger.debug("Ignoring close error while aborting: %s", e)
            self._file = None


def find_ffmpeg() -> Optional[str]:
    """Locate an ffmpeg binary (bundled with imageio-ffmpeg, else on PATH)."""
    try:
        import imageio_ffmpeg
        return imageio_ffmpeg.get_ffmpeg_exe()
    except (ImportError, RuntimeError):
        return shutil.which("ffmpeg")


class FFmpegEncoder(Encoder):
    """Compressed output by piping raw float PCM into ffmpeg.

    Writes to the pipe block until ffmpeg has consumed earlier audio,
    which keeps the renderer from running ahead of the encoder.
    """

    def __init__(self, destination, output_format: OutputFormat, ffmpeg: Optional[str] = None):
        super().__init__(destination, output_format)
        self.ffmpeg = ffmpeg
        self._process: Optional[subprocess.Popen] = None

    def command(self) -> List[str]:
        fmt = self.output_format
        cmd = [
            self.ffmpeg,
            "-hide_banner", "-nostats", "-loglevel", "error", "-y",
            "-f", "f32le",
            "-ar", str(fmt.sample_rate),
            "-ac", str(fmt.channels),
            "-i", "pipe:0",
            "-c:a", fmt.codec,
        ]
        if fmt.bit_rate:
            cmd += ["-b:a", str(fmt.bit_rate)]
        cmd += ["-f", fmt.container, str(self.partial_path)]
        return cmd

    def _open(self) -> None:
        self.ffmpeg = self.ffmpeg or find_ffmpeg()
        if not self.ffmpeg:
            raise RenderSetupError(
                "ffmpeg not found. Run: pip install imageio-ffmpeg"
            )
        try:
            self._process = subprocess.Popen(
                self.command(),
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise RenderSetupError(f"Cannot start ffmpeg: {e}") from e

    def _write(self, block: np.ndarray) -> None:
        try:
            self._process.stdin.write(np.ascontiguousarray(block).tobytes())
        except (BrokenPipeError, OSError) as e:
            raise EncoderError(f"ffmpeg stopped accepting audio: {self._stderr()}") from e

    def _close(self) -> None:
        if self._process is None:
            return
        process, self._process = self._process, None
        _, err = process.communicate()
        if process.returncode != 0:
            message = err.decode(errors="replace").strip() if err else ""
            raise EncoderError(f"ffmpeg exited with {process.returncode}: {message}")

    def _kill(self) -> None:
        if self._process is None:
            return
        if self._process.poll() is None:
            self._process.kill()
        self._process.wait()
        for stream in (self._process.stdin, self._process.stderr):
            if stream is not None:
                try:
                    stream.close()
                except OSError as e:
                    logger.debug("Ignoring pipe close error while aborting: %s", e)
        self._process = None

    def _stderr(self) -> str:
        if self._process is None or self._process.stderr is None:
            return ""
        if self._process.poll() is None:
            return ""
        return self._process.stderr.read().decode(errors="replace").strip()


def open_encoder(destination, output_format: OutputFormat) -> Encoder:
    """Pick the encoder for a format. The caller enters the returned context."""
    if output_format.is_pcm:
        return SoundFileEncoder(destination, output_format)
    return FFmpegEncoder(destination, output_format)
