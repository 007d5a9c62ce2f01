"""Streaming pitch shifter for block-by-block offline rendering."""

import math
import numpy as np
from scipy.signal import get_window

from ..analysis.pitch import cents_to_ratio
from ..core import RenderSetupError
from ..core.constants import (
    DEFAULT_FFT_SIZE,
    DEFAULT_OVERSAMPLING,
    MAX_SHIFT_RATIO,
    MIN_SHIFT_RATIO,
)


class PhaseVocoderShifter:
    """Duration-preserving pitch shift with state carried across blocks.

    Each analysis frame is moved to the frequency domain, its bins are
    remapped to ``k * ratio`` with their true frequencies scaled by the
    same ratio, and phases are re-accumulated so consecutive frames stay
    coherent. Output is overlap-added with a periodic Hann window.

    ``process`` always returns as many frames as it receives; the signal
    comes out ``latency`` frames late. Feeding ``latency`` frames of
    silence after the last real block flushes the tail.
    """

    def __init__(
        self,
        cents: float,
        sample_rate: int,
        channels: int,
        fft_size: int = DEFAULT_FFT_SIZE,
        oversampling: int = DEFAULT_OVERSAMPLING,
    ):
        """
        Args:
            cents: Shift amount; positive raises pitch
            sample_rate: Sample rate of the material
            channels: Number of interleaved channels per frame
            fft_size: Analysis frame size (power of two)
            oversampling: Frames per ``fft_size`` (hop = fft_size / oversampling)

        Raises:
            RenderSetupError: If the shift amount or layout is unusable
        """
        if cents is None or not math.isfinite(cents):
            raise RenderSetupError(f"Shift amount must be finite, got {cents!r}")
        try:
            ratio = cents_to_ratio(cents)
        except OverflowError:
            ratio = math.inf
        if not MIN_SHIFT_RATIO <= ratio <= MAX_SHIFT_RATIO:
            raise RenderSetupError(
                f"Shift of {cents:+.1f} cents is outside the supported range"
            )
        if channels < 1 or sample_rate <= 0:
            raise RenderSetupError(
                f"Invalid layout: {channels} channels @ {sample_rate} Hz"
            )

        self.cents = float(cents)
        self.ratio = ratio
        self.sample_rate = sample_rate
        self.channels = channels
        self.fft_size = fft_size
        self.oversampling = oversampling
        self.step = fft_size // oversampling
        self.bypass = cents == 0

        bins = fft_size // 2 + 1
        self._window = get_window("hann", fft_size, fftbins=True)[:, np.newaxis]
        # Periodic Hann squared sums to 3/8 * oversampling under overlap-add
        self._gain = 1.0 / (0.375 * oversampling)
        self._bin_index = np.arange(bins)
        self._expected = 2.0 * np.pi * self.step / fft_size  # phase advance per bin
        self._bin_hz = sample_rate / fft_size

        self._input = np.zeros((fft_size - self.step, channels))
        self._accum = np.zeros((fft_size, channels))
        self._pending = np.zeros((self.step, channels))
        self._last_phase = np.zeros((bins, channels))
        self._sum_phase = np.zeros((bins, channels))

        target = (self._bin_index * ratio).astype(int)
        keep = target < bins
        self._source_bins = self._bin_index[keep]
        self._target_bins = target[keep]

    @property
    def latency(self) -> int:
        """Frames between a sample entering and leaving the shifter."""
        return self.fft_size

    def process(self, block: np.ndarray) -> np.ndarray:
        """
        Shift one block.

        Args:
            block: Array of shape (frames, channels)

        Returns:
            Array of the same shape, delayed by ``latency`` frames
        """
        block = np.asarray(block, dtype=np.float64)
        if block.ndim == 1:
            block = block[:, np.newaxis]
        if block.shape[1] != self.channels:
            raise ValueError(
                f"Expected {self.channels} channels, got {block.shape[1]}"
            )

        self._input = np.concatenate([self._input, block])
        produced = [self._pending]
        while self._input.shape[0] >= self.fft_size:
            frame = self._input[: self.fft_size]
            produced.append(self._process_frame(frame))
            self._input = self._input[self.step:]

        output = np.concatenate(produced)
        n = block.shape[0]
        self._pending = output[n:]
        return output[:n].astype(np.float32)

    def _process_frame(self, frame: np.ndarray) -> np.ndarray:
        """Run one analysis/synthesis frame; returns ``step`` finished frames."""
        if self.bypass:
            synth = frame * self._window ** 2
        else:
            synth = self._shift_spectrum(frame) * self._window

        self._accum += synth * self._gain
        finished = self._accum[: self.step].copy()
        self._accum = np.concatenate(
            [self._accum[self.step:], np.zeros((self.step, self.channels))]
        )
        return finished

    def _shift_spectrum(self, frame: np.ndarray) -> np.ndarray:
        k = self._bin_index[:, np.newaxis]
        spectrum = np.fft.rfft(frame * self._window, axis=0)
        magnitude = np.abs(spectrum)
        phase = np.angle(spectrum)

        # True frequency of each bin from its phase advance since the last frame
        delta = phase - self._last_phase - k * self._expected
        self._last_phase = phase
        delta = np.mod(delta + np.pi, 2.0 * np.pi) - np.pi
        true_hz = (k + delta * self.oversampling / (2.0 * np.pi)) * self._bin_hz

        shifted_mag = np.zeros_like(magnitude)
        shifted_hz = np.zeros_like(true_hz)
        np.add.at(shifted_mag, self._target_bins, magnitude[self._source_bins])
        shifted_hz[self._target_bins] = true_hz[self._source_bins] * self.ratio

        advance = (shifted_hz / self._bin_hz - k) * 2.0 * np.pi / self.oversampling
        self._sum_phase += advance + k * self._expected
        return np.fft.irfft(shifted_mag * np.exp(1j * self._sum_phase), self.fft_size, axis=0)
