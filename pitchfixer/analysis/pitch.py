"""Frame-level fundamental frequency estimation."""

import numpy as np
from typing import Optional

from ..core import AnalysisFrame, PitchObservation, AnalysisConfig, PITCH_NAMES
from ..core.constants import CENTS_PER_OCTAVE, REFERENCE_HZ, REFERENCE_MIDI, SEMITONES_PER_OCTAVE

# Below this RMS a frame is treated as digital silence.
_SILENCE_FLOOR = 1e-6


class FrequencyEstimator:
    """Estimate the fundamental frequency of one frame using YIN.

    The difference function is computed through an FFT autocorrelation,
    normalized by its cumulative mean, and the first dip under
    ``yin_threshold`` within the allowed lag range is refined with
    parabolic interpolation. Alongside the frequency the estimator
    reports the frame RMS as amplitude and ``1 - d'(tau)`` as clarity.

    Frames without a trustworthy pitch (silence, noise, too short) come
    back with ``amplitude=0`` rather than raising, so callers can drop
    them with a single threshold comparison.
    """

    def __init__(
        self,
        fmin: float = 65.0,  # C2
        fmax: float = 2093.0,  # C7
        yin_threshold: float = 0.15,
        min_clarity: float = 0.5,
    ):
        self.fmin = fmin
        self.fmax = fmax
        self.yin_threshold = yin_threshold
        self.min_clarity = min_clarity

    @classmethod
    def from_config(cls, config: AnalysisConfig) -> "FrequencyEstimator":
        return cls(
            fmin=config.fmin,
            fmax=config.fmax,
            yin_threshold=config.yin_threshold,
            min_clarity=config.min_clarity,
        )

    def estimate(self, frame: AnalysisFrame) -> PitchObservation:
        """
        Estimate pitch for a single frame.

        Args:
            frame: Mono analysis frame

        Returns:
            PitchObservation; amplitude is 0 when the pitch is indeterminate
        """
        x = np.asarray(frame.samples, dtype=np.float64).ravel()
        sr = frame.sample_rate

        if x.size == 0 or sr <= 0 or not np.all(np.isfinite(x)):
            return PitchObservation(0.0, 0.0, 0.0)

        x = x - x.mean()
        rms = float(np.sqrt(np.mean(x ** 2)))
        if rms < _SILENCE_FLOOR:
            return PitchObservation(0.0, 0.0, 0.0)

        tau_min = max(2, int(np.floor(sr / self.fmax)))
        tau_max = min(int(np.ceil(sr / self.fmin)), x.size // 2)
        if tau_max <= tau_min + 1:
            return PitchObservation(0.0, 0.0, 0.0)

        cmnd = self._cumulative_mean_normalized_difference(x, tau_max)
        tau = self._pick_lag(cmnd, tau_min, tau_max)
        if tau is None:
            return PitchObservation(0.0, 0.0, 0.0)

        clarity = float(np.clip(1.0 - cmnd[tau], 0.0, 1.0))
        period = tau + self._parabolic_offset(cmnd, tau, tau_max)
        if period <= 0:
            return PitchObservation(0.0, 0.0, clarity)

        frequency = sr / period
        if clarity < self.min_clarity or not self.fmin <= frequency <= self.fmax:
            return PitchObservation(float(frequency), 0.0, clarity)

        return PitchObservation(float(frequency), rms, clarity)

    def _cumulative_mean_normalized_difference(
        self, x: np.ndarray, tau_max: int
    ) -> np.ndarray:
        """YIN d'(tau) for tau in [0, tau_max]."""
        n = x.size
        n_fft = 1 << (2 * n - 1).bit_length()
        spectrum = np.fft.rfft(x, n_fft)
        acf = np.fft.irfft(spectrum * np.conj(spectrum), n_fft)[: tau_max + 1]

        energy = np.concatenate([[0.0], np.cumsum(x ** 2)])
        taus = np.arange(tau_max + 1)
        # Energy of x[0:n-tau] and x[tau:n]
        head = energy[n - taus]
        tail = energy[n] - energy[taus]
        diff = np.maximum(head + tail - 2.0 * acf, 0.0)

        cmnd = np.ones(tau_max + 1)
        running = np.cumsum(diff[1:])
        with np.errstate(divide="ignore", invalid="ignore"):
            cmnd[1:] = np.where(running > 0, diff[1:] * taus[1:] / running, 1.0)
        return cmnd

    def _pick_lag(self, cmnd: np.ndarray, tau_min: int, tau_max: int) -> Optional[int]:
        """First dip under the threshold, walked down to its local minimum."""
        below = np.nonzero(cmnd[tau_min:tau_max] < self.yin_threshold)[0]
        if below.size:
            tau = tau_min + int(below[0])
            while tau + 1 < tau_max and cmnd[tau + 1] < cmnd[tau]:
                tau += 1
            return tau

        # No dip under threshold: fall back to the global minimum
        tau = tau_min + int(np.argmin(cmnd[tau_min:tau_max]))
        return tau if np.isfinite(cmnd[tau]) else None

    @staticmethod
    def _parabolic_offset(cmnd: np.ndarray, tau: int, tau_max: int) -> float:
        if tau < 1 or tau + 1 > tau_max:
            return 0.0
        a, b, c = cmnd[tau - 1], cmnd[tau], cmnd[tau + 1]
        denom = a - 2.0 * b + c
        if abs(denom) < 1e-12:
            return 0.0
        offset = 0.5 * (a - c) / denom
        return float(np.clip(offset, -1.0, 1.0))


def frequency_to_midi(frequency_hz: float, reference_hz: float = REFERENCE_HZ) -> float:
    """Fractional MIDI note number for a frequency on the A4 grid."""
    return SEMITONES_PER_OCTAVE * np.log2(frequency_hz / reference_hz) + REFERENCE_MIDI


def cents_to_ratio(cents: float) -> float:
    """Frequency ratio for an interval in cents."""
    return float(2.0 ** (cents / CENTS_PER_OCTAVE))


def note_name(frequency_hz: float) -> str:
    """Name of the nearest equal-tempered note, e.g. 432 Hz -> 'A4'."""
    midi = int(round(frequency_to_midi(frequency_hz)))
    octave, pitch_class = divmod(midi, SEMITONES_PER_OCTAVE)
    return f"{PITCH_NAMES[pitch_class]}{octave - 1}"
