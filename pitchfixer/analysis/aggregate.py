"""Robust aggregation of per-frame deviations into one tuning estimate."""

from typing import Sequence

import numpy as np

from ..core import PitchAnalysisResult, AnalysisStatus
from ..core.constants import CENTS_PER_OCTAVE, REFERENCE_HZ


class OffsetAggregator:
    """Reduce deviation samples to a single correction.

    Uses the median rather than the mean: monophonic estimators on real
    material produce octave jumps and noise readings that would drag a
    mean far from the true cluster.
    """

    def aggregate(self, samples: Sequence[float]) -> PitchAnalysisResult:
        """
        Compute the consensus deviation.

        Args:
            samples: Deviations in cents from the A440 grid

        Returns:
            PitchAnalysisResult whose ``cents_offset`` is the correction to
            apply (the negated median deviation) and the spread of the
            readings around it. An empty input yields the
            zero-reliability sentinel. Low counts are reported, not rejected.
        """
        if len(samples) == 0:
            return PitchAnalysisResult.empty(AnalysisStatus.NO_PITCH)

        ordered = sorted(float(s) for s in samples)
        median = ordered[len(ordered) // 2]
        detected_hz = REFERENCE_HZ * 2.0 ** (median / CENTS_PER_OCTAVE)

        return PitchAnalysisResult(
            detected_hz=float(detected_hz),
            cents_offset=-median if median != 0 else 0.0,
            reliability=len(ordered),
            status=AnalysisStatus.OK,
            spread_cents=self.spread(ordered),
        )

    @staticmethod
    def spread(samples: Sequence[float]) -> float:
        """Median absolute deviation of the samples, in cents."""
        if len(samples) == 0:
            return 0.0
        values = np.asarray(samples, dtype=np.float64)
        return float(np.median(np.abs(values - np.median(values))))
