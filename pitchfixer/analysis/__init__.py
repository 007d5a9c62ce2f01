"""Analysis layer - Estimate the tuning reference of a recording.

- Frame-level fundamental frequency estimation
- Pitch tracking over a bounded excerpt
- Median aggregation into a single cents offset
"""

from .pitch import FrequencyEstimator, frequency_to_midi, cents_to_ratio, note_name
from .tracker import PitchTracker
from .aggregate import OffsetAggregator

__all__ = [
    "FrequencyEstimator",
    "PitchTracker",
    "OffsetAggregator",
    "frequency_to_midi",
    "cents_to_ratio",
    "note_name",
]
