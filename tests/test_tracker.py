"""Tests for pitch tracking and median aggregation."""

import threading

import numpy as np
import pytest

from pitchfixer.analysis import PitchTracker, OffsetAggregator
from pitchfixer.core import (
    AudioStream,
    AnalysisConfig,
    AnalysisStatus,
    PitchAnalysisResult,
    OperationCancelled,
)

from conftest import generate_sine_wave


def offset_of(stream, config=None):
    deviations = PitchTracker(config).track(stream)
    return OffsetAggregator().aggregate(deviations)


class TestWindowBounds:
    """The analysis excerpt starts a quarter in and spans three seconds."""

    def test_long_file(self):
        start, count = PitchTracker().window_bounds(8 * 22050, 22050)
        assert start == 2 * 22050
        assert count == 3 * 22050

    def test_stops_early_at_end_of_file(self):
        start, count = PitchTracker().window_bounds(2 * 44100, 44100)
        assert start == 44100 // 2
        assert count == 2 * 44100 - start

    def test_short_file_keeps_offset_while_a_frame_fits(self):
        # 2250 frames remain after the quarter point, enough for one 2048 frame
        start, count = PitchTracker().window_bounds(3000, 22050)
        assert (start, count) == (750, 2250)

    def test_tiny_file_starts_at_beginning(self):
        # Only 1875 frames would remain after the quarter point
        start, count = PitchTracker().window_bounds(2500, 22050)
        assert (start, count) == (0, 2500)

    def test_custom_policy(self):
        config = AnalysisConfig(start_fraction=0.0, window_seconds=1.0)
        start, count = PitchTracker(config).window_bounds(10 * 22050, 22050)
        assert (start, count) == (0, 22050)


class TestDeviation:
    @pytest.mark.parametrize("freq", [110.0, 220.0, 440.0, 466.16, 880.0])
    def test_equal_tempered_notes_are_near_zero(self, freq):
        assert abs(PitchTracker().deviation_cents(freq)) < 0.1

    def test_432_is_flat(self):
        assert PitchTracker().deviation_cents(432.0) == pytest.approx(-31.77, abs=0.01)

    def test_stays_within_half_semitone(self):
        tracker = PitchTracker()
        for freq in np.geomspace(100.0, 1000.0, 500):
            d = tracker.deviation_cents(freq)
            assert -50.0 < d <= 50.0 + 1e-9, f"{freq:.2f} Hz -> {d}"

    def test_anchor_measures_against_pitch_class(self):
        tracker = PitchTracker(AnalysisConfig(anchor_note=69))

        assert tracker.deviation_cents(415.3) == pytest.approx(-100.0, abs=0.1)
        assert tracker.deviation_cents(880.0) == pytest.approx(0.0, abs=1e-6)


class TestPitchTracker:
    def test_a440_tone(self, tone):
        deviations = PitchTracker().track(tone(440.0))

        # 1 + (3 s * 22050 - 2048) // 1024 frames in the window
        assert len(deviations) == 63
        assert all(abs(d) < 5.0 for d in deviations), f"Deviations: {deviations[:5]}"

    def test_stereo_44100_source(self, tone):
        deviations = PitchTracker().track(tone(432.0, sr=44100, channels=2))

        assert len(deviations) > 50
        assert np.median(deviations) == pytest.approx(-31.77, abs=3.0)

    def test_silence_yields_no_samples(self, silence):
        assert PitchTracker().track(silence()) == []

    def test_noise_yields_few_samples(self, white_noise):
        deviations = PitchTracker().track(white_noise())
        assert len(deviations) < 5

    def test_unvoiced_frames_are_dropped_not_zero_filled(self):
        sr = 22050
        audio = generate_sine_wave(432.0, 8.0, sr)
        audio[int(3.5 * sr):int(5.0 * sr)] = 0.0

        deviations = PitchTracker().track(AudioStream(audio, sr))

        assert 0 < len(deviations) < 63
        # A zero-filled frame would show up as a 0 cents sample
        assert not any(abs(d) < 1.0 for d in deviations)
        assert np.median(deviations) == pytest.approx(-31.77, abs=3.0)

    def test_shorter_than_one_frame(self):
        stream = AudioStream(generate_sine_wave(440.0, 0.05, 22050), 22050)
        assert PitchTracker().track(stream) == []

    def test_cancel_stops_pass(self, tone):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelled):
            PitchTracker().track(tone(440.0), cancel)

    def test_cancel_mid_pass(self, tone):
        cancel = threading.Event()
        seen = []
        observations = PitchTracker().iter_observations(tone(440.0), cancel)

        with pytest.raises(OperationCancelled):
            for obs in observations:
                seen.append(obs)
                if len(seen) == 10:
                    cancel.set()
        assert len(seen) == 10


class TestOffsetAggregator:
    def test_empty_is_sentinel(self):
        result = OffsetAggregator().aggregate([])

        assert result == PitchAnalysisResult.empty()
        assert result.status is AnalysisStatus.NO_PITCH
        assert not result.has_pitch

    def test_zero_samples_are_not_the_sentinel(self):
        result = OffsetAggregator().aggregate([0.0, 0.0, 0.0])

        assert result.reliability == 3
        assert result.cents_offset == 0.0
        assert result.detected_hz == pytest.approx(440.0)
        assert result.status is AnalysisStatus.OK
        assert result != PitchAnalysisResult.empty()

    def test_upper_median_of_even_count(self):
        result = OffsetAggregator().aggregate([4.0, 1.0, 3.0, 2.0])
        assert result.cents_offset == -3.0

    def test_offset_is_negated_median(self):
        result = OffsetAggregator().aggregate([7.85, 7.8, 7.9])

        assert result.cents_offset == pytest.approx(-7.85)
        assert result.detected_hz == pytest.approx(442.0, abs=0.05)

    def test_432_reference(self):
        result = OffsetAggregator().aggregate([-31.77] * 10)

        assert result.detected_hz == pytest.approx(432.0, abs=0.01)
        assert result.cents_offset == pytest.approx(31.77)

    def test_robust_to_outliers(self):
        samples = [-10.0, -11.0, -9.0, -10.0, -10.5, 45.0]
        result = OffsetAggregator().aggregate(samples)

        assert result.cents_offset == pytest.approx(10.0)
        assert abs(np.mean(samples) + 10.0) > 5.0

    def test_low_count_is_reported_not_rejected(self):
        result = OffsetAggregator().aggregate([12.0])

        assert result.reliability == 1
        assert result.cents_offset == -12.0
        assert not result.is_reliable(3)

    def test_result_carries_spread(self):
        result = OffsetAggregator().aggregate([1.0, 2.0, 3.0, 4.0, 100.0])
        assert result.spread_cents == pytest.approx(1.0)
        assert PitchAnalysisResult.empty().spread_cents == 0.0

    def test_spread(self):
        assert OffsetAggregator.spread([]) == 0.0
        assert OffsetAggregator.spread([1.0, 2.0, 3.0, 4.0, 100.0]) == pytest.approx(1.0)

    def test_labels(self):
        result = OffsetAggregator().aggregate([-31.77])

        assert result.hz_label == "432.0 Hz"
        assert result.cents_label == "+31.8 cents"


class TestTuningEstimates:
    """End-to-end estimates on synthetic tones."""

    def test_a440_needs_no_correction(self, tone):
        result = offset_of(tone(440.0))

        assert result.status is AnalysisStatus.OK
        assert abs(result.cents_offset) < 3.0
        assert result.detected_hz == pytest.approx(440.0, abs=1.0)

    def test_a432(self, tone):
        result = offset_of(tone(432.0))

        assert result.cents_offset == pytest.approx(31.77, abs=3.0)
        assert result.detected_hz == pytest.approx(432.0, abs=1.0)

    def test_a415_folds_to_nearest_semitone(self, tone):
        result = offset_of(tone(415.3))
        assert abs(result.cents_offset) < 3.0

    def test_a415_against_anchor(self, tone):
        result = offset_of(tone(415.3), AnalysisConfig(anchor_note=69))
        assert result.cents_offset == pytest.approx(100.0, abs=3.0)

    def test_estimates_are_deterministic(self, tone):
        stream = tone(442.0)
        assert offset_of(stream) == offset_of(stream)

    @pytest.mark.parametrize("freq", [110.0, 432.0, 442.0])
    def test_sub_cent_accuracy(self, tone, freq):
        """Steady tones are measured to within half a cent of their true offset."""
        tracker = PitchTracker()
        result = offset_of(tone(freq))

        expected = -tracker.deviation_cents(freq)
        assert abs(result.cents_offset - expected) < 0.5, (
            f"{freq} Hz: expected {expected:+.3f} cents, got {result.cents_offset:+.3f}"
        )

    def test_track_excerpt_uses_whole_input(self, tone):
        excerpt = tone(440.0, duration=3.0)
        tracker = PitchTracker()

        assert len(tracker.track_excerpt(excerpt)) == 63
        # The windowed pass only sees the 2.25 s after the quarter point
        assert len(tracker.track(excerpt)) < 63
