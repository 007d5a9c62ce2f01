"""Tests for core types, configuration and audio loading."""

import numpy as np
import pytest

from pitchfixer.core import (
    AudioStream,
    AnalysisConfig,
    RenderConfig,
    AnalysisStatus,
    PitchAnalysisResult,
    PitchObservation,
    CorrectionOutcome,
    SourceDecodeError,
    AAC_M4A,
    PCM_WAV,
    OUTPUT_FORMATS,
)
from pitchfixer.input import AudioLoader


class TestAudioStream:
    def test_mono_input_becomes_one_channel(self):
        stream = AudioStream(np.zeros(100), 22050)

        assert stream.channels == 1
        assert stream.length == len(stream) == 100
        assert stream.samples.dtype == np.float32

    def test_is_immutable(self):
        data = np.ones((10, 2), dtype=np.float32)
        stream = AudioStream(data, 44100)
        data[:] = 0.0

        assert np.all(stream.samples == 1.0)
        with pytest.raises(ValueError):
            stream.samples[0, 0] = 5.0
        with pytest.raises(ValueError):
            stream.frames(0, 5)[0, 0] = 5.0

    def test_frames_clamped(self):
        stream = AudioStream(np.arange(10, dtype=np.float32), 10)

        assert stream.frames(8, 5).shape == (2, 1)
        assert stream.frames(20, 5).shape == (0, 1)
        assert stream.frames(-3, 5)[:, 0].tolist() == [0.0, 1.0]
        assert stream.frames(-10, 5).shape == (0, 1)
        assert stream.frames(-2, 100).shape == (10, 1)

    def test_duration_and_mono(self):
        stream = AudioStream(np.ones((44100, 2)), 44100)

        assert stream.duration == pytest.approx(1.0)
        assert stream.to_mono().channels == 1

    @pytest.mark.parametrize("samples, sr", [(np.zeros((2, 2, 2)), 44100), (np.zeros(10), 0)])
    def test_invalid(self, samples, sr):
        with pytest.raises(ValueError):
            AudioStream(samples, sr)


class TestResults:
    def test_observation_voicing(self):
        assert PitchObservation(440.0, 0.2).is_voiced(0.01)
        assert not PitchObservation(440.0, 0.01).is_voiced(0.01)
        assert not PitchObservation(0.0, 0.5).is_voiced(0.01)

    def test_empty_result(self):
        result = PitchAnalysisResult.empty(AnalysisStatus.CANCELLED)

        assert result.reliability == 0
        assert result.status is AnalysisStatus.CANCELLED
        assert not result.has_pitch
        assert not result.is_reliable(0)

    def test_outcome_constructors(self, tmp_path):
        failed = CorrectionOutcome.failure(tmp_path / "a.m4a", 5.0, "boom")
        aborted = CorrectionOutcome.aborted(tmp_path / "a.m4a", 5.0)

        assert not failed.success and not failed.cancelled
        assert failed.error == "boom"
        assert not aborted.success and aborted.cancelled

    def test_output_formats(self):
        assert AAC_M4A.sample_rate == PCM_WAV.sample_rate == 44100
        assert AAC_M4A.channels == 2
        assert AAC_M4A.bit_rate == 192000
        assert not AAC_M4A.is_pcm and PCM_WAV.is_pcm
        assert OUTPUT_FORMATS["m4a"] is AAC_M4A


class TestConfig:
    def test_defaults(self):
        config = AnalysisConfig()

        assert config.start_fraction == 0.25
        assert config.window_seconds == 3.0
        assert config.silence_threshold == 0.01
        assert config.window_frames == 66150

    @pytest.mark.parametrize("kwargs", [
        {"start_fraction": 1.0},
        {"window_seconds": 0},
        {"hop_length": 4096},
        {"fmin": 3000.0},
        {"fmin": 10.0},
        {"anchor_note": 200},
        {"silence_threshold": -1.0},
    ])
    def test_invalid_analysis_config(self, kwargs):
        with pytest.raises(ValueError):
            AnalysisConfig(**kwargs)

    @pytest.mark.parametrize("kwargs", [
        {"block_size": 0},
        {"fft_size": 1000},
        {"oversampling": 3},
        {"oversampling": 1},
    ])
    def test_invalid_render_config(self, kwargs):
        with pytest.raises(ValueError):
            RenderConfig(**kwargs)


class TestAudioLoader:
    def test_load_native(self, tone, wav_file):
        path = wav_file(tone(440.0, duration=1.0, sr=44100, channels=2))
        stream = AudioLoader().load(path)

        assert stream.sample_rate == 44100
        assert stream.channels == 2
        assert stream.length == 44100

    def test_load_to_output_layout(self, tone, wav_file):
        path = wav_file(tone(440.0, duration=1.0, sr=22050))
        stream = AudioLoader(target_sr=44100, channels=2).load(path)

        assert stream.sample_rate == 44100
        assert stream.channels == 2
        assert abs(stream.length - 44100) <= 1

    def test_downmix(self, tone, wav_file):
        path = wav_file(tone(440.0, duration=0.5, channels=2))
        assert AudioLoader(channels=1).load(path).channels == 1

    def test_info(self, tone, wav_file):
        path = wav_file(tone(440.0, duration=2.0, sr=22050))
        meta = AudioLoader().info(path)

        assert meta["sample_rate"] == 22050
        assert meta["frames"] == 44100
        assert meta["duration"] == pytest.approx(2.0)

    def test_load_excerpt(self, tone, wav_file):
        path = wav_file(tone(440.0, duration=4.0, sr=22050))
        stream = AudioLoader().load(path, offset=1.0, duration=2.0)

        assert abs(stream.length - 2 * 22050) <= 1

    def test_duration(self, tone, wav_file):
        path = wav_file(tone(440.0, duration=2.5, sr=22050))
        assert AudioLoader().duration(path) == pytest.approx(2.5, abs=1e-3)

    def test_duration_of_undecodable(self, tmp_path):
        path = tmp_path / "broken.wav"
        path.write_bytes(b"RIFF not really audio")
        with pytest.raises(SourceDecodeError):
            AudioLoader().duration(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AudioLoader().load(tmp_path / "missing.wav")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "song.xyz"
        path.write_bytes(b"data")
        with pytest.raises(ValueError, match="Unsupported format"):
            AudioLoader().load(path)

    def test_undecodable(self, tmp_path):
        path = tmp_path / "broken.flac"
        path.write_bytes(b"\x00" * 64)
        with pytest.raises(SourceDecodeError):
            AudioLoader().load(path)

    def test_invalid_channels(self):
        with pytest.raises(ValueError):
            AudioLoader(channels=6)
