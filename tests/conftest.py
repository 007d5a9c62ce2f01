"""Shared fixtures: synthetic tones, silence and noise as AudioStreams."""

import numpy as np
import pytest
import soundfile as sf

from pitchfixer.core import AudioStream


def generate_sine_wave(
    freq: float, duration: float, sr: int = 22050, amplitude: float = 0.5
) -> np.ndarray:
    """Generate a sine wave at given frequency."""
    t = np.arange(int(sr * duration)) / sr
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


@pytest.fixture
def sample_rate():
    return 22050


@pytest.fixture
def tone():
    """Factory for single-frequency AudioStreams."""

    def make(freq, duration=8.0, sr=22050, amplitude=0.5, channels=1):
        audio = generate_sine_wave(freq, duration, sr, amplitude)
        if channels > 1:
            audio = np.repeat(audio[:, np.newaxis], channels, axis=1)
        return AudioStream(audio, sr)

    return make


@pytest.fixture
def silence():
    def make(duration=8.0, sr=22050, channels=1):
        return AudioStream(np.zeros((int(duration * sr), channels), dtype=np.float32), sr)

    return make


@pytest.fixture
def white_noise():
    def make(duration=8.0, sr=22050, amplitude=0.1, seed=0):
        rng = np.random.default_rng(seed)
        audio = rng.standard_normal(int(duration * sr)).astype(np.float32) * amplitude
        return AudioStream(audio, sr)

    return make


@pytest.fixture
def wav_file(tmp_path):
    """Write an AudioStream to a 16-bit wav file and return its path."""

    def write(stream, name="input.wav"):
        path = tmp_path / name
        sf.write(str(path), stream.samples, stream.sample_rate, subtype="PCM_16")
        return path

    return write
