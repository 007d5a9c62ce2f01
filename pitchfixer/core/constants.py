"""Global constants for PitchFixer."""

# Tuning grid
REFERENCE_HZ = 440.0
REFERENCE_MIDI = 69  # A4
CENTS_PER_SEMITONE = 100.0
CENTS_PER_OCTAVE = 1200.0
SEMITONES_PER_OCTAVE = 12

PITCH_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

# Analysis window policy. The excerpt starts a quarter of the way into the
# file to skip leading silence and fade-ins, then covers a few seconds.
DEFAULT_START_FRACTION = 0.25
DEFAULT_WINDOW_SECONDS = 3.0

# Frame analysis defaults
DEFAULT_ANALYSIS_SR = 22050
DEFAULT_FRAME_LENGTH = 2048
DEFAULT_HOP_LENGTH = 1024
DEFAULT_FMIN = 65.0  # C2
DEFAULT_FMAX = 2093.0  # C7

# Observation gating
DEFAULT_SILENCE_THRESHOLD = 0.01  # RMS amplitude
DEFAULT_MIN_CLARITY = 0.5
DEFAULT_YIN_THRESHOLD = 0.15
DEFAULT_MIN_RELIABLE_COUNT = 3

# Offline rendering
DEFAULT_BLOCK_SIZE = 4096
DEFAULT_FFT_SIZE = 2048
DEFAULT_OVERSAMPLING = 4
MIN_SHIFT_RATIO = 0.25
MAX_SHIFT_RATIO = 4.0

# Fixed output target
OUTPUT_SAMPLE_RATE = 44100
OUTPUT_CHANNELS = 2
OUTPUT_BIT_RATE = 192000
OUTPUT_SUFFIX = "_440Hz"
