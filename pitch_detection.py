"""
Voice Pitch Detection
=====================
Single-pitch estimation for one microphone frame using the YIN algorithm
(implemented in pure numpy), plus the helpers that map a frequency to a
MIDI pitch index and a pitch index to a note label.

Reference: De Cheveigné, A., & Kawahara, H. (2002).
"YIN, a fundamental frequency estimator for speech and music."
"""

import numpy as np

# ─── YIN Pitch Detection Settings ────────────────────────────────────────────
YIN_THRESHOLD = 0.15           # lower = stricter pitch detection
YIN_FALLBACK_THRESHOLD = 0.4   # global-minimum fallback rejected above this
MIN_FRAME_LENGTH = 4           # need at least one lag comparison

# ─── Note Names ──────────────────────────────────────────────────────────────
NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
A4_FREQ = 440.0
A4_MIDI = 69
NO_NOTE = "--"


# ─── YIN Algorithm (Pure Numpy) ─────────────────────────────────────────────

def difference_function(signal: np.ndarray) -> np.ndarray:
    """d(tau) = sum_{i<W} (x[i] - x[i+tau])^2 for tau in [0, W), W = N // 2."""
    w = len(signal) // 2
    d = np.zeros(w)
    # TODO: compute via FFT autocorrelation once frames grow beyond ~2048
    for tau in range(1, w):
        diff = signal[:w] - signal[tau:tau + w]
        d[tau] = np.sum(diff ** 2)
    return d


def cumulative_mean_normalized_difference(d: np.ndarray) -> np.ndarray:
    """
    Normalize the difference function by its running mean.

    A zero running sum (silent or DC input) yields 1.0 so that the lag can
    never pass the absolute threshold.
    """
    cmnd = np.ones(len(d))
    cumsum = 0.0
    for tau in range(1, len(d)):
        cumsum += d[tau]
        if cumsum == 0:
            cmnd[tau] = 1.0
        else:
            cmnd[tau] = d[tau] * tau / cumsum
    return cmnd


def _absolute_threshold(cmnd: np.ndarray, threshold: float):
    """First dip below *threshold*, followed down to its local minimum."""
    size = len(cmnd)
    for tau in range(1, size):
        if cmnd[tau] < threshold:
            while tau + 1 < size and cmnd[tau + 1] < cmnd[tau]:
                tau += 1
            return tau
    return None


def _parabolic_interpolation(cmnd: np.ndarray, tau: int) -> float:
    """Refine *tau* to sub-sample precision using its two neighbours."""
    if 0 < tau < len(cmnd) - 1:
        s0 = cmnd[tau - 1]
        s1 = cmnd[tau]
        s2 = cmnd[tau + 1]
        denom = 2.0 * s1 - s2 - s0
        if denom != 0:
            return tau + (s2 - s0) / (2.0 * denom)
    return float(tau)


def yin_pitch(signal: np.ndarray, sample_rate: int, threshold: float = YIN_THRESHOLD) -> float | None:
    """
    Estimate the fundamental frequency of one frame using the YIN algorithm.

    Returns the detected frequency in Hz, or None if the frame is judged
    unvoiced. "No pitch" is an ordinary outcome and is never raised.

    Raises ValueError for frames too short to compare a single lag.
    """
    signal = np.asarray(signal, dtype=np.float64)
    if signal.ndim != 1 or len(signal) < MIN_FRAME_LENGTH:
        raise ValueError(
            f"frame must be 1-D with at least {MIN_FRAME_LENGTH} samples, "
            f"got shape {signal.shape}"
        )

    # Step 1 & 2: Difference function + cumulative mean normalization
    cmnd = cumulative_mean_normalized_difference(difference_function(signal))

    # Step 3: Absolute threshold, then global-minimum fallback
    tau_estimate = _absolute_threshold(cmnd, threshold)
    if tau_estimate is None:
        tau_estimate = int(np.argmin(cmnd[1:])) + 1
        if cmnd[tau_estimate] > YIN_FALLBACK_THRESHOLD:
            return None  # too noisy

    # Step 4: Parabolic interpolation for sub-sample accuracy
    refined = _parabolic_interpolation(cmnd, tau_estimate)
    if refined <= 0:
        refined = float(tau_estimate)

    return sample_rate / refined


# ─── Note Mapping ────────────────────────────────────────────────────────────

def freq_to_midi(freq: float | None) -> int | None:
    """Nearest MIDI pitch index for *freq* (A4 = 440 Hz = 69), or None."""
    if freq is None or not np.isfinite(freq) or freq <= 0:
        return None
    return int(round(A4_MIDI + 12.0 * np.log2(freq / A4_FREQ)))


def midi_to_note_name(midi: int | None) -> str:
    """69 → 'A4', 60 → 'C4', -1 → 'B-2'. None gives '--'."""
    if midi is None or not np.isfinite(midi):
        return NO_NOTE
    m = int(round(midi))
    octave = m // 12 - 1
    return f"{NOTE_NAMES[((m % 12) + 12) % 12]}{octave}"


def freq_to_note(freq: float | None) -> tuple[str, int, float] | None:
    """
    Convert a frequency to the nearest musical note.

    Returns: (note_label, midi, cents_off)
        - note_label: e.g. "A4", "C#3"
        - midi: pitch index, 69 for A4
        - cents_off: how many cents sharp (+) or flat (-) from the note
    """
    midi = freq_to_midi(freq)
    if midi is None:
        return None
    semitones = 12.0 * np.log2(freq / A4_FREQ)
    cents_off = (semitones - (midi - A4_MIDI)) * 100.0
    return midi_to_note_name(midi), midi, float(cents_off)
