"""Offline tone rendering used to play a recorded session back."""

import numpy as np

from pitch_detection import A4_FREQ, A4_MIDI, NOTE_NAMES

# ─── Tone Sound Settings ─────────────────────────────────────────────────────
TONE_VOLUME = 0.3
ATTACK_TIME = 0.005     # seconds, avoids a pop
RELEASE_TIME = 0.08     # seconds of tail after the note ends


def midi_to_freq(midi: int) -> float:
    return A4_FREQ * (2.0 ** ((midi - A4_MIDI) / 12.0))


def note_name_to_midi(note_str: str) -> int:
    """'C#4' → 61, 'B-2' → -1."""
    if len(note_str) > 1 and note_str[1] == "#":
        name, octave = note_str[:2], int(note_str[2:])
    else:
        name, octave = note_str[:1], int(note_str[1:])
    return (octave + 1) * 12 + NOTE_NAMES.index(name)


def generate_tone(freq: float, duration: float, sample_rate: int,
                  volume: float = TONE_VOLUME) -> np.ndarray:
    """A sine tone with a short attack ramp and a linear release tail."""
    n_sustain = max(0, int(sample_rate * duration))
    n_release = int(sample_rate * RELEASE_TIME)
    n_samples = n_sustain + n_release
    t = np.arange(n_samples) / sample_rate

    envelope = np.ones(n_samples)
    attack = int(ATTACK_TIME * sample_rate)
    if 0 < attack < n_samples:
        envelope[:attack] *= np.linspace(0, 1, attack)
    if n_release > 0:
        envelope[n_sustain:] *= np.linspace(1, 0, n_release)

    signal = volume * np.sin(2 * np.pi * freq * t) * envelope
    return signal.astype(np.float32)


def render_notes(notes, sample_rate: int) -> np.ndarray:
    """Mix RecordedNote-like objects (note, time, duration) into one buffer."""
    if not notes:
        return np.zeros(0, dtype=np.float32)

    parts = []
    for n in notes:
        tone = generate_tone(midi_to_freq(note_name_to_midi(n.note)), n.duration, sample_rate)
        parts.append((int(n.time * sample_rate), tone))

    out = np.zeros(max(start + len(tone) for start, tone in parts), dtype=np.float32)
    for start, tone in parts:
        out[start:start + len(tone)] += tone
    return np.clip(out, -1.0, 1.0)
