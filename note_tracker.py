"""
Note Event Tracking
===================
Turns the noisy per-frame pitch estimates into clean, monophonic
Attack / Release transitions for a synthesizer voice.

The tracker is edge-triggered: a sustained pitch produces a single Attack,
and at most one note is ever held.
"""

import enum
import logging
from dataclasses import dataclass

import numpy as np

from pitch_detection import midi_to_note_name

logger = logging.getLogger(__name__)

DEFAULT_SENSITIVITY = 0.015    # RMS above this = voice present
DEFAULT_MIC_GAIN = 2.5


class EventKind(enum.Enum):
    ATTACK = "attack"
    RELEASE = "release"


@dataclass(frozen=True)
class NoteEvent:
    """A note-on / note-off transition at a monotonic timestamp (seconds)."""
    kind: EventKind
    midi: int
    timestamp: float

    @property
    def note_name(self) -> str:
        return midi_to_note_name(self.midi)


def compute_rms(samples: np.ndarray, gain: float = 1.0) -> float:
    """Root-mean-square of the gain-boosted frame."""
    samples = np.asarray(samples, dtype=np.float64)
    if samples.size == 0:
        return 0.0
    boosted = samples * gain
    return float(np.sqrt(np.mean(boosted ** 2)))


class AmplitudeGate:
    """
    Voice-activity gate on the instantaneous RMS.

    With ``release_ratio == 1.0`` this is a plain ``rms > sensitivity``
    threshold. A smaller ratio adds hysteresis: once open, the gate stays
    open until the RMS falls to ``sensitivity * release_ratio``.
    """

    def __init__(self, sensitivity: float = DEFAULT_SENSITIVITY, release_ratio: float = 1.0):
        if not 0.0 < release_ratio <= 1.0:
            raise ValueError(f"release_ratio must be in (0, 1], got {release_ratio}")
        self.sensitivity = sensitivity
        self.release_ratio = release_ratio
        self.is_open = False

    def update(self, rms: float) -> bool:
        if self.is_open:
            self.is_open = rms > self.sensitivity * self.release_ratio
        else:
            self.is_open = rms > self.sensitivity
        return self.is_open

    def reset(self):
        self.is_open = False


class NoteEventTracker:
    """Holds the currently sounding pitch index and emits transitions."""

    def __init__(self, gate: AmplitudeGate | None = None):
        self.gate = gate or AmplitudeGate()
        self.active_midi: int | None = None

    def update(self, midi: int | None, rms: float, notes_enabled: bool,
               timestamp: float) -> list[NoteEvent]:
        """
        Feed one tick. Returns the transitions it caused, in order:
        nothing, a lone Release, or a Release followed by an Attack.
        """
        # The gate is always fed so hysteresis state follows the signal.
        armed = self.gate.update(rms) and notes_enabled

        if not armed or midi is None:
            return self.release(timestamp)

        if midi == self.active_midi:
            return []

        events = self.release(timestamp)
        self.active_midi = midi
        events.append(NoteEvent(EventKind.ATTACK, midi, timestamp))
        logger.debug("attack %s at %.3f", midi_to_note_name(midi), timestamp)
        return events

    def release(self, timestamp: float) -> list[NoteEvent]:
        """Release the held note, if any. Used for forced mode-switch releases."""
        if self.active_midi is None:
            return []
        event = NoteEvent(EventKind.RELEASE, self.active_midi, timestamp)
        self.active_midi = None
        logger.debug("release %s at %.3f", event.note_name, timestamp)
        return [event]
