"""
Recording Segmenter
===================
While a recording is open, collects the tracker's Attack / Release
transitions into a list of recorded notes (label, start offset, duration)
and seals them into an immutable session when the recording stops.
"""

import enum
import logging
import time
import uuid
from dataclasses import dataclass, field

from note_tracker import EventKind, NoteEvent

logger = logging.getLogger(__name__)

MIN_NOTE_DURATION = 0.05      # seconds; shorter spans are spurious blips
_DURATION_EPSILON = 1e-9      # float slack for spans of exactly MIN_NOTE_DURATION


class RecorderState(enum.Enum):
    NOT_STARTED = "not_started"
    RECORDING = "recording"
    FINALIZING = "finalizing"
    COMPLETE = "complete"


@dataclass(frozen=True)
class RecordedNote:
    note: str          # e.g. "A4"
    time: float        # seconds from recording start
    duration: float    # seconds


@dataclass(frozen=True)
class RecordingSession:
    """A finished take. Notes are in performance order."""
    id: str
    timestamp: float                      # wall clock, seconds since epoch
    notes: tuple[RecordedNote, ...] = ()
    audio_asset_ref: str | None = None

    @property
    def duration(self) -> float:
        if not self.notes:
            return 0.0
        return max(n.time + n.duration for n in self.notes)


@dataclass
class _OpenNote:
    note: str
    start: float       # offset from recording start


@dataclass
class RecordingSegmenter:
    """One take at a time: NOT_STARTED → RECORDING → FINALIZING → COMPLETE."""
    min_duration: float = MIN_NOTE_DURATION
    state: RecorderState = field(default=RecorderState.NOT_STARTED, init=False)
    start_time: float = field(default=0.0, init=False)
    notes: list[RecordedNote] = field(default_factory=list, init=False)
    _open: _OpenNote | None = field(default=None, init=False, repr=False)

    @property
    def is_recording(self) -> bool:
        return self.state is RecorderState.RECORDING

    def start(self, start_time: float):
        if self.state is not RecorderState.NOT_STARTED:
            raise RuntimeError(f"cannot start a recording in state {self.state.name}")
        self.start_time = start_time
        self.state = RecorderState.RECORDING
        logger.info("recording started at %.3f", start_time)

    def consume(self, event: NoteEvent):
        """Apply one tracker transition to the open take."""
        if self.state is not RecorderState.RECORDING:
            raise RuntimeError(f"cannot record events in state {self.state.name}")

        if event.kind is EventKind.ATTACK:
            if self._open is not None:
                self._close(event.timestamp)
            self._open = _OpenNote(event.note_name, event.timestamp - self.start_time)
        elif self._open is not None and self._open.note == event.note_name:
            self._close(event.timestamp)

    def stop(self, stop_time: float, audio_asset_ref: str | None = None,
             session_id: str | None = None) -> RecordingSession:
        """Flush the open note at *stop_time* and seal the take."""
        if self.state is not RecorderState.RECORDING:
            raise RuntimeError(f"cannot stop a recording in state {self.state.name}")
        self.state = RecorderState.FINALIZING
        if self._open is not None:
            self._close(stop_time)

        session = RecordingSession(
            id=session_id or uuid.uuid4().hex[:9],
            timestamp=time.time(),
            notes=tuple(self.notes),
            audio_asset_ref=audio_asset_ref,
        )
        self.state = RecorderState.COMPLETE
        logger.info("recording complete: %d notes", len(session.notes))
        return session

    def _close(self, event_time: float):
        open_note = self._open
        self._open = None
        duration = event_time - self.start_time - open_note.start
        if duration + _DURATION_EPSILON >= self.min_duration:
            self.notes.append(RecordedNote(open_note.note, open_note.start, duration))
        else:
            logger.debug("discarded %s blip (%.3fs)", open_note.note, duration)
