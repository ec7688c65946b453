"""
Voice Keyboard Workstation
==========================
The per-tick driver loop: capture a frame, estimate its pitch, track
note-on / note-off transitions, drive the monitor synth, and segment the
performance while recording.

All tracker / recorder state is owned by the thread calling ``tick()``.
Other threads only enqueue commands, which are applied at the start of the
next tick, so no tick ever sees a half-applied mode switch.
"""

import dataclasses
import enum
import logging
import queue
import time
import uuid
from dataclasses import dataclass

from note_tracker import (
    DEFAULT_MIC_GAIN, DEFAULT_SENSITIVITY,
    AmplitudeGate, EventKind, NoteEvent, NoteEventTracker, compute_rms,
)
from pitch_detection import freq_to_midi, yin_pitch
from session_recorder import RecordingSegmenter, RecordingSession
from tone_synth import render_notes

logger = logging.getLogger(__name__)

METER_SMOOTHING = 0.7       # visual meter only, never used for gating


class Mode(enum.Enum):
    IDLE = "idle"
    NOTE_INPUT = "note_input"
    VOICE_PASSTHROUGH = "voice"
    RECORDING = "recording"


NOTE_MODES = {Mode.NOTE_INPUT, Mode.RECORDING}


@dataclass
class WorkstationConfig:
    sample_rate: int = 44100
    frame_size: int = 1024
    tick_rate: float = 60.0
    sensitivity: float = DEFAULT_SENSITIVITY
    mic_gain: float = DEFAULT_MIC_GAIN
    monitor_enabled: bool = True
    gate_release_ratio: float = 1.0     # < 1.0 enables gate hysteresis
    sessions_dir: str | None = None


class Workstation:
    """
    Collaborators (duck-typed):

    capture  -- get_frame() -> (samples, sample_rate), begin_recording(),
                end_recording() -> samples
    synth    -- trigger_attack(midi), trigger_release(midi), release_all(),
                set_muted(bool), set_passthrough(bool)
    player   -- play_buffer(audio, sample_rate), play_file(path), stop(),
                is_active
    asset_writer -- callable(session_id, audio, sample_rate) -> asset ref
    """

    def __init__(self, config: WorkstationConfig, capture, synth, player=None,
                 asset_writer=None, clock=time.monotonic):
        self.config = config
        self.capture = capture
        self.synth = synth
        self.player = player
        self.asset_writer = asset_writer
        self.clock = clock

        self.tracker = NoteEventTracker(
            AmplitudeGate(config.sensitivity, config.gate_release_ratio))
        self.mode = Mode.IDLE
        self.segmenter: RecordingSegmenter | None = None
        self.sessions: list[RecordingSession] = []   # newest first

        self.meter = 0.0
        self.last_freq: float | None = None

        self.event_listeners = []
        self.session_listeners = []

        self._commands: queue.Queue = queue.Queue()
        self._running = False
        self._apply_monitor()

    # ─── Commands (thread-safe, applied on the next tick) ────────────────

    def set_mode(self, mode: Mode):
        self._commands.put(lambda: self._set_mode(mode))

    def start_recording(self):
        self._commands.put(self._start_recording)

    def stop_recording(self):
        self._commands.put(self._stop_recording)

    def toggle_recording(self):
        self._commands.put(
            lambda: self._stop_recording() if self.is_recording else self._start_recording())

    def set_sensitivity(self, sensitivity: float):
        def apply():
            self.config.sensitivity = sensitivity
            self.tracker.gate.sensitivity = sensitivity
        self._commands.put(apply)

    def set_mic_gain(self, gain: float):
        def apply():
            self.config.mic_gain = gain
        self._commands.put(apply)

    def set_monitor(self, enabled: bool):
        def apply():
            self.config.monitor_enabled = enabled
            self._apply_monitor()
        self._commands.put(apply)

    def play_session(self, session_id: str, source: str = "notes"):
        """Queue playback of a stored session's notes or its raw audio."""
        session = self.find_session(session_id)
        if source not in ("notes", "audio"):
            raise ValueError(f"unknown playback source {source!r}")
        if source == "audio" and session.audio_asset_ref is None:
            raise ValueError(f"session {session_id} has no audio asset")
        if self.player is None:
            raise RuntimeError("no playback device configured")
        self._commands.put(lambda: self._play_session(session, source))

    def stop_playback(self):
        self._commands.put(self._stop_playback)

    def delete_session(self, session_id: str):
        """Queue removal of a stored session. Its audio asset is left in place."""
        session = self.find_session(session_id)

        def apply():
            if session in self.sessions:
                self.sessions.remove(session)
                logger.info("deleted session %s", session.id)
        self._commands.put(apply)

    def find_session(self, session_id: str) -> RecordingSession:
        for session in list(self.sessions):
            if session.id == session_id:
                return session
        raise KeyError(session_id)

    # ─── Driver loop ─────────────────────────────────────────────────────

    @property
    def is_recording(self) -> bool:
        return self.segmenter is not None and self.segmenter.is_recording

    @property
    def is_playing_back(self) -> bool:
        return self.player is not None and self.player.is_active

    @property
    def active_midi(self) -> int | None:
        return self.tracker.active_midi

    def tick(self) -> list[NoteEvent]:
        """Run one frame through the pipeline. Never blocks."""
        self._apply_pending()
        now = self.clock()

        samples, sample_rate = self.capture.get_frame()
        rms = compute_rms(samples, self.config.mic_gain)
        self.meter = self.meter * METER_SMOOTHING + rms * (1.0 - METER_SMOOTHING)

        if self.is_playing_back:
            return []

        notes_enabled = self.mode in NOTE_MODES
        midi = None
        if notes_enabled:
            self.last_freq = yin_pitch(samples, sample_rate)
            midi = freq_to_midi(self.last_freq)
        else:
            self.last_freq = None

        events = self.tracker.update(midi, rms, notes_enabled, now)
        self._dispatch(events)
        return events

    def run(self):
        """Tick at ``config.tick_rate`` until ``stop()`` is called."""
        self._running = True
        interval = 1.0 / self.config.tick_rate
        next_tick = time.monotonic()
        logger.info("driver loop started at %.0f Hz", self.config.tick_rate)

        while self._running:
            try:
                self.tick()
            except Exception:
                logger.exception("tick failed")
            next_tick += interval
            wait = next_tick - time.monotonic()
            if wait > 0:
                time.sleep(wait)
            else:
                next_tick = time.monotonic()   # fell behind, don't burst

        self._apply_pending()
        self._dispatch(self.tracker.release(self.clock()))
        logger.info("driver loop stopped")

    def stop(self):
        self._running = False

    # ─── State changes (driver thread only) ──────────────────────────────

    def _apply_pending(self):
        while True:
            try:
                command = self._commands.get_nowait()
            except queue.Empty:
                return
            command()

    def _dispatch(self, events):
        for event in events:
            if event.kind is EventKind.ATTACK:
                self.synth.trigger_attack(event.midi)
            else:
                self.synth.trigger_release(event.midi)
            if self.is_recording:
                self.segmenter.consume(event)
            for listener in self.event_listeners:
                listener(event)

    def _apply_monitor(self):
        monitor = self.config.monitor_enabled
        self.synth.set_muted(not (monitor and self.mode in NOTE_MODES))
        self.synth.set_passthrough(monitor and self.mode is Mode.VOICE_PASSTHROUGH)

    def _set_mode(self, mode: Mode):
        if mode is Mode.RECORDING:
            self._start_recording()
            return
        if self.is_recording:
            self._stop_recording()
        self._switch_mode(mode)

    def _switch_mode(self, mode: Mode):
        if mode is self.mode:
            return
        if mode not in NOTE_MODES:
            self._dispatch(self.tracker.release(self.clock()))
            self.tracker.gate.reset()
        if mode is not Mode.IDLE:
            self._stop_playback()
        logger.info("mode %s -> %s", self.mode.value, mode.value)
        self.mode = mode
        self._apply_monitor()

    def _start_recording(self):
        if self.is_recording:
            logger.warning("already recording")
            return
        self._stop_playback()
        now = self.clock()
        # A note held from before the take is re-attacked inside it.
        self._dispatch(self.tracker.release(now))
        self.tracker.gate.reset()
        self.segmenter = RecordingSegmenter()
        self.segmenter.start(now)
        self.capture.begin_recording()
        self._switch_mode(Mode.RECORDING)

    def _stop_recording(self):
        if not self.is_recording:
            logger.warning("not recording")
            return
        now = self.clock()
        self._dispatch(self.tracker.release(now))
        audio = self.capture.end_recording()

        session = self.segmenter.stop(now, session_id=uuid.uuid4().hex[:9])
        if self.asset_writer is not None:
            try:
                asset_ref = self.asset_writer(session.id, audio, self.config.sample_rate)
            except Exception:
                logger.exception("could not store audio for session %s", session.id)
            else:
                session = dataclasses.replace(session, audio_asset_ref=asset_ref)

        self.sessions.insert(0, session)
        self._switch_mode(Mode.IDLE)
        self.synth.release_all()
        for listener in self.session_listeners:
            listener(session)

    def _play_session(self, session: RecordingSession, source: str):
        self._stop_playback()
        self._dispatch(self.tracker.release(self.clock()))
        self.synth.release_all()
        if source == "notes":
            audio = render_notes(session.notes, self.config.sample_rate)
            self.player.play_buffer(audio, self.config.sample_rate)
        else:
            self.player.play_file(session.audio_asset_ref)
        logger.info("playing session %s (%s)", session.id, source)

    def _stop_playback(self):
        if self.player is not None and self.player.is_active:
            self.player.stop()
            self.synth.release_all()
