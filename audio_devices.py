"""
Audio device wrappers: microphone capture, the monophonic monitor synth,
session playback and take storage.

Dependencies: numpy, sounddevice, soundfile
"""

import logging
import os
import threading
import time

import numpy as np
import sounddevice as sd
import soundfile as sf

from tone_synth import ATTACK_TIME, RELEASE_TIME, TONE_VOLUME, midi_to_freq

logger = logging.getLogger(__name__)

MIC_BLOCK_SIZE = 256          # small blocks keep the frame fresh at 60 Hz
MAX_MONITOR_BACKLOG = 4096    # samples of voice passthrough kept queued


# ─── Microphone Capture ──────────────────────────────────────────────────────

class MicrophoneCapture:
    """Keeps the latest ``frame_size`` mic samples; optionally records a take."""

    def __init__(self, sample_rate: int, frame_size: int):
        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self.monitor_enabled = False
        self._ring = np.zeros(frame_size, dtype=np.float32)
        self._take: list[np.ndarray] | None = None
        self._monitor = np.zeros(0, dtype=np.float32)
        self._lock = threading.Lock()
        self._stream = None

    def start(self):
        """Open the microphone stream."""
        self._stream = sd.InputStream(
            samplerate=self.sample_rate,
            blocksize=MIC_BLOCK_SIZE,
            channels=1,
            callback=self._callback,
            dtype="float32",
        )
        self._stream.start()

    def stop(self):
        """Close the microphone stream."""
        if self._stream:
            self._stream.stop()
            self._stream.close()
            self._stream = None

    def _callback(self, indata, frames, time_info, status):
        if status:
            logger.debug("input status: %s", status)

        block = indata[:, 0].copy()
        with self._lock:
            if len(block) >= self.frame_size:
                self._ring = block[-self.frame_size:]
            else:
                self._ring = np.concatenate([self._ring[len(block):], block])
            if self._take is not None:
                self._take.append(block)
            if self.monitor_enabled:
                self._monitor = np.concatenate([self._monitor, block])[-MAX_MONITOR_BACKLOG:]

    def get_frame(self) -> tuple[np.ndarray, int]:
        with self._lock:
            return self._ring.copy(), self.sample_rate

    def begin_recording(self):
        with self._lock:
            self._take = []

    def end_recording(self) -> np.ndarray:
        with self._lock:
            take, self._take = self._take, None
        if not take:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(take)

    def read_monitor(self, frames: int) -> np.ndarray:
        with self._lock:
            out = self._monitor[:frames]
            self._monitor = self._monitor[frames:]
        if len(out) < frames:
            out = np.pad(out, (0, frames - len(out)))
        return out


# ─── Monitor Synth ───────────────────────────────────────────────────────────

class MonitorSynth:
    """
    One sine voice that follows the tracker's Attack / Release events,
    mixed with the optional voice passthrough from the capture.
    """

    def __init__(self, sample_rate: int, capture: MicrophoneCapture | None = None):
        self.sample_rate = sample_rate
        self.capture = capture
        self._freq = 0.0
        self._midi: int | None = None
        self._muted = True
        self._passthrough = False
        self._phase = 0.0
        self._level = 0.0
        self._lock = threading.Lock()
        self._stream = None

    def start(self):
        self._stream = sd.OutputStream(
            samplerate=self.sample_rate,
            channels=1,
            callback=self._callback,
            dtype="float32",
        )
        self._stream.start()

    def stop(self):
        if self._stream:
            self._stream.stop()
            self._stream.close()
            self._stream = None

    def trigger_attack(self, midi: int):
        with self._lock:
            self._midi = midi
            self._freq = midi_to_freq(midi)

    def trigger_release(self, midi: int):
        with self._lock:
            if self._midi == midi:
                self._midi = None

    def release_all(self):
        with self._lock:
            self._midi = None

    def set_muted(self, muted: bool):
        with self._lock:
            self._muted = muted

    def set_passthrough(self, enabled: bool):
        with self._lock:
            self._passthrough = enabled
        if self.capture is not None:
            self.capture.monitor_enabled = enabled

    def _callback(self, outdata, frames, time_info, status):
        with self._lock:
            gate_on = self._midi is not None and not self._muted
            freq = self._freq
            passthrough = self._passthrough

        # Linear ramp toward the gate level, attack and release speeds differ
        steps = np.arange(1, frames + 1)
        if gate_on:
            levels = np.minimum(1.0, self._level + steps / (ATTACK_TIME * self.sample_rate))
        else:
            levels = np.maximum(0.0, self._level - steps / (RELEASE_TIME * self.sample_rate))
        self._level = float(levels[-1])

        phases = self._phase + 2 * np.pi * freq * steps / self.sample_rate
        self._phase = float(phases[-1] % (2 * np.pi))
        out = TONE_VOLUME * levels * np.sin(phases)

        if passthrough and self.capture is not None:
            out = out + self.capture.read_monitor(frames)

        outdata[:, 0] = np.clip(out, -1.0, 1.0)


# ─── Session Playback & Storage ──────────────────────────────────────────────

class SessionPlayer:
    """Plays a rendered buffer or a stored take through the default output."""

    def __init__(self):
        self._ends_at = 0.0

    @property
    def is_active(self) -> bool:
        return time.monotonic() < self._ends_at

    def play_buffer(self, audio: np.ndarray, sample_rate: int):
        if len(audio) == 0:
            return
        sd.play(audio, sample_rate)
        self._ends_at = time.monotonic() + len(audio) / sample_rate

    def play_file(self, path: str):
        audio, sample_rate = sf.read(path, dtype="float32")
        self.play_buffer(audio, sample_rate)

    def stop(self):
        sd.stop()
        self._ends_at = 0.0


def write_take(directory: str, session_id: str, audio: np.ndarray, sample_rate: int) -> str:
    """Store a recorded take as ``take-<id>.wav`` and return its path."""
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, f"take-{session_id}.wav")
    sf.write(path, audio, sample_rate)
    logger.info("saved take %s (%.1fs)", path, len(audio) / sample_rate)
    return path
