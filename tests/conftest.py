"""Shared device doubles for the driver-loop and CLI tests."""

import numpy as np
import pytest

SR = 44100
N = 1024


def sine(freq, amplitude=0.3):
    t = np.arange(N) / SR
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.float32)


SILENCE = np.zeros(N, dtype=np.float32)


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeCapture:
    def __init__(self):
        self.frame = SILENCE
        self.recording = False

    def get_frame(self):
        return self.frame, SR

    def begin_recording(self):
        self.recording = True

    def end_recording(self):
        self.recording = False
        return np.zeros(SR // 10, dtype=np.float32)


class FakeSynth:
    def __init__(self):
        self.calls = []
        self.muted = None
        self.passthrough = None

    def trigger_attack(self, midi):
        self.calls.append(("attack", midi))

    def trigger_release(self, midi):
        self.calls.append(("release", midi))

    def release_all(self):
        self.calls.append(("release_all",))

    def set_muted(self, muted):
        self.muted = muted

    def set_passthrough(self, enabled):
        self.passthrough = enabled


class FakePlayer:
    def __init__(self):
        self.is_active = False
        self.played = []

    def play_buffer(self, audio, sample_rate):
        self.played.append(("buffer", len(audio), sample_rate))
        self.is_active = True

    def play_file(self, path):
        self.played.append(("file", path))
        self.is_active = True

    def stop(self):
        self.is_active = False


@pytest.fixture
def clock():
    return FakeClock(10.0)


@pytest.fixture
def capture():
    return FakeCapture()


@pytest.fixture
def synth():
    return FakeSynth()


@pytest.fixture
def player():
    return FakePlayer()


