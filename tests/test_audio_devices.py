import numpy as np
import pytest

sf = pytest.importorskip("soundfile")

try:
    import audio_devices
except OSError as e:   # PortAudio library missing
    pytest.skip(f"sounddevice unavailable: {e}", allow_module_level=True)

from audio_devices import MicrophoneCapture, write_take


def block(values):
    return np.asarray(values, dtype=np.float32).reshape(-1, 1)


class TestMicrophoneCapture:
    def test_short_blocks_slide_into_the_frame(self):
        cap = MicrophoneCapture(8000, 8)
        cap._callback(block([1, 2, 3]), 3, None, None)
        cap._callback(block([4, 5, 6]), 3, None, None)
        frame, sr = cap.get_frame()
        assert sr == 8000
        assert frame.tolist() == [0, 0, 1, 2, 3, 4, 5, 6]

    def test_long_block_keeps_its_tail(self):
        cap = MicrophoneCapture(8000, 8)
        cap._callback(block(range(10)), 10, None, None)
        frame, _ = cap.get_frame()
        assert frame.tolist() == list(range(2, 10))

    def test_get_frame_returns_a_copy(self):
        cap = MicrophoneCapture(8000, 4)
        frame, _ = cap.get_frame()
        frame[:] = 1.0
        assert not cap.get_frame()[0].any()

    def test_take_collects_blocks_between_begin_and_end(self):
        cap = MicrophoneCapture(8000, 8)
        cap._callback(block([9, 9]), 2, None, None)
        cap.begin_recording()
        cap._callback(block([1, 2, 3]), 3, None, None)
        cap._callback(block([4]), 1, None, None)
        take = cap.end_recording()
        cap._callback(block([7]), 1, None, None)
        assert take.tolist() == [1, 2, 3, 4]
        assert cap.end_recording().size == 0

    def test_end_without_begin_is_empty(self):
        take = MicrophoneCapture(8000, 8).end_recording()
        assert take.size == 0
        assert take.dtype == np.float32

    def test_monitor_is_only_filled_while_enabled(self):
        cap = MicrophoneCapture(8000, 8)
        cap._callback(block([1, 2]), 2, None, None)
        assert not cap.read_monitor(2).any()

        cap.monitor_enabled = True
        cap._callback(block([1, 2, 3]), 3, None, None)
        assert cap.read_monitor(2).tolist() == [1, 2]
        assert cap.read_monitor(4).tolist() == [3, 0, 0, 0]
        assert cap.read_monitor(3).tolist() == [0, 0, 0]


def test_write_take_stores_a_readable_wav(tmp_path):
    sr = 8000
    audio = (0.25 * np.sin(2 * np.pi * 440 * np.arange(sr // 4) / sr)).astype(np.float32)
    target = tmp_path / "takes"

    path = write_take(str(target), "abc123", audio, sr)

    assert path == str(target / "take-abc123.wav")
    data, read_sr = sf.read(path, dtype="float32")
    assert read_sr == sr
    assert data == pytest.approx(audio, abs=1e-3)
