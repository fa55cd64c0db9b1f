"""Shared test fixtures for keycompose tests."""

import asyncio
import subprocess

import imageio_ffmpeg
import numpy as np
import pytest
from PIL import Image

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


# ── Fakes ──────────────────────────────────────────────────────────


class FakeClock:
    """Simulated monotonic clock; sleep() advances it instantly."""

    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    async def sleep(self, delay):
        self.now += max(0.0, delay)
        await asyncio.sleep(0)


class FakeAudio:
    """Minimal stand-in for a moviepy audio clip."""

    def __init__(self, duration=2.0):
        self.duration = duration

    def with_effects(self, effects):
        return self


class FakeClip:
    """Stands in for a moviepy VideoFileClip with solid-color frames."""

    def __init__(self, size=(64, 36), duration=10.0, fps=30, color=(255, 0, 0), audio=None):
        self.size = size
        self.duration = duration
        self.fps = fps
        self.color = color
        self.audio = audio
        self.closed = False
        self.requested = []

    def get_frame(self, t):
        self.requested.append(t)
        w, h = self.size
        return np.full((h, w, 3), self.color, dtype=np.uint8)

    def close(self):
        self.closed = True


class FakeRecorder:
    """Records what the exporter feeds it; emits two chunks on stop."""

    def __init__(self, target, size, fps, audio=None, on_data=None):
        self.target = target
        self.size = size
        self.fps = fps
        self.audio = audio
        self.on_data = on_data
        self.frames = 0
        self.started = False
        self.stopped = False
        self.aborted = False

    def start(self):
        self.started = True

    def write_frame(self, frame):
        self.frames += 1
        self.last_frame = frame

    def stop(self):
        self.stopped = True
        self.on_data(b"chunk-1")
        self.on_data(b"chunk-2")

    def abort(self):
        self.aborted = True


# ── Fixtures ───────────────────────────────────────────────────────


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_clip():
    return FakeClip


@pytest.fixture
def fake_audio():
    return FakeAudio


@pytest.fixture
def recorders():
    """Recorder factory that keeps every recorder it creates."""
    created = []

    def factory(target, size, fps, audio=None, on_data=None):
        rec = FakeRecorder(target, size, fps, audio=audio, on_data=on_data)
        created.append(rec)
        return rec

    factory.created = created
    factory.recorder_class = FakeRecorder
    return factory


@pytest.fixture
def source_video(tmp_path):
    """Create a 5-second test video (320x240, 10fps) with a sine audio track."""
    out = tmp_path / "source.mp4"
    subprocess.run(
        [
            _FFMPEG, "-y",
            "-f", "lavfi", "-i", "color=c=blue:s=320x240:d=5:r=10",
            "-f", "lavfi", "-i", "sine=frequency=440:sample_rate=44100:duration=5",
            "-shortest",
            "-c:v", "libx264", "-crf", "28", "-pix_fmt", "yuv420p",
            "-c:a", "aac", "-b:a", "32k",
            str(out),
        ],
        check=True,
        capture_output=True,
    )
    return out


@pytest.fixture
def make_image(tmp_path):
    """Write a solid-color PNG and return its path."""

    def _make(name="image.png", size=(40, 20), color=(255, 0, 0, 255)):
        path = tmp_path / name
        Image.new("RGBA", size, color).save(path)
        return path

    return _make
