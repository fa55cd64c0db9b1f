"""Drawable sources and the source resolver.

A layer's source is one of three variants, each tagged with an explicit
``kind``:

  - ImageSource: a decoded still, held as an RGBA numpy array.
  - VideoSource: a moviepy clip plus a playback clock (play / pause /
    seek, looping, muted flag).
  - PlaceholderSource: stands in for a file that could not be decoded.
    It has a nominal 1280x720 footprint and the original file name.

resolve_source() is the only way a file becomes a source. It never
raises for undecodable media: failures become a PlaceholderSource.
"""

import asyncio
import logging
import mimetypes
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import numpy as np
from PIL import Image
from moviepy import VideoFileClip

logger = logging.getLogger(__name__)


PLACEHOLDER_SIZE = (1280, 720)

# Containers the platform mimetypes table may not know; always video.
EXTRA_VIDEO_SUFFIXES = {".mov", ".webm", ".mkv"}


class LayerKind(Enum):
    NONE = "none"
    IMAGE = "image"
    VIDEO = "video"
    PLACEHOLDER = "placeholder"


def to_rgba(frame: np.ndarray) -> np.ndarray:
    """Return an (h, w, 4) uint8 copy of an RGB or RGBA frame."""
    frame = np.asarray(frame)
    if frame.dtype != np.uint8:
        frame = np.clip(frame, 0, 255).astype(np.uint8)
    if frame.ndim == 2:
        frame = np.stack([frame] * 3, axis=-1)
    if frame.shape[2] == 4:
        return frame.copy()
    alpha = np.full(frame.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([frame[:, :, :3], alpha], axis=2)


# ── Source variants ───────────────────────────────────────────────


@dataclass(eq=False)
class ImageSource:
    """A still image at its natural resolution."""

    name: str
    pixels: np.ndarray

    kind = LayerKind.IMAGE

    @property
    def size(self) -> tuple[int, int]:
        h, w = self.pixels.shape[:2]
        return w, h

    def frame(self) -> np.ndarray:
        return self.pixels

    def close(self) -> None:
        pass


@dataclass(frozen=True)
class PlaceholderSource:
    """Stand-in for media that could not be decoded."""

    name: str
    width: int = PLACEHOLDER_SIZE[0]
    height: int = PLACEHOLDER_SIZE[1]

    kind = LayerKind.PLACEHOLDER

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def close(self) -> None:
        pass


class VideoSource:
    """A looping video clip with its own playback clock.

    Playback position is derived from *clock* (a monotonic seconds
    function) rather than from decoding progress, so a paused source
    holds its position and a playing one advances with wall time.
    Position wraps modulo duration.
    """

    kind = LayerKind.VIDEO

    def __init__(self, name: str, clip, clock=time.monotonic):
        self.name = name
        self.clip = clip
        self.muted = True
        self.loop = True
        self._clock = clock
        self._position = 0.0
        self._started_at = None

    def __repr__(self):
        return f"VideoSource({self.name!r}, size={self.size}, duration={self.duration:.2f})"

    @property
    def size(self) -> tuple[int, int]:
        w, h = self.clip.size
        return int(w), int(h)

    @property
    def duration(self) -> float:
        return float(self.clip.duration or 0.0)

    @property
    def fps(self) -> float:
        return float(self.clip.fps or 30.0)

    @property
    def audio(self):
        return self.clip.audio

    @property
    def playing(self) -> bool:
        return self._started_at is not None

    @property
    def current_time(self) -> float:
        if self._started_at is None:
            t = self._position
        else:
            t = self._clock() - self._started_at
        duration = self.duration
        if duration > 0:
            t = t % duration if self.loop else min(t, duration)
        return t

    def play(self) -> None:
        if self._started_at is None:
            self._started_at = self._clock() - self._position

    def pause(self) -> None:
        if self._started_at is not None:
            self._position = self.current_time
            self._started_at = None

    def seek(self, t: float) -> None:
        t = max(0.0, t)
        if self._started_at is None:
            self._position = t
        else:
            self._started_at = self._clock() - t

    def frame(self) -> np.ndarray:
        """RGBA frame at the current playback position."""
        # moviepy can fail to read the very last frame; stay one frame short.
        last = max(0.0, self.duration - 1.0 / self.fps)
        t = min(self.current_time, last)
        return to_rgba(self.clip.get_frame(t))

    def close(self) -> None:
        self.clip.close()


# ── Resolution ────────────────────────────────────────────────────


def is_video_file(path: str | Path) -> bool:
    """Classify by declared media type, then by extension."""
    path = Path(path)
    mime, _ = mimetypes.guess_type(path.name)
    if mime and mime.startswith("video"):
        return True
    return path.suffix.lower() in EXTRA_VIDEO_SUFFIXES


def load_image(path: str | Path) -> np.ndarray:
    """Decode an image file to an RGBA array."""
    with Image.open(path) as img:
        return np.array(img.convert("RGBA"))


async def resolve_source(path: str | Path, clock=time.monotonic):
    """Turn a file into a drawable source.

    Decoding runs in a worker thread so the event loop keeps rendering.
    Videos come back muted, looping and positioned at 0. Anything that
    cannot be decoded comes back as a PlaceholderSource.
    """
    path = Path(path)

    if is_video_file(path):
        try:
            clip = await asyncio.to_thread(VideoFileClip, str(path))
        except Exception as exc:
            logger.warning("Cannot decode video %s (%s); using placeholder", path.name, exc)
            return PlaceholderSource(path.name)
        w, h = clip.size
        if w <= 0 or h <= 0:
            clip.close()
            logger.warning("Video %s reports no dimensions; using placeholder", path.name)
            return PlaceholderSource(path.name)
        return VideoSource(path.name, clip, clock=clock)

    try:
        pixels = await asyncio.to_thread(load_image, path)
    except OSError as exc:
        logger.warning("Cannot decode image %s (%s); using placeholder", path.name, exc)
        return PlaceholderSource(path.name)
    return ImageSource(path.name, pixels)


def capture_poster_frame(source: VideoSource) -> np.ndarray:
    """Grab one still frame of *source* at its current position."""
    return source.frame().copy()
