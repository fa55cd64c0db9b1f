"""Export targets and the ffmpeg-backed recorder.

Targets are tried in preference order: MP4/H.264 first, WebM/VP9 as the
fallback. Support is probed against the encoders compiled into the
ffmpeg binary shipped with imageio-ffmpeg. The last target is always
returned when nothing earlier is supported, so selection never fails.
"""

import logging
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import imageio_ffmpeg
import numpy as np

logger = logging.getLogger(__name__)

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()

CHUNK_SIZE = 1 << 20  # bytes per emitted data chunk


@dataclass(frozen=True)
class ExportTarget:
    """Container / codec combination for an export."""

    mime_type: str
    extension: str
    video_codec: str
    audio_codec: str
    video_params: tuple[str, ...] = ()


MP4_H264 = ExportTarget(
    mime_type="video/mp4; codecs=avc1.42E01E",
    extension="mp4",
    video_codec="libx264",
    audio_codec="aac",
    video_params=("-profile:v", "baseline", "-preset", "veryfast", "-crf", "20"),
)

WEBM_VP9 = ExportTarget(
    mime_type="video/webm; codecs=vp9",
    extension="webm",
    video_codec="libvpx-vp9",
    audio_codec="libopus",
    video_params=("-crf", "32", "-b:v", "0", "-deadline", "realtime", "-cpu-used", "8"),
)

# Preference order; the last entry is the unconditional fallback.
EXPORT_TARGETS = (MP4_H264, WEBM_VP9)


# ── Capability probing ────────────────────────────────────────────


@lru_cache(maxsize=None)
def available_encoders() -> frozenset[str]:
    """Names of the encoders compiled into the bundled ffmpeg."""
    result = subprocess.run(
        [_FFMPEG, "-hide_banner", "-encoders"],
        check=True, capture_output=True, text=True,
    )
    names = set()
    for line in result.stdout.splitlines():
        parts = line.split()
        # Encoder rows look like " V....D libx264  libx264 H.264 ..."
        if len(parts) >= 2 and len(parts[0]) == 6 and parts[0][0] in "VAS":
            names.add(parts[1])
    return frozenset(names)


def is_type_supported(target: ExportTarget) -> bool:
    """True if ffmpeg can encode both streams of *target*."""
    try:
        encoders = available_encoders()
    except (OSError, subprocess.CalledProcessError) as exc:
        logger.warning("Could not probe ffmpeg encoders: %s", exc)
        return False
    return target.video_codec in encoders and target.audio_codec in encoders


def select_target(is_supported=is_type_supported) -> ExportTarget:
    """First supported target in preference order, else the fallback."""
    for target in EXPORT_TARGETS[:-1]:
        if is_supported(target):
            return target
        logger.warning("%s not supported, falling back", target.mime_type)
    return EXPORT_TARGETS[-1]


# ── Recorder ──────────────────────────────────────────────────────


class FfmpegRecorder:
    """Encode captured frames, plus an optional audio mix, to *target*.

    Lifecycle mirrors a media recorder: start(), write_frame() per
    captured frame, then stop() which finalizes the container and emits
    the encoded bytes through *on_data* in arrival order. abort() drops
    everything without emitting.

    Args:
        target: Container / codec choice.
        size: Frame size as (width, height). Must be even for yuv420p.
        fps: Capture frame rate.
        audio: AudioMix to mux in, or None for video only.
        on_data: Callback receiving each encoded bytes chunk.
    """

    def __init__(self, target: ExportTarget, size, fps: float, audio=None, on_data=None):
        self.target = target
        self.size = tuple(size)
        self.fps = fps
        self.audio = audio
        self.on_data = on_data or (lambda chunk: None)
        self.recording = False
        self._workdir = None
        self._path = None
        self._writer = None

    def start(self) -> None:
        self._workdir = Path(tempfile.mkdtemp(prefix="keycompose-"))
        self._path = self._workdir / f"capture.{self.target.extension}"

        audio_path = None
        output_params = list(self.target.video_params)
        if self.audio is not None:
            audio_path = str(self._workdir / "mix.wav")
            self.audio.write_wav(audio_path)
            output_params.append("-shortest")

        self._writer = imageio_ffmpeg.write_frames(
            str(self._path),
            self.size,
            pix_fmt_in="rgb24",
            fps=self.fps,
            codec=self.target.video_codec,
            quality=None,
            macro_block_size=2,
            ffmpeg_log_level="error",
            output_params=output_params,
            audio_path=audio_path,
            audio_codec=self.target.audio_codec if audio_path else None,
        )
        self._writer.send(None)  # prime the generator, launches ffmpeg
        self.recording = True

    def write_frame(self, frame: np.ndarray) -> None:
        self._writer.send(np.ascontiguousarray(frame, dtype=np.uint8))

    def stop(self) -> None:
        """Finalize the file and emit it through on_data."""
        self._writer.close()
        self._writer = None
        self.recording = False
        with open(self._path, "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                self.on_data(chunk)
        self._cleanup()

    def abort(self) -> None:
        """Tear down without emitting data."""
        if self._writer is not None:
            try:
                self._writer.close()
            except (OSError, RuntimeError) as exc:
                logger.debug("ffmpeg writer did not close cleanly: %s", exc)
            self._writer = None
        self.recording = False
        self._cleanup()

    def _cleanup(self) -> None:
        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
            self._workdir = None
