"""Export pipeline: record the live output surface plus mixed audio.

State machine: IDLE -> CAPTURING -> FINALIZING -> IDLE.

  1. Entry: the compositor switches to live frames for every layer.
     Every video source is rewound and unmuted, its audio routed into
     the mix, and playback starts once the recorder is running. A layer
     whose audio cannot be routed is logged and skipped.
  2. The surface is captured at 30 fps into the recorder, muxed with
     the mix when at least one track was routed. Frame slots missed
     while the loop was busy are filled with the current frame.
  3. The export target is MP4/H.264 when ffmpeg supports it, WebM/VP9
     otherwise.
  4. Every 100 ms progress is reported as min(round(elapsed/target*100), 99).
     Target is the background video's duration, else 5 seconds.
  5. Once elapsed reaches the target the recorder is stopped, sources
     paused, the encoded chunks are written to
     composite_export_<epoch-ms>.<ext> and 100 is reported.

Cancellation and failures tear down the same way (pause, release the
mix, re-mute, leave export mode) but write no file. A cancelled export
discards its partial output and raises ExportCancelled; any other
failure raises ExportError.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .audio import AudioMix
from .encoders import ExportTarget, FfmpegRecorder, select_target
from .layers import LayerId
from .sources import LayerKind

logger = logging.getLogger(__name__)


EXPORT_FPS = 30
PROGRESS_INTERVAL = 0.1          # seconds between progress reports
DEFAULT_EXPORT_DURATION = 5.0    # used when the background has no duration
_EPSILON = 1e-6                  # float slack on timer deadlines


class ExportError(RuntimeError):
    """An export could not complete."""


class ExportCancelled(ExportError):
    """An export was cancelled before reaching its stop condition."""


class ExportState(Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    FINALIZING = "finalizing"


def export_filename(extension: str, epoch_ms: int) -> str:
    return f"composite_export_{epoch_ms}.{extension}"


def progress_percent(elapsed: float, target_duration: float) -> int:
    """Progress while capturing; capped at 99 until finalization."""
    return min(int(elapsed / target_duration * 100 + 0.5), 99)


def _epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ExportSession:
    """Transient state of one export."""

    target_duration: float
    videos: list = field(default_factory=list)
    target: ExportTarget | None = None
    audio: AudioMix | None = None
    recorder: object = None
    chunks: list = field(default_factory=list)
    elapsed: float = 0.0
    frames_captured: int = 0
    progress: int = 0
    path: Path | None = None


class Exporter:
    """Runs exports for one compositor and layer stack.

    Args:
        compositor: Provides the output surface and the export flag.
        layers: LayerStack whose video sources are played and mixed.
        output_dir: Where exported files are written.
        recorder_factory: Called as factory(target, size, fps, audio=, on_data=).
        select: Returns the ExportTarget to use.
        clock: Monotonic seconds function shared with the video sources.
        sleep: Awaitable sleep used between capture ticks.
        now_ms: Epoch milliseconds for the file name.
        on_progress: Called with each progress percentage.
        on_download: Called with the written file path.
    """

    def __init__(
        self,
        compositor,
        layers,
        output_dir: str | Path = ".",
        recorder_factory=FfmpegRecorder,
        select=select_target,
        clock=time.monotonic,
        sleep=asyncio.sleep,
        now_ms=_epoch_ms,
        on_progress=None,
        on_download=None,
        fps: float = EXPORT_FPS,
    ):
        self.compositor = compositor
        self.layers = layers
        self.output_dir = Path(output_dir)
        self.fps = fps
        self.on_progress = on_progress
        self.on_download = on_download
        self.state = ExportState.IDLE
        self.session = None
        self._recorder_factory = recorder_factory
        self._select = select
        self._clock = clock
        self._sleep = sleep
        self._now_ms = now_ms
        self._cancel_requested = False

    @property
    def busy(self) -> bool:
        return self.state is not ExportState.IDLE

    def target_duration(self) -> float:
        background = self.layers[LayerId.BACKGROUND].source
        if background is not None and background.kind is LayerKind.VIDEO and background.duration > 0:
            return background.duration
        return DEFAULT_EXPORT_DURATION

    def cancel(self) -> None:
        """Ask a running export to stop at its next tick."""
        if self.busy:
            self._cancel_requested = True

    async def export(self, duration: float | None = None) -> Path:
        """Run one export to completion and return the written file."""
        if self.busy:
            raise ExportError("An export is already in progress")

        self.state = ExportState.CAPTURING
        self._cancel_requested = False
        self.compositor.is_exporting = True
        session = ExportSession(target_duration=duration or self.target_duration())
        self.session = session

        try:
            self._enter(session)
            await self._capture(session)

            self.state = ExportState.FINALIZING
            session.recorder.stop()
            session.recorder = None
            self._pause_videos(session)
            path = self._emit(session)
            self._report(session, 100)
            if self.on_download is not None:
                self.on_download(path)
        except (ExportError, asyncio.CancelledError):
            raise
        except Exception as exc:
            raise ExportError(f"Export failed: {exc}") from exc
        finally:
            self._teardown(session)

        return path

    # ── Phases ───────────────────────────────────────────────────

    def _enter(self, session: ExportSession) -> None:
        mix = AudioMix(session.target_duration)
        session.audio = mix
        session.videos = [layer.source for layer in self.layers.videos()]

        for layer in self.layers.videos():
            source = layer.source
            source.pause()
            source.seek(0)
            source.muted = False
            try:
                mix.route(source)
            except Exception as exc:
                logger.warning(
                    "Audio capture not possible for layer %s: %s", layer.id.value, exc,
                )

        session.target = self._select()
        logger.info(
            "Exporting %.1fs as %s (%d audio track(s))",
            session.target_duration, session.target.mime_type, len(mix.tracks),
        )

        session.recorder = self._recorder_factory(
            session.target,
            self.compositor.surface.size,
            self.fps,
            audio=mix if mix.has_audio else None,
            on_data=session.chunks.append,
        )
        # Starting the recorder renders the audio mix; playback begins
        # only once it is ready so the first frame lines up with t=0.
        session.recorder.start()
        for source in session.videos:
            source.play()

    async def _capture(self, session: ExportSession) -> None:
        """Feed frames and report progress until the stop condition.

        The frame count follows the capture clock: slots missed while the
        loop was busy are filled by repeating the current frame, so the
        recording always spans the elapsed time at the fixed fps.
        """
        max_frames = max(1, round(session.target_duration * self.fps))
        start = self._clock()
        polls = 0

        while True:
            if self._cancel_requested:
                raise ExportCancelled("Export cancelled")

            elapsed = self._clock() - start
            due = min(int((elapsed + _EPSILON) * self.fps) + 1, max_frames)
            if due > session.frames_captured:
                frame = self.compositor.surface.rgb_frame()
                for _ in range(due - session.frames_captured):
                    session.recorder.write_frame(frame)
                    session.frames_captured += 1

            if elapsed + _EPSILON >= (polls + 1) * PROGRESS_INTERVAL:
                polls = int((elapsed + _EPSILON) / PROGRESS_INTERVAL)
                session.elapsed = elapsed
                self._report(session, progress_percent(elapsed, session.target_duration))
                if elapsed + _EPSILON >= session.target_duration:
                    return

            wake = (polls + 1) * PROGRESS_INTERVAL
            if session.frames_captured < max_frames:
                wake = min(wake, session.frames_captured / self.fps)
            await self._sleep(max(0.0, wake - (self._clock() - start)))

    def _emit(self, session: ExportSession) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / export_filename(session.target.extension, self._now_ms())
        path.write_bytes(b"".join(session.chunks))
        session.path = path
        logger.info("Wrote %s (%d bytes)", path, path.stat().st_size)
        return path

    def _teardown(self, session: ExportSession) -> None:
        if session.recorder is not None:
            session.recorder.abort()
            session.recorder = None
        self._pause_videos(session)
        if session.audio is not None:
            session.audio.close()
        for source in session.videos:
            source.muted = True
        self.compositor.is_exporting = False
        self._cancel_requested = False
        self.state = ExportState.IDLE

    # ── Helpers ──────────────────────────────────────────────────

    def _pause_videos(self, session: ExportSession) -> None:
        for source in session.videos:
            source.pause()

    def _report(self, session: ExportSession, percent: int) -> None:
        percent = max(percent, session.progress)
        session.progress = percent
        if self.on_progress is not None:
            self.on_progress(percent)
