"""Compositing session owning the layers, surface, render loop and exporter.

A Session is created at the start of an interactive session and closed at
its end. Everything the UI can do goes through its control surface:

    session = Session(resolution=(1920, 1080), output_dir="exports")
    async with session:
        await session.load("background", "beach.mp4")
        await session.load("primary", "presenter-greenscreen.mp4")
        session.set_chroma_key(enabled=True, color="#00ff00", tolerance=0.12)
        session.fit_to_height()
        path = await session.export()
"""

import asyncio
import logging
import time
from pathlib import Path

from .compositor import DEFAULT_RESOLUTION, Compositor, OutputSurface
from .encoders import FfmpegRecorder, select_target
from .export import Exporter
from .layers import LayerField, LayerId, LayerStack, get_field, set_field
from .loop import DEFAULT_REFRESH_RATE, RenderLoop
from .sources import LayerKind, capture_poster_frame, resolve_source

logger = logging.getLogger(__name__)


POSTER_DELAY = 0.5  # seconds after load before the poster frame is grabbed


def _log_advisory(message: str) -> None:
    logger.warning(message)


class Session:
    """One compositing session.

    Args:
        resolution: Output surface (width, height).
        refresh_rate: Render ticks per second.
        output_dir: Directory for exported files.
        clock: Monotonic seconds function used by video playback and export.
        sleep: Awaitable sleep used by the render loop, export timer and
            poster capture.
        on_advisory: Called with a user-facing message when a file could
            not be decoded. Defaults to a logged warning.
        on_progress, on_download: Export callbacks (see Exporter).
        recorder_factory, select: Export recorder and target selection.
    """

    def __init__(
        self,
        resolution: tuple[int, int] = DEFAULT_RESOLUTION,
        refresh_rate: float = DEFAULT_REFRESH_RATE,
        output_dir: str | Path = ".",
        clock=time.monotonic,
        sleep=asyncio.sleep,
        on_advisory=_log_advisory,
        on_progress=None,
        on_download=None,
        recorder_factory=FfmpegRecorder,
        select=select_target,
    ):
        self.layers = LayerStack()
        self.surface = OutputSurface(*resolution)
        self.compositor = Compositor(self.layers, self.surface)
        self.render_loop = RenderLoop(self.compositor, refresh_rate, sleep=sleep)
        self.exporter = Exporter(
            self.compositor,
            self.layers,
            output_dir=output_dir,
            recorder_factory=recorder_factory,
            select=select,
            clock=clock,
            sleep=sleep,
            on_progress=on_progress,
            on_download=on_download,
        )
        self.selected = LayerId.PRIMARY
        self.is_playing = False
        self.on_advisory = on_advisory
        self._clock = clock
        self._sleep = sleep
        self._poster_tasks = set()

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def start(self) -> None:
        self.render_loop.start()

    async def close(self) -> None:
        """Stop rendering, cancel pending poster captures, release sources."""
        await self.render_loop.stop()
        for task in list(self._poster_tasks):
            task.cancel()
        if self._poster_tasks:
            await asyncio.gather(*self._poster_tasks, return_exceptions=True)
        self.layers.close()

    # ── State ────────────────────────────────────────────────────

    @property
    def is_exporting(self) -> bool:
        return self.compositor.is_exporting

    @property
    def readout(self):
        return self.compositor.readout

    @property
    def duration(self) -> float:
        """Longest known duration among the video layers."""
        durations = [layer.source.duration for layer in self.layers.videos()]
        return max(durations, default=0.0)

    @property
    def selected_layer(self):
        return self.layers[self.selected]

    # ── Loading ──────────────────────────────────────────────────

    async def load(self, layer_id: LayerId | str, path: str | Path):
        """Resolve a file into a layer's source and select that layer."""
        layer_id = LayerId(layer_id)
        source = await resolve_source(path, clock=self._clock)
        layer = self.layers[layer_id]
        layer.set_source(source)

        if source.kind is LayerKind.PLACEHOLDER:
            self.on_advisory(
                f"{source.name} cannot be played directly. It was loaded as a "
                "positioning box; convert it to WebM to include it in exports."
            )
        else:
            self._auto_fit(layer)

        if source.kind is LayerKind.VIDEO:
            task = asyncio.get_running_loop().create_task(self._capture_poster(layer, source))
            self._poster_tasks.add(task)
            task.add_done_callback(self._poster_tasks.discard)

        self.selected = layer_id
        return source

    def _auto_fit(self, layer) -> None:
        """Fit portrait media to a landscape surface by height, and vice versa."""
        w, h = layer.natural_size()
        if w <= 0 or h <= 0:
            return
        if h > w and self.surface.height < self.surface.width:
            layer.scale = self.surface.height / h
        elif w > h and self.surface.width < self.surface.height:
            layer.scale = self.surface.width / w

    async def _capture_poster(self, layer, source) -> None:
        await self._sleep(POSTER_DELAY)
        # Superseded by a newer source while waiting.
        if layer.source is not source:
            return
        try:
            frame = capture_poster_frame(source)
        except Exception as exc:
            logger.warning("Could not capture poster frame for %s: %s", source.name, exc)
            return
        if layer.source is source:
            layer.poster_frame = frame

    # ── Control surface ──────────────────────────────────────────

    def select(self, layer_id: LayerId | str) -> None:
        self.selected = LayerId(layer_id)

    def set_field(self, field: LayerField | str, value: float, layer_id=None) -> None:
        layer = self.layers[layer_id or self.selected]
        set_field(layer, field, value)

    def get_field(self, field: LayerField | str, layer_id=None) -> float:
        return get_field(self.layers[layer_id or self.selected], field)

    def set_chroma_key(self, enabled=None, color=None, tolerance=None, layer_id=None) -> None:
        layer = self.layers[layer_id or self.selected]
        if enabled is not None:
            layer.chroma_key_enabled = bool(enabled)
        if color is not None:
            layer.chroma_key_color = color
        if tolerance is not None:
            layer.chroma_key_tolerance = tolerance

    def set_resolution(self, width: int, height: int) -> None:
        """Recreate the output surface and re-center every layer."""
        self.surface.resize(width, height)
        self.layers.reset_positions()

    def toggle_playback(self) -> bool:
        """Play/pause the background video; other layers stay still."""
        self.is_playing = not self.is_playing
        background = self.layers[LayerId.BACKGROUND].source
        if background is not None and background.kind is LayerKind.VIDEO:
            if self.is_playing:
                background.play()
            else:
                background.pause()
        return self.is_playing

    def fit_to_width(self) -> None:
        self._fit(by_height=False)

    def fit_to_height(self) -> None:
        self._fit(by_height=True)

    def _fit(self, by_height: bool) -> None:
        layer = self.selected_layer
        w, h = layer.natural_size()
        if w <= 0 or h <= 0:
            return
        if by_height:
            layer.scale = self.surface.height / h
        else:
            layer.scale = self.surface.width / w
        layer.center()

    def center(self) -> None:
        self.selected_layer.center()

    # ── Output ───────────────────────────────────────────────────

    async def export(self, duration: float | None = None) -> Path:
        """Record one export. Videos are left paused afterwards."""
        try:
            return await self.exporter.export(duration)
        finally:
            self.is_playing = False

    def cancel_export(self) -> None:
        self.exporter.cancel()

    def snapshot(self, path: str | Path) -> Path:
        """Render one frame and save the surface as an image."""
        self.compositor.render_frame()
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.surface.to_image().save(path)
        return path
