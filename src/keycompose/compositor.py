"""Per-frame compositing of the three layers onto the output surface.

Geometry: a layer's position is an offset from the surface center, and
scaling is anchored on that same center. For natural size (w, h), scale s
and position (px, py) on a W x H surface the destination rectangle is

    width  = w * s
    height = h * s
    x      = W / 2 + px - width / 2
    y      = H / 2 + py - height / 2

Draw order is fixed: background, primary, overlay.
"""

import logging
from dataclasses import dataclass

import numpy as np
from PIL import Image

from .chroma import ChromaKeyer
from .common import format_time
from .layers import LayerId
from .placeholder import PLACEHOLDER_ALPHA, blend_patch, render_placeholder_patch
from .sources import LayerKind

logger = logging.getLogger(__name__)


DEFAULT_RESOLUTION = (1920, 1080)


# ── Output surface ────────────────────────────────────────────────


class OutputSurface:
    """RGBA raster target receiving each composited frame."""

    def __init__(self, width: int, height: int):
        self._allocate(width, height)

    def _allocate(self, width: int, height: int) -> None:
        width, height = int(width), int(height)
        if width <= 0 or height <= 0:
            raise ValueError(f"Surface size must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        self.pixels = np.zeros((height, width, 4), dtype=np.uint8)

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def clear(self) -> None:
        self.pixels.fill(0)

    def resize(self, width: int, height: int) -> None:
        """Recreate the surface; existing content is discarded."""
        self._allocate(width, height)

    def rgb_frame(self) -> np.ndarray:
        """Current content composited over black, (H, W, 3) uint8."""
        alpha = self.pixels[:, :, 3:4].astype(np.float32) / 255.0
        rgb = self.pixels[:, :, :3].astype(np.float32) * alpha
        return np.round(rgb).astype(np.uint8)

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels.copy(), "RGBA")


# ── Geometry ──────────────────────────────────────────────────────


def layer_rect(
    natural_size: tuple[int, int],
    scale: float,
    position: tuple[float, float],
    surface_size: tuple[int, int],
) -> tuple[float, float, float, float]:
    """Destination rectangle (x, y, w, h) of a layer on the surface."""
    nat_w, nat_h = natural_size
    surf_w, surf_h = surface_size
    draw_w = nat_w * scale
    draw_h = nat_h * scale
    x = surf_w / 2 + position[0] - draw_w / 2
    y = surf_h / 2 + position[1] - draw_h / 2
    return x, y, draw_w, draw_h


def _resample(frame: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize an RGBA frame to (width, height); no-op at natural size."""
    h, w = frame.shape[:2]
    if (w, h) == (width, height):
        return frame
    img = Image.fromarray(frame, "RGBA").resize((width, height), Image.BILINEAR)
    return np.array(img)


# ── Time readout ──────────────────────────────────────────────────


@dataclass
class TimeReadout:
    """Playback position of the background video."""

    progress_percent: float = 0.0
    elapsed_text: str = "00:00"
    total_text: str = "00:00"

    def __str__(self):
        return f"{self.elapsed_text} / {self.total_text}"


# ── Compositor ────────────────────────────────────────────────────


class Compositor:
    """Draws the layer stack onto the surface, one frame per call.

    While ``is_exporting`` is False, non-background video layers are drawn
    from their cached poster frame (when one exists) instead of being
    decoded every frame. During export every layer uses its live frame.
    """

    def __init__(self, layers, surface: OutputSurface, keyer: ChromaKeyer | None = None):
        self.layers = layers
        self.surface = surface
        self.keyer = keyer or ChromaKeyer()
        self.is_exporting = False
        self.readout = TimeReadout()
        self._placeholder_key = None
        self._placeholder_patch = None

    def render_frame(self) -> None:
        """Clear the surface and draw every layer in z-order.

        A layer that fails to draw is skipped for this frame; nothing
        propagates out of here.
        """
        self.surface.clear()
        for layer in self.layers:
            if layer.kind is LayerKind.NONE:
                continue
            try:
                self._draw_layer(layer)
            except Exception:
                logger.debug("Skipping layer %s this frame", layer.id.value, exc_info=True)
        self._update_readout()

    def _draw_source(self, layer, source):
        """Pick the frame to draw: poster frame in preview, else live."""
        if (
            source.kind is LayerKind.VIDEO
            and not self.is_exporting
            and layer.id is not LayerId.BACKGROUND
            and layer.poster_frame is not None
        ):
            return layer.poster_frame
        return source.frame()

    def _draw_layer(self, layer) -> None:
        # Snapshot the layer fields once so the whole frame sees one state.
        source = layer.source
        if source is None:
            return
        scale = layer.scale
        position = (layer.position_x, layer.position_y)
        opacity = layer.opacity

        if source.kind is LayerKind.PLACEHOLDER:
            self._draw_placeholder(source, scale, position, opacity)
            return

        frame = self._draw_source(layer, source)
        nat_h, nat_w = frame.shape[:2]
        if nat_w == 0 or nat_h == 0:
            return

        x, y, draw_w, draw_h = layer_rect((nat_w, nat_h), scale, position, self.surface.size)
        width, height = round(draw_w), round(draw_h)
        if width <= 0 or height <= 0:
            return

        if layer.chroma_key_enabled:
            frame = self.keyer.apply(
                frame, layer.chroma_key_color, layer.chroma_key_tolerance,
            )

        patch = _resample(frame, width, height)
        blend_patch(self.surface.pixels, patch, round(x), round(y), opacity)

    def _draw_placeholder(self, source, scale, position, opacity) -> None:
        x, y, draw_w, draw_h = layer_rect(source.size, scale, position, self.surface.size)
        width, height = round(draw_w), round(draw_h)
        if width <= 0 or height <= 0:
            return

        # Re-render only when the label or the box size changes.
        key = (source.name, width, height)
        if key != self._placeholder_key:
            self._placeholder_patch = render_placeholder_patch(source.name, width, height)
            self._placeholder_key = key

        blend_patch(
            self.surface.pixels, self._placeholder_patch,
            round(x), round(y), opacity * PLACEHOLDER_ALPHA,
        )

    def _update_readout(self) -> None:
        background = self.layers[LayerId.BACKGROUND].source
        if background is None or background.kind is not LayerKind.VIDEO:
            return
        current = background.current_time
        duration = background.duration
        percent = current / duration * 100 if duration > 0 else 0.0
        self.readout = TimeReadout(
            progress_percent=percent,
            elapsed_text=format_time(current),
            total_text=format_time(duration),
        )
