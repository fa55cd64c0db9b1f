"""Patch rendering and alpha blending onto the output surface.

Two pieces:
  - render_placeholder_patch(): the box drawn in place of media that
    could not be decoded (blue fill, white border, file name label).
  - blend_patch(): source-over compositing of an RGBA patch onto an RGBA
    surface at an arbitrary (possibly off-surface) position, with a
    global opacity factor.
"""

import numpy as np
from PIL import Image, ImageDraw

from .common import load_font


# ── Constants ────────────────────────────────────────────────────

PLACEHOLDER_FILL = (59, 130, 246)
PLACEHOLDER_BORDER = (255, 255, 255)
PLACEHOLDER_BORDER_WIDTH = 2
PLACEHOLDER_ALPHA = 0.5          # multiplied with the layer opacity
PLACEHOLDER_FONT_SIZE = 24
PLACEHOLDER_LINE_GAP = 40        # baseline offset of the hint line
PLACEHOLDER_HINT = "Convert to WebM before exporting"


# ── Placeholder rendering ────────────────────────────────────────


def render_placeholder_patch(name: str, width: int, height: int) -> np.ndarray:
    """Render the placeholder box for an undecodable file.

    The patch is fully opaque; the caller applies PLACEHOLDER_ALPHA and
    the layer opacity while blending. Labels are centered horizontally,
    the file name on the box's vertical center and the hint below it.

    Returns:
        numpy array of shape (height, width, 4), dtype uint8 (RGBA).
    """
    width = max(1, width)
    height = max(1, height)
    img = Image.new("RGBA", (width, height), (*PLACEHOLDER_FILL, 255))
    draw = ImageDraw.Draw(img)

    draw.rectangle(
        [(0, 0), (width - 1, height - 1)],
        outline=(*PLACEHOLDER_BORDER, 255),
        width=PLACEHOLDER_BORDER_WIDTH,
    )

    font = load_font(PLACEHOLDER_FONT_SIZE)
    lines = [
        (f"Unsupported: {name}", height / 2),
        (PLACEHOLDER_HINT, height / 2 + PLACEHOLDER_LINE_GAP),
    ]
    for text, baseline in lines:
        bbox = draw.textbbox((0, 0), text, font=font)
        tw = bbox[2] - bbox[0]
        th = bbox[3] - bbox[1]
        draw.text(
            ((width - tw) / 2, baseline - th),
            text,
            fill=(255, 255, 255, 255),
            font=font,
        )

    return np.array(img)


# ── Alpha blending ───────────────────────────────────────────────


def blend_patch(
    surface: np.ndarray,
    patch: np.ndarray,
    x: int,
    y: int,
    opacity: float = 1.0,
) -> None:
    """Composite an RGBA patch onto an RGBA surface in place (source-over).

    The patch is clipped to the surface bounds; a patch entirely off the
    surface is a no-op. Both buffers hold straight (non-premultiplied)
    alpha.

    Args:
        surface: (H, W, 4) uint8 destination, modified in place.
        patch: (h, w, 4) uint8 source.
        x, y: Top-left of the patch in surface pixels (may be negative).
        opacity: Global factor multiplied into the patch alpha.
    """
    surf_h, surf_w = surface.shape[:2]
    patch_h, patch_w = patch.shape[:2]

    x0, y0 = max(x, 0), max(y, 0)
    x1, y1 = min(x + patch_w, surf_w), min(y + patch_h, surf_h)
    if x0 >= x1 or y0 >= y1 or opacity <= 0:
        return

    src = patch[y0 - y:y1 - y, x0 - x:x1 - x].astype(np.float32) / 255.0
    dst = surface[y0:y1, x0:x1].astype(np.float32) / 255.0

    src_a = src[:, :, 3:4] * opacity
    dst_a = dst[:, :, 3:4]
    out_a = src_a + dst_a * (1.0 - src_a)

    premul = src[:, :, :3] * src_a + dst[:, :, :3] * dst_a * (1.0 - src_a)
    out_rgb = np.divide(
        premul, out_a,
        out=np.zeros_like(premul),
        where=out_a > 0,
    )

    region = surface[y0:y1, x0:x1]
    region[:, :, :3] = np.clip(np.round(out_rgb * 255.0), 0, 255).astype(np.uint8)
    region[:, :, 3] = np.clip(np.round(out_a[:, :, 0] * 255.0), 0, 255).astype(np.uint8)
