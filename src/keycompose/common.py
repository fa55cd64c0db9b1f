"""Shared utilities for the compositor.

Contains: color parsing, path variable resolution, font loading and
time formatting.
"""

import math
import re
from pathlib import Path

from PIL import ImageFont


# ── Font paths ─────────────────────────────────────────────────────
# Inter preferred for the placeholder label, DejaVu Sans as fallback.

FONT_PATHS = [
    Path.home() / ".local/share/fonts/Inter.ttc",
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
]


# ── Color utilities ────────────────────────────────────────────────

def parse_hex_color(hex_str: str) -> tuple[int, int, int]:
    """Convert '#RRGGBB' or 'RRGGBB' string to (R, G, B) tuple."""
    hex_str = hex_str.lstrip("#")
    if len(hex_str) != 6 or not all(c in "0123456789abcdefABCDEF" for c in hex_str):
        raise ValueError(f"Invalid hex color: '#{hex_str}'")
    return (int(hex_str[0:2], 16), int(hex_str[2:4], 16), int(hex_str[4:6], 16))


def to_rgb(value) -> tuple[int, int, int]:
    """Accept a hex string or an (r, g, b) sequence, return an int triple.

    Channels outside 0-255 raise ValueError.
    """
    if isinstance(value, str):
        return parse_hex_color(value)
    rgb = tuple(int(c) for c in value)
    if len(rgb) != 3 or any(c < 0 or c > 255 for c in rgb):
        raise ValueError(f"Invalid RGB color: {value!r}")
    return rgb


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return paths[key]
    return re.sub(r"\$\{(\w+)\}", _replace, text)


# ── Font loading ───────────────────────────────────────────────────

def load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load Inter (or fallback) at the given size."""
    for font_path in FONT_PATHS:
        if font_path.exists():
            try:
                return ImageFont.truetype(str(font_path), size=size, index=0)
            except (OSError, IndexError):
                continue
    # Last resort: Pillow default font.
    return ImageFont.load_default()


# ── Time formatting ────────────────────────────────────────────────

def format_time(seconds: float) -> str:
    """Format seconds as 'mm:ss' (floored, zero-padded).

    Non-finite or negative input formats as '00:00'.
    """
    if not math.isfinite(seconds) or seconds < 0:
        seconds = 0.0
    m = int(seconds // 60)
    s = int(seconds % 60)
    return f"{m:02d}:{s:02d}"
