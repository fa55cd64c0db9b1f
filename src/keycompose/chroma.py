"""Chroma-key engine.

Per pixel, the Euclidean RGB distance to the key color is normalized by
the largest possible distance (black to white) into diff in [0, 1]:

  - diff < tolerance                 -> alpha 0
  - tolerance <= diff < tol + 0.05   -> alpha ramps linearly 0..255
  - otherwise                        -> alpha untouched

RGB channels are never modified. Keying runs on frames at their natural
resolution, before any scaling, so the result does not depend on how
large the layer is drawn.
"""

import math

import numpy as np


MAX_DISTANCE = math.sqrt(3 * 255 ** 2)  # ~441.67
FEATHER = 0.05


def color_distance(frame: np.ndarray, color: tuple[int, int, int]) -> np.ndarray:
    """Normalized RGB distance of every pixel to *color*, shape (h, w)."""
    rgb = frame[:, :, :3].astype(np.float32)
    delta = rgb - np.asarray(color, dtype=np.float32)
    return np.sqrt(np.sum(delta * delta, axis=2)) / MAX_DISTANCE


def chroma_key(
    frame: np.ndarray,
    color: tuple[int, int, int],
    tolerance: float,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Key *color* out of an RGBA frame.

    Args:
        frame: (h, w, 4) uint8 RGBA. Not modified.
        color: Key color as (r, g, b).
        tolerance: Hard-cut threshold in [0, 1].
        out: Optional (h, w, 4) uint8 buffer to write into.

    Returns:
        The keyed frame (``out`` when given).
    """
    if out is None:
        out = frame.copy()
    else:
        np.copyto(out, frame)

    diff = color_distance(frame, color)
    alpha = out[:, :, 3]

    feather = (diff >= tolerance) & (diff < tolerance + FEATHER)
    ramp = (diff[feather] - tolerance) / FEATHER * 255.0
    alpha[feather] = np.clip(np.round(ramp), 0, 255).astype(np.uint8)
    alpha[diff < tolerance] = 0
    return out


class ChromaKeyer:
    """Chroma keying with one reusable scratch buffer.

    The buffer is reallocated only when the incoming frame shape changes,
    so a layer keyed every frame at a fixed natural size allocates once.
    The returned array is the scratch buffer itself and is overwritten
    by the next call.
    """

    def __init__(self):
        self._scratch = None

    @property
    def scratch_shape(self):
        return None if self._scratch is None else self._scratch.shape

    def apply(self, frame: np.ndarray, color, tolerance: float) -> np.ndarray:
        if self._scratch is None or self._scratch.shape != frame.shape:
            self._scratch = np.empty_like(frame)
        return chroma_key(frame, color, tolerance, out=self._scratch)
