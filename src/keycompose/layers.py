"""Layer model: the three fixed compositing slots.

Each layer holds a source plus the transform and keying parameters the
compositor reads every frame. Range rules are enforced here so nothing
invalid reaches the draw path:

  - scale must be > 0 and positions finite (ValueError otherwise).
  - opacity and chroma_key_tolerance are clamped to [0, 1].

Form controls map onto layers through LayerField, an explicit table of
getters and setters.
"""

import math
from enum import Enum

from .common import to_rgb
from .sources import LayerKind


DEFAULT_CHROMA_COLOR = (0, 255, 0)
DEFAULT_TOLERANCE = 0.1


class LayerId(Enum):
    """Layer ids in z-order (first drawn first)."""

    BACKGROUND = "background"
    PRIMARY = "primary"
    OVERLAY = "overlay"


class LayerField(Enum):
    POSITION_X = "position-x"
    POSITION_Y = "position-y"
    SCALE = "scale"
    OPACITY = "opacity"


def _clamp01(value: float) -> float:
    value = float(value)
    if math.isnan(value):
        raise ValueError("Value must be a number, got NaN")
    return max(0.0, min(1.0, value))


class Layer:
    """One compositing slot."""

    def __init__(self, layer_id: LayerId):
        self.id = layer_id
        self.source = None
        self._position_x = 0.0
        self._position_y = 0.0
        self._scale = 1.0
        self._opacity = 1.0
        self.chroma_key_enabled = False
        self._chroma_key_color = DEFAULT_CHROMA_COLOR
        self._chroma_key_tolerance = DEFAULT_TOLERANCE
        self.poster_frame = None

    def __repr__(self):
        return (
            f"Layer({self.id.value}, kind={self.kind.value}, "
            f"pos=({self.position_x:g}, {self.position_y:g}), scale={self.scale:g})"
        )

    @property
    def kind(self) -> LayerKind:
        if self.source is None:
            return LayerKind.NONE
        return self.source.kind

    # ── Validated fields ─────────────────────────────────────────

    @property
    def position_x(self) -> float:
        return self._position_x

    @position_x.setter
    def position_x(self, value: float) -> None:
        self._position_x = self._finite("position-x", value)

    @property
    def position_y(self) -> float:
        return self._position_y

    @position_y.setter
    def position_y(self, value: float) -> None:
        self._position_y = self._finite("position-y", value)

    def _finite(self, name: str, value: float) -> float:
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"Layer '{self.id.value}': {name} must be finite, got {value}")
        return value

    @property
    def scale(self) -> float:
        return self._scale

    @scale.setter
    def scale(self, value: float) -> None:
        value = float(value)
        if not math.isfinite(value) or value <= 0:
            raise ValueError(f"Layer '{self.id.value}': scale must be > 0, got {value}")
        self._scale = value

    @property
    def opacity(self) -> float:
        return self._opacity

    @opacity.setter
    def opacity(self, value: float) -> None:
        self._opacity = _clamp01(value)

    @property
    def chroma_key_tolerance(self) -> float:
        return self._chroma_key_tolerance

    @chroma_key_tolerance.setter
    def chroma_key_tolerance(self, value: float) -> None:
        self._chroma_key_tolerance = _clamp01(value)

    @property
    def chroma_key_color(self) -> tuple[int, int, int]:
        return self._chroma_key_color

    @chroma_key_color.setter
    def chroma_key_color(self, value) -> None:
        self._chroma_key_color = to_rgb(value)

    # ── Operations ───────────────────────────────────────────────

    def set_source(self, source) -> None:
        """Replace the source and reset transform state tied to the old one.

        Position goes back to centre, scale to 1 and the poster frame is
        dropped. The previous source is closed.
        """
        previous = self.source
        self.source = source
        self.position_x = 0.0
        self.position_y = 0.0
        self._scale = 1.0
        self.poster_frame = None
        if previous is not None and previous is not source:
            previous.close()

    def center(self) -> None:
        self.position_x = 0.0
        self.position_y = 0.0

    def natural_size(self) -> tuple[int, int]:
        """Intrinsic (w, h) of the current source, (0, 0) when empty."""
        if self.source is None:
            return 0, 0
        return self.source.size


# ── Field table ──────────────────────────────────────────────────

_FIELD_GETTERS = {
    LayerField.POSITION_X: lambda layer: layer.position_x,
    LayerField.POSITION_Y: lambda layer: layer.position_y,
    LayerField.SCALE: lambda layer: layer.scale,
    LayerField.OPACITY: lambda layer: layer.opacity,
}


def _set_position_x(layer, value):
    layer.position_x = value


def _set_position_y(layer, value):
    layer.position_y = value


def _set_scale(layer, value):
    layer.scale = value


def _set_opacity(layer, value):
    layer.opacity = value


_FIELD_SETTERS = {
    LayerField.POSITION_X: _set_position_x,
    LayerField.POSITION_Y: _set_position_y,
    LayerField.SCALE: _set_scale,
    LayerField.OPACITY: _set_opacity,
}


def set_field(layer: Layer, field: LayerField | str, value: float) -> None:
    """Set a control field, e.g. set_field(layer, "scale", 0.5)."""
    _FIELD_SETTERS[LayerField(field)](layer, value)


def get_field(layer: Layer, field: LayerField | str) -> float:
    return _FIELD_GETTERS[LayerField(field)](layer)


# ── Layer stack ──────────────────────────────────────────────────


class LayerStack:
    """The three layers, iterated in z-order."""

    def __init__(self):
        self._layers = {layer_id: Layer(layer_id) for layer_id in LayerId}

    def __getitem__(self, layer_id: LayerId | str) -> Layer:
        return self._layers[LayerId(layer_id)]

    def __iter__(self):
        return iter(self._layers.values())

    def __len__(self):
        return len(self._layers)

    def videos(self):
        """Layers currently holding a video source, in z-order."""
        return [layer for layer in self if layer.kind is LayerKind.VIDEO]

    def reset_positions(self) -> None:
        for layer in self:
            layer.center()

    def close(self) -> None:
        for layer in self:
            if layer.source is not None:
                layer.source.close()
            layer.source = None
            layer.poster_frame = None
