"""Tests for the layer model."""

import numpy as np
import pytest

from keycompose.layers import (
    Layer,
    LayerField,
    LayerId,
    LayerStack,
    get_field,
    set_field,
)
from keycompose.sources import ImageSource, LayerKind, PlaceholderSource


def _image(w=8, h=4):
    return ImageSource("img.png", np.zeros((h, w, 4), dtype=np.uint8))


class TestLayerDefaults:
    def test_defaults(self):
        layer = Layer(LayerId.PRIMARY)
        assert layer.kind is LayerKind.NONE
        assert (layer.position_x, layer.position_y) == (0.0, 0.0)
        assert layer.scale == 1.0
        assert layer.opacity == 1.0
        assert layer.chroma_key_enabled is False
        assert layer.chroma_key_color == (0, 255, 0)
        assert layer.chroma_key_tolerance == pytest.approx(0.1)
        assert layer.poster_frame is None

    def test_natural_size_empty(self):
        assert Layer(LayerId.OVERLAY).natural_size() == (0, 0)


class TestValidation:
    @pytest.mark.parametrize("value", [0, -1, float("nan"), float("inf")])
    def test_scale_rejects_invalid(self, value):
        layer = Layer(LayerId.PRIMARY)
        with pytest.raises(ValueError, match="scale must be > 0"):
            layer.scale = value
        assert layer.scale == 1.0

    def test_scale_accepts_positive(self):
        layer = Layer(LayerId.PRIMARY)
        layer.scale = 0.25
        assert layer.scale == 0.25

    @pytest.mark.parametrize("value, expected", [(-0.5, 0.0), (0.4, 0.4), (1.7, 1.0)])
    def test_opacity_clamps(self, value, expected):
        layer = Layer(LayerId.PRIMARY)
        layer.opacity = value
        assert layer.opacity == pytest.approx(expected)

    @pytest.mark.parametrize("value, expected", [(-1, 0.0), (0.3, 0.3), (2, 1.0)])
    def test_tolerance_clamps(self, value, expected):
        layer = Layer(LayerId.PRIMARY)
        layer.chroma_key_tolerance = value
        assert layer.chroma_key_tolerance == pytest.approx(expected)

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_position_rejects_non_finite(self, value):
        layer = Layer(LayerId.PRIMARY)
        layer.position_x = 12
        with pytest.raises(ValueError, match="position-x must be finite"):
            layer.position_x = value
        with pytest.raises(ValueError, match="position-y must be finite"):
            set_field(layer, "position-y", value)
        assert (layer.position_x, layer.position_y) == (12.0, 0.0)

    def test_chroma_color_accepts_hex(self):
        layer = Layer(LayerId.PRIMARY)
        layer.chroma_key_color = "#0000ff"
        assert layer.chroma_key_color == (0, 0, 255)


class TestSetSource:
    def test_resets_transform_and_poster(self):
        layer = Layer(LayerId.PRIMARY)
        layer.position_x, layer.position_y = 10, -20
        layer.scale = 3
        layer.poster_frame = np.zeros((2, 2, 4), dtype=np.uint8)
        layer.opacity = 0.5

        layer.set_source(_image())
        assert layer.kind is LayerKind.IMAGE
        assert (layer.position_x, layer.position_y) == (0.0, 0.0)
        assert layer.scale == 1.0
        assert layer.poster_frame is None
        # Opacity is not part of the reset.
        assert layer.opacity == 0.5

    def test_kind_follows_source(self):
        layer = Layer(LayerId.OVERLAY)
        layer.set_source(PlaceholderSource("clip.mov"))
        assert layer.kind is LayerKind.PLACEHOLDER
        assert layer.natural_size() == (1280, 720)

    def test_closes_previous_source(self, fake_clip):
        from keycompose.sources import VideoSource

        clip = fake_clip()
        layer = Layer(LayerId.BACKGROUND)
        layer.set_source(VideoSource("a.mp4", clip))
        layer.set_source(_image())
        assert clip.closed


class TestFieldTable:
    def test_set_by_enum(self):
        layer = Layer(LayerId.PRIMARY)
        set_field(layer, LayerField.POSITION_X, 12.5)
        assert layer.position_x == 12.5

    def test_set_by_control_name(self):
        layer = Layer(LayerId.PRIMARY)
        set_field(layer, "position-y", -4)
        set_field(layer, "opacity", 0.3)
        assert layer.position_y == -4.0
        assert get_field(layer, "opacity") == pytest.approx(0.3)

    def test_scale_validation_applies(self):
        layer = Layer(LayerId.PRIMARY)
        with pytest.raises(ValueError):
            set_field(layer, "scale", 0)

    def test_unknown_field_raises(self):
        with pytest.raises(ValueError):
            set_field(Layer(LayerId.PRIMARY), "rotation", 90)


class TestLayerStack:
    def test_z_order(self):
        stack = LayerStack()
        assert [layer.id for layer in stack] == [
            LayerId.BACKGROUND, LayerId.PRIMARY, LayerId.OVERLAY,
        ]

    def test_lookup_by_name(self):
        stack = LayerStack()
        assert stack["overlay"] is stack[LayerId.OVERLAY]

    def test_reset_positions(self):
        stack = LayerStack()
        for layer in stack:
            layer.position_x, layer.position_y = 5, 5
        stack.reset_positions()
        assert all((l.position_x, l.position_y) == (0, 0) for l in stack)
