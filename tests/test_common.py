"""Tests for keycompose.common utilities."""

import pytest

from keycompose.common import (
    format_time,
    load_font,
    parse_hex_color,
    resolve_path_vars,
    to_rgb,
)


class TestParseHexColor:
    def test_with_hash(self):
        assert parse_hex_color("#00ff00") == (0, 255, 0)

    def test_without_hash(self):
        assert parse_hex_color("1A1A1A") == (26, 26, 26)

    def test_invalid_raises(self):
        with pytest.raises(ValueError, match="Invalid hex color"):
            parse_hex_color("#12345")

    def test_non_hex_raises(self):
        with pytest.raises(ValueError, match="Invalid hex color"):
            parse_hex_color("#GGGGGG")


class TestToRgb:
    def test_hex_string(self):
        assert to_rgb("#3b82f6") == (59, 130, 246)

    def test_sequence(self):
        assert to_rgb([0, 255, 0]) == (0, 255, 0)

    def test_out_of_range_raises(self):
        with pytest.raises(ValueError, match="Invalid RGB"):
            to_rgb((0, 256, 0))

    def test_wrong_length_raises(self):
        with pytest.raises(ValueError, match="Invalid RGB"):
            to_rgb((0, 255))


class TestResolvePathVars:
    def test_single_var(self):
        assert resolve_path_vars("${media}/bg.mp4", {"media": "/data"}) == "/data/bg.mp4"

    def test_no_vars(self):
        assert resolve_path_vars("/plain/path", {}) == "/plain/path"

    def test_unknown_var_raises(self):
        with pytest.raises(ValueError, match="Unknown path variable"):
            resolve_path_vars("${missing}/x", {})


class TestLoadFont:
    def test_returns_font_object(self):
        assert load_font(size=24) is not None


class TestFormatTime:
    def test_zero(self):
        assert format_time(0) == "00:00"

    def test_floors_seconds(self):
        assert format_time(59.99) == "00:59"

    def test_minutes(self):
        assert format_time(125.4) == "02:05"

    def test_nan_is_zero(self):
        assert format_time(float("nan")) == "00:00"

    def test_negative_is_zero(self):
        assert format_time(-3) == "00:00"
