"""Tests for the keycompose command line."""

import pytest
import yaml
from PIL import Image

from keycompose.cli import main


@pytest.fixture
def scene(tmp_path, make_image):
    """A small two-layer scene made of still images."""
    bg = make_image("bg.png", size=(64, 36), color=(0, 0, 255, 255))
    fg = make_image("fg.png", size=(16, 16), color=(0, 255, 0, 255))
    data = {
        "paths": {"media": str(tmp_path)},
        "output": {"resolution": [64, 36], "directory": str(tmp_path / "exports"), "refresh_rate": 30},
        "layers": {
            "background": {"path": "${media}/bg.png"},
            "primary": {"path": "${media}/fg.png", "chroma_key": True},
        },
    }
    path = tmp_path / "scene.yaml"
    path.write_text(yaml.dump(data))
    return path


class TestValidate:
    def test_valid_scene(self, scene, capsys):
        main(["validate", "--scene", str(scene)])
        out = capsys.readouterr().out
        assert "Scene valid: 2 layer(s) at 64x36" in out
        assert "primary" in out and "[chroma key]" in out

    def test_missing_media(self, scene, tmp_path):
        (tmp_path / "fg.png").unlink()
        with pytest.raises(FileNotFoundError, match="Layer 'primary'"):
            main(["validate", "--scene", str(scene)])


class TestSnapshot:
    def test_keyed_layer_shows_background(self, scene, tmp_path):
        out = tmp_path / "frame.png"
        main(["snapshot", "--scene", str(scene), "--output", str(out)])
        with Image.open(out) as img:
            assert img.size == (64, 36)
            # The green primary is keyed out entirely.
            assert img.getpixel((32, 18)) == (0, 0, 255, 255)


class TestExport:
    def test_export_writes_file(self, scene, tmp_path, capsys):
        main(["export", "--scene", str(scene), "--duration", "0.5"])
        files = list((tmp_path / "exports").glob("composite_export_*"))
        assert len(files) == 1
        assert files[0].suffix in (".mp4", ".webm")
        assert files[0].stat().st_size > 0
        out = capsys.readouterr().out
        assert "Export: 100%" in out
        assert "Done:" in out

    def test_rejects_non_positive_duration(self, scene):
        with pytest.raises(SystemExit) as exc:
            main(["export", "--scene", str(scene), "--duration", "0"])
        assert exc.value.code == 2


def test_no_command_prints_help(capsys):
    with pytest.raises(SystemExit) as exc:
        main([])
    assert exc.value.code == 1
    assert "usage: keycompose" in capsys.readouterr().out
