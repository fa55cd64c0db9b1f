"""Scene manifest loader.

A scene is a YAML file describing one session: the output resolution
and, per layer, the media file plus its initial transform and chroma key.

    paths:
      media: /data/shoot-03
    output:
      resolution: [1920, 1080]
      directory: ./exports
      refresh_rate: 60
    layers:
      background:
        path: ${media}/beach.mp4
      primary:
        path: ${media}/presenter.mov
        fit: height
        position: [0, 120]
        chroma_key:
          color: "#00ff00"
          tolerance: 0.12
      overlay:
        path: ${media}/logo.png
        scale: 0.25
        opacity: 0.8

Processing: parse YAML, resolve ${path} variables, parse hex colors,
validate layer ids and field ranges. Errors are ValueError with the
offending layer in the message.
"""

from pathlib import Path

import yaml

from .common import parse_hex_color, resolve_path_vars
from .compositor import DEFAULT_RESOLUTION
from .layers import DEFAULT_CHROMA_COLOR, DEFAULT_TOLERANCE, LayerId
from .loop import DEFAULT_REFRESH_RATE


VALID_LAYERS = {layer_id.value for layer_id in LayerId}

VALID_FITS = {"width", "height"}

LAYER_KEYS = {"path", "position", "scale", "opacity", "fit", "chroma_key"}


def _is_int(value) -> bool:
    # YAML booleans load as bool, a subclass of int.
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ── Manifest loading ──────────────────────────────────────────────


def load_scene(scene_path: str | Path) -> dict:
    """Load, validate and normalize a scene manifest.

    Returns:
        Dict with "output" (resolution tuple, directory, refresh_rate) and
        "layers" (layer id -> normalized layer dict, in z-order).

    Raises:
        ValueError: Unknown layer, bad field value.
        FileNotFoundError: Missing manifest file.
    """
    with open(scene_path) as f:
        raw = yaml.safe_load(f) or {}

    paths = raw.get("paths", {})
    config = {"output": _parse_output(raw.get("output") or {}, paths)}

    raw_layers = raw.get("layers") or {}
    if not isinstance(raw_layers, dict):
        raise ValueError("'layers' must be a mapping of layer id to layer settings")

    unknown = set(raw_layers) - VALID_LAYERS
    if unknown:
        raise ValueError(
            f"Unknown layer(s) {sorted(unknown)}. Valid: {sorted(VALID_LAYERS)}"
        )

    # Normalize in z-order regardless of YAML key order.
    layers = {}
    for layer_id in LayerId:
        entry = raw_layers.get(layer_id.value)
        if entry is None:
            continue
        layers[layer_id.value] = _parse_layer(entry, layer_id.value, paths)
    config["layers"] = layers

    return config


def _parse_output(output: dict, paths: dict) -> dict:
    resolution = output.get("resolution", list(DEFAULT_RESOLUTION))
    if (
        not isinstance(resolution, (list, tuple))
        or len(resolution) != 2
        or not all(_is_int(v) and v > 0 for v in resolution)
    ):
        raise ValueError(
            f"output.resolution must be [width, height] positive integers, got {resolution!r}"
        )

    refresh_rate = output.get("refresh_rate", DEFAULT_REFRESH_RATE)
    if not _is_number(refresh_rate) or refresh_rate <= 0:
        raise ValueError(f"output.refresh_rate must be a positive number, got {refresh_rate!r}")

    directory = resolve_path_vars(str(output.get("directory", ".")), paths)
    return {
        "resolution": tuple(resolution),
        "directory": directory,
        "refresh_rate": refresh_rate,
    }


def _parse_layer(entry: dict, name: str, paths: dict) -> dict:
    """Validate one layer entry and fill in defaults."""
    prefix = f"Layer '{name}'"

    if not isinstance(entry, dict):
        raise ValueError(f"{prefix}: settings must be a mapping")

    extra = set(entry) - LAYER_KEYS
    if extra:
        raise ValueError(f"{prefix}: unknown field(s) {sorted(extra)}")

    if "path" not in entry:
        raise ValueError(f"{prefix}: missing required field 'path'")

    layer = {"path": resolve_path_vars(str(entry["path"]), paths)}

    position = entry.get("position", [0, 0])
    if (
        not isinstance(position, (list, tuple))
        or len(position) != 2
        or not all(_is_number(v) for v in position)
    ):
        raise ValueError(f"{prefix}: 'position' must be [x, y], got {position!r}")
    layer["position"] = (float(position[0]), float(position[1]))

    scale = entry.get("scale")
    if scale is not None and (not _is_number(scale) or scale <= 0):
        raise ValueError(f"{prefix}: 'scale' must be > 0, got {scale!r}")
    layer["scale"] = scale

    opacity = entry.get("opacity", 1.0)
    if not _is_number(opacity) or not 0 <= opacity <= 1:
        raise ValueError(f"{prefix}: 'opacity' must be between 0 and 1, got {opacity!r}")
    layer["opacity"] = float(opacity)

    fit = entry.get("fit")
    if fit is not None and fit not in VALID_FITS:
        raise ValueError(f"{prefix}: invalid fit '{fit}'. Valid: {sorted(VALID_FITS)}")
    if fit is not None and scale is not None:
        raise ValueError(f"{prefix}: 'fit' and 'scale' are mutually exclusive")
    layer["fit"] = fit

    layer["chroma_key"] = _parse_chroma_key(entry.get("chroma_key"), prefix)
    return layer


def _parse_chroma_key(value, prefix: str) -> dict | None:
    if value is None or value is False:
        return None
    if value is True:
        value = {}
    if not isinstance(value, dict):
        raise ValueError(f"{prefix}: 'chroma_key' must be a mapping or true")

    color = value.get("color")
    rgb = parse_hex_color(color) if color is not None else DEFAULT_CHROMA_COLOR

    tolerance = value.get("tolerance", DEFAULT_TOLERANCE)
    if not _is_number(tolerance) or not 0 <= tolerance <= 1:
        raise ValueError(
            f"{prefix}: chroma_key.tolerance must be between 0 and 1, got {tolerance!r}"
        )
    return {"color": rgb, "tolerance": float(tolerance)}


def validate_paths(config: dict) -> None:
    """Check that every layer's media file exists."""
    for name, layer in config["layers"].items():
        if not Path(layer["path"]).exists():
            raise FileNotFoundError(f"Layer '{name}': media not found: {layer['path']}")


# ── Applying a scene ──────────────────────────────────────────────


async def apply_scene(session, config: dict) -> None:
    """Load every layer of *config* into *session* and set its fields."""
    for name, layer_cfg in config["layers"].items():
        await session.load(name, layer_cfg["path"])
        layer = session.layers[name]

        if layer_cfg["fit"] == "width":
            session.select(name)
            session.fit_to_width()
        elif layer_cfg["fit"] == "height":
            session.select(name)
            session.fit_to_height()
        elif layer_cfg["scale"] is not None:
            layer.scale = layer_cfg["scale"]

        layer.position_x, layer.position_y = layer_cfg["position"]
        layer.opacity = layer_cfg["opacity"]

        chroma = layer_cfg["chroma_key"]
        if chroma is not None:
            session.set_chroma_key(
                enabled=True,
                color=chroma["color"],
                tolerance=chroma["tolerance"],
                layer_id=name,
            )
