"""CLI for headless compositing sessions.

Loads a YAML scene into a Session, then either records an export (the
render loop runs in real time while the exporter captures it), saves a
single composited frame, or only validates the scene.

Usage:
    # Record an export (background duration, or 5s without a video)
    python -m keycompose.cli export --scene scene.yaml --output-dir exports/

    # Cap the export length
    python -m keycompose.cli export --scene scene.yaml --duration 3

    # One composited frame, 2.5s into the videos
    python -m keycompose.cli snapshot --scene scene.yaml \
        --output frame.png --at 2.5

    # Validate only (no loading or rendering)
    python -m keycompose.cli validate --scene scene.yaml
"""

import argparse
import asyncio
import logging
import time

from .scene import apply_scene, load_scene, validate_paths
from .session import Session


def _progress_printer():
    """Print export progress in 10% steps."""
    last = {"step": -1}

    def _print(percent):
        step = percent // 10
        if step > last["step"]:
            last["step"] = step
            print(f"  Export: {percent}%", flush=True)

    return _print


def _advisory(message):
    print(f"  NOTICE {message}", flush=True)


def _session_for(config, output_dir=None, **kwargs) -> Session:
    output = config["output"]
    return Session(
        resolution=output["resolution"],
        refresh_rate=output["refresh_rate"],
        output_dir=output_dir or output["directory"],
        on_advisory=_advisory,
        **kwargs,
    )


# ── Commands ──────────────────────────────────────────────────────


async def run_export(config: dict, output_dir: str | None = None, duration: float | None = None):
    """Load the scene, run the render loop and record one export."""
    session = _session_for(config, output_dir, on_progress=_progress_printer())
    async with session:
        await apply_scene(session, config)
        for layer in session.layers:
            print(f"  LAYER  {layer.id.value:<10} {layer.kind.value:<11} scale={layer.scale:.3f}")
        return await session.export(duration)


async def run_snapshot(config: dict, output: str, at: float = 0.0):
    """Load the scene and save one composited frame."""
    session = _session_for(config)
    try:
        await apply_scene(session, config)
        for layer in session.layers.videos():
            layer.source.seek(at)
        # Snapshots show what an export would record, so use live frames.
        session.compositor.is_exporting = True
        return session.snapshot(output)
    finally:
        await session.close()


def export(scene_path: str, output_dir: str | None = None, duration: float | None = None) -> None:
    config = load_scene(scene_path)
    validate_paths(config)
    w, h = config["output"]["resolution"]
    print(f"Exporting {len(config['layers'])} layer(s) at {w}x{h}", flush=True)
    t0 = time.monotonic()
    path = asyncio.run(run_export(config, output_dir, duration))
    print(f"\nDone: {path} ({time.monotonic() - t0:.1f}s wall)")


def snapshot(scene_path: str, output: str, at: float = 0.0) -> None:
    config = load_scene(scene_path)
    validate_paths(config)
    path = asyncio.run(run_snapshot(config, output, at))
    print(f"Done: {path}")


def validate(scene_path: str) -> None:
    config = load_scene(scene_path)
    validate_paths(config)
    w, h = config["output"]["resolution"]
    print(f"Scene valid: {len(config['layers'])} layer(s) at {w}x{h}")
    for name, layer in config["layers"].items():
        key = " [chroma key]" if layer["chroma_key"] else ""
        print(f"  {name}: {layer['path']}{key}")
    print("All paths verified.")


# ── CLI entry point ───────────────────────────────────────────────


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="keycompose",
        description="Three-layer chroma-key compositor. Export or snapshot a YAML scene.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command")

    p_export = subparsers.add_parser("export", help="Record the composited scene to mp4/webm")
    p_export.add_argument("--scene", required=True, help="Path to YAML scene manifest")
    p_export.add_argument(
        "--output-dir", default=None,
        help="Directory for the exported file (default: output.directory from the scene)",
    )
    p_export.add_argument(
        "--duration", type=float, default=None,
        help="Export length in seconds (default: background video duration, else 5)",
    )

    p_snapshot = subparsers.add_parser("snapshot", help="Save one composited frame as an image")
    p_snapshot.add_argument("--scene", required=True, help="Path to YAML scene manifest")
    p_snapshot.add_argument("--output", required=True, help="Output image path (png)")
    p_snapshot.add_argument(
        "--at", type=float, default=0.0,
        help="Video position in seconds (default: 0)",
    )

    p_validate = subparsers.add_parser("validate", help="Validate scene manifest and media paths")
    p_validate.add_argument("--scene", required=True, help="Path to YAML scene manifest")

    args = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "export":
        if args.duration is not None and args.duration <= 0:
            parser.error("--duration must be > 0")
        export(args.scene, output_dir=args.output_dir, duration=args.duration)
    elif args.command == "snapshot":
        snapshot(args.scene, args.output, at=args.at)
    elif args.command == "validate":
        validate(args.scene)
    else:
        parser.print_help()
        parser.exit(1)


if __name__ == "__main__":
    main()
