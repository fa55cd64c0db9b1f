#!/usr/bin/env python3
"""Generate synthetic media for the keycompose demo scene.

Creates in examples/demo-media/:
  - background.mp4: a slow color sweep with a sine tone (6s).
  - presenter.mp4: a white card sliding across a pure green screen (6s),
    for testing the chroma key.
  - logo.png: a translucent badge for the overlay layer.

Usage:
    python examples/generate_demo_media.py
    # Then export:
    keycompose export --scene examples/demo-scene.yaml
"""

import numpy as np
from moviepy import AudioClip, ColorClip, CompositeVideoClip, VideoClip
from pathlib import Path
from PIL import Image, ImageDraw, ImageFont

OUTPUT_DIR = Path(__file__).resolve().parent / "demo-media"
SIZE = (640, 360)
FPS = 30
DURATION = 6.0

GREEN = (0, 255, 0)
CARD = (240, 240, 240)
CARD_SIZE = (160, 220)


def _sweep_frame(t: float) -> np.ndarray:
    """Horizontal gradient whose hue drifts over time."""
    x = np.linspace(0, 1, SIZE[0], dtype=np.float32)
    phase = t / DURATION
    r = 80 + 60 * np.sin(2 * np.pi * (x + phase))
    g = 60 + 40 * np.sin(2 * np.pi * (x + phase + 1 / 3))
    b = 140 + 80 * np.sin(2 * np.pi * (x + phase + 2 / 3))
    row = np.stack([r, g, b], axis=-1).clip(0, 255).astype(np.uint8)
    return np.repeat(row[np.newaxis, :, :], SIZE[1], axis=0)


def _tone(t):
    wave = 0.2 * np.sin(2 * np.pi * 330 * np.asarray(t))
    return np.array([wave, wave]).T


def _make_background(out: Path) -> None:
    clip = VideoClip(_sweep_frame, duration=DURATION)
    clip = clip.with_audio(AudioClip(_tone, duration=DURATION, fps=44100))
    clip.write_videofile(str(out), fps=FPS, audio_codec="aac", logger=None)


def _make_presenter(out: Path) -> None:
    screen = ColorClip(size=SIZE, color=GREEN, duration=DURATION)
    card = ColorClip(size=CARD_SIZE, color=CARD, duration=DURATION)
    travel = SIZE[0] - CARD_SIZE[0]
    y = (SIZE[1] - CARD_SIZE[1]) // 2
    card = card.with_position(lambda t: (int(travel * t / DURATION), y))
    final = CompositeVideoClip([screen, card], size=SIZE)
    final.write_videofile(str(out), fps=FPS, logger=None)


def _make_logo(out: Path) -> None:
    img = Image.new("RGBA", (200, 80), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    draw.rounded_rectangle([0, 0, 199, 79], radius=16, fill=(20, 20, 20, 180))
    try:
        font = ImageFont.truetype(
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", 32
        )
    except OSError:
        font = ImageFont.load_default()
    bbox = draw.textbbox((0, 0), "LIVE", font=font)
    tw, th = bbox[2] - bbox[0], bbox[3] - bbox[1]
    draw.text(((200 - tw) / 2, (80 - th) / 2 - bbox[1]), "LIVE", fill=(255, 80, 80, 255), font=font)
    img.save(out)


def main():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    jobs = [
        ("background.mp4", _make_background),
        ("presenter.mp4", _make_presenter),
        ("logo.png", _make_logo),
    ]
    for name, make in jobs:
        out = OUTPUT_DIR / name
        if out.exists():
            print(f"  skip {name} (exists)")
            continue
        make(out)
        print(f"  wrote {name}")

    print(f"\nDone. {len(jobs)} files in {OUTPUT_DIR}")


if __name__ == "__main__":
    main()
