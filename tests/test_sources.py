"""Tests for sources and the source resolver."""

import asyncio

import numpy as np
import pytest

from keycompose.sources import (
    ImageSource,
    LayerKind,
    PlaceholderSource,
    VideoSource,
    capture_poster_frame,
    is_video_file,
    resolve_source,
    to_rgba,
)


class TestIsVideoFile:
    @pytest.mark.parametrize("name", ["clip.mp4", "clip.webm", "clip.MOV", "clip.mov"])
    def test_video(self, name):
        assert is_video_file(name)

    @pytest.mark.parametrize("name", ["logo.png", "photo.jpg", "notes.txt"])
    def test_not_video(self, name):
        assert not is_video_file(name)


class TestToRgba:
    def test_adds_opaque_alpha(self):
        rgb = np.zeros((2, 3, 3), dtype=np.uint8)
        out = to_rgba(rgb)
        assert out.shape == (2, 3, 4)
        assert (out[:, :, 3] == 255).all()

    def test_rgba_copied(self):
        rgba = np.zeros((1, 1, 4), dtype=np.uint8)
        out = to_rgba(rgba)
        out[0, 0, 0] = 9
        assert rgba[0, 0, 0] == 0


class TestVideoPlayback:
    def test_starts_paused_muted_at_zero(self, fake_clip, clock):
        video = VideoSource("v.mp4", fake_clip(), clock=clock)
        assert not video.playing
        assert video.muted
        assert video.loop
        assert video.current_time == 0.0

    def test_play_advances_with_clock(self, fake_clip, clock):
        video = VideoSource("v.mp4", fake_clip(duration=10.0), clock=clock)
        video.play()
        clock.now = 3.0
        assert video.current_time == pytest.approx(3.0)

    def test_pause_holds_position(self, fake_clip, clock):
        video = VideoSource("v.mp4", fake_clip(duration=10.0), clock=clock)
        video.play()
        clock.now = 2.0
        video.pause()
        clock.now = 9.0
        assert video.current_time == pytest.approx(2.0)
        video.play()
        clock.now = 10.0
        assert video.current_time == pytest.approx(3.0)

    def test_loops(self, fake_clip, clock):
        video = VideoSource("v.mp4", fake_clip(duration=10.0), clock=clock)
        video.play()
        clock.now = 12.5
        assert video.current_time == pytest.approx(2.5)

    def test_seek(self, fake_clip, clock):
        video = VideoSource("v.mp4", fake_clip(duration=10.0), clock=clock)
        video.seek(4.0)
        assert video.current_time == pytest.approx(4.0)
        video.play()
        clock.now = 1.0
        video.seek(0)
        assert video.current_time == pytest.approx(0.0)

    def test_frame_never_past_last_frame(self, fake_clip, clock):
        clip = fake_clip(duration=2.0, fps=10)
        video = VideoSource("v.mp4", clip, clock=clock)
        video.seek(1.99)
        frame = video.frame()
        assert frame.shape == (36, 64, 4)
        assert clip.requested[-1] == pytest.approx(1.9)

    def test_poster_frame_is_copy(self, fake_clip):
        video = VideoSource("v.mp4", fake_clip(size=(4, 2)))
        poster = capture_poster_frame(video)
        assert poster.shape == (2, 4, 4)


class TestResolveSource:
    def test_image(self, make_image):
        path = make_image("logo.png", size=(40, 20))
        source = asyncio.run(resolve_source(path))
        assert isinstance(source, ImageSource)
        assert source.kind is LayerKind.IMAGE
        assert source.size == (40, 20)
        assert source.name == "logo.png"

    def test_video(self, source_video):
        source = asyncio.run(resolve_source(source_video))
        try:
            assert isinstance(source, VideoSource)
            assert source.size == (320, 240)
            assert source.duration == pytest.approx(5.0, abs=0.3)
            assert source.muted and source.loop and not source.playing
            assert source.audio is not None
            assert source.frame().shape == (240, 320, 4)
        finally:
            source.close()

    def test_undecodable_video_becomes_placeholder(self, tmp_path):
        path = tmp_path / "prores.mov"
        path.write_bytes(b"definitely not a video stream")
        source = asyncio.run(resolve_source(path))
        assert isinstance(source, PlaceholderSource)
        assert source.name == "prores.mov"
        assert source.size == (1280, 720)

    def test_undecodable_image_becomes_placeholder(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"\x00\x01garbage")
        source = asyncio.run(resolve_source(path))
        assert source.kind is LayerKind.PLACEHOLDER
