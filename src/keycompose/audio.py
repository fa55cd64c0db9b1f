"""Audio mixing for export.

Each video layer's audio track is looped to the export duration and the
tracks are summed (moviepy's CompositeAudioClip) into one stream, which
the recorder muxes with the captured video.
"""

from moviepy import CompositeAudioClip, afx


DEFAULT_AUDIO_FPS = 44100


class AudioMix:
    """The shared mix destination for one export.

    route() adds a source's audio; write_wav() renders the sum; close()
    drops every routed track. The underlying clips belong to their video
    sources and are not closed here.
    """

    def __init__(self, duration: float, fps: int = DEFAULT_AUDIO_FPS):
        if duration <= 0:
            raise ValueError(f"Mix duration must be > 0, got {duration}")
        self.duration = duration
        self.fps = fps
        self.tracks = []

    @property
    def has_audio(self) -> bool:
        return bool(self.tracks)

    def route(self, source) -> bool:
        """Route *source*'s audio into the mix.

        Returns False when the source has no audio track. Errors from the
        audio clip (e.g. unreadable stream) propagate to the caller.
        """
        audio = source.audio
        if audio is None:
            return False
        if not audio.duration:
            raise ValueError(f"Audio track of '{source.name}' has no duration")
        track = audio.with_effects([afx.AudioLoop(duration=self.duration)])
        self.tracks.append((source.name, track))
        return True

    def write_wav(self, path: str) -> None:
        if not self.tracks:
            raise ValueError("No audio routed into the mix")
        mix = CompositeAudioClip([track for _, track in self.tracks])
        mix = mix.with_duration(self.duration)
        mix.write_audiofile(
            path, fps=self.fps, codec="pcm_s16le", logger=None,
        )

    def close(self) -> None:
        self.tracks.clear()
