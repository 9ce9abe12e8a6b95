"""Capability interfaces consumed by the job pipeline.

Every stage is reached through one of these protocols so that the concrete
engines (ElevenLabs, whisper, Pexels, ffmpeg, moviepy) can be swapped for
other implementations or in-process fakes.
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional, Protocol, Sequence

from shortvideo.models.domain import (
    Caption,
    FootageClip,
    MusicTrack,
    Orientation,
    RenderConfig,
    ResolvedScene,
)

ProgressCallback = Callable[[float], None]


class SpeechSynthesizer(Protocol):
    def synthesize(self, text: str, voice: str) -> tuple[bytes, int]: ...  # pragma: no cover


class Captioner(Protocol):
    def align(self, audio: bytes) -> list[Caption]: ...  # pragma: no cover


class FootageSource(Protocol):
    def search(
        self,
        terms: Sequence[str],
        min_duration_ms: int,
        orientation: Orientation,
        exclude_ids: Iterable[str],
    ) -> Optional[FootageClip]: ...  # pragma: no cover


class AudioTranscoder(Protocol):
    def normalize(self, audio: bytes) -> bytes: ...  # pragma: no cover

    def to_delivery_format(self, audio: bytes) -> bytes: ...  # pragma: no cover


class VideoRenderer(Protocol):
    def render(
        self,
        scenes: Sequence[ResolvedScene],
        music: Optional[MusicTrack],
        config: RenderConfig,
        on_progress: ProgressCallback,
    ) -> str: ...  # pragma: no cover
