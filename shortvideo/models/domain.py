from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

NAMED_COLORS = {
    "black": "#000000",
    "white": "#FFFFFF",
    "red": "#FF0000",
    "green": "#008000",
    "blue": "#0000FF",
    "yellow": "#FFFF00",
    "orange": "#FFA500",
    "purple": "#800080",
    "pink": "#FFC0CB",
    "gray": "#808080",
}

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


class VideoJobStage(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


TERMINAL_STAGES = frozenset({VideoJobStage.READY, VideoJobStage.FAILED})


class Orientation(str, Enum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


class CaptionPosition(str, Enum):
    TOP = "top"
    CENTER = "center"
    BOTTOM = "bottom"


class MusicVolume(str, Enum):
    MUTED = "muted"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


MUSIC_VOLUME_LEVELS = {
    MusicVolume.MUTED: 0.0,
    MusicVolume.LOW: 0.2,
    MusicVolume.MEDIUM: 0.45,
    MusicVolume.HIGH: 0.7,
}


class MusicMood(str, Enum):
    SAD = "sad"
    MELANCHOLIC = "melancholic"
    HAPPY = "happy"
    EUPHORIC = "euphoric"
    EXCITED = "excited"
    CHILL = "chill"
    UNEASY = "uneasy"
    ANGRY = "angry"
    DARK = "dark"
    HOPEFUL = "hopeful"
    CONTEMPLATIVE = "contemplative"
    FUNNY = "funny"


class SceneInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    text: str
    search_terms: List[str] = Field(default_factory=list)


class RenderConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    padding_back_ms: int = Field(default=0, ge=0, le=60_000)
    music: MusicMood = MusicMood.CHILL
    caption_position: CaptionPosition = CaptionPosition.BOTTOM
    caption_background_color: str = "blue"
    voice: Optional[str] = None
    orientation: Orientation = Orientation.PORTRAIT
    music_volume: MusicVolume = MusicVolume.HIGH

    @field_validator("caption_background_color")
    @classmethod
    def validate_color(cls, value: str) -> str:
        candidate = value.strip()
        if candidate.lower() in NAMED_COLORS:
            return candidate.lower()
        if _HEX_COLOR.match(candidate):
            return candidate.upper()
        raise ValueError("caption_background_color must be #RRGGBB or one of: " + ", ".join(sorted(NAMED_COLORS)))

    def background_hex(self) -> str:
        return NAMED_COLORS.get(self.caption_background_color, self.caption_background_color)


class Caption(BaseModel):
    text: str
    start_ms: int
    end_ms: int


class FootageClip(BaseModel):
    id: str
    url: str
    duration_ms: int
    width: int
    height: int


class MusicTrack(BaseModel):
    name: str
    mood: MusicMood
    source: str
    start_ms: int = 0
    end_ms: int

    @property
    def span_ms(self) -> int:
        return max(0, self.end_ms - self.start_ms)


@dataclass
class ResolvedScene:
    index: int
    text: str
    audio: bytes
    duration_ms: int
    captions: List[Caption]
    footage: FootageClip
    normalized_audio: bytes = field(repr=False, default=b"")


class RenderResult(BaseModel):
    key: str
    url: str
    duration_ms: int
    size_bytes: int


class JobProgress(BaseModel):
    stage: str
    scene: Optional[int] = None
    total: Optional[int] = None
    fraction: float = 0.0


class VideoJobStatusHistory(BaseModel):
    status: str
    stage: VideoJobStage
    message: str
    occurred_at: datetime = Field(default_factory=datetime.utcnow)


class VideoJob(BaseModel):
    id: UUID
    scenes: List[SceneInput]
    config: RenderConfig
    status: str
    stage: VideoJobStage
    progress: Optional[JobProgress] = None
    status_history: List[VideoJobStatusHistory] = Field(default_factory=list)
    result: Optional[RenderResult] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES
