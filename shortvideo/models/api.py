from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .domain import JobProgress, RenderConfig, RenderResult, VideoJobStage


class ScenePayload(BaseModel):
    text: str
    search_terms: List[str] = Field(default_factory=list, validation_alias="searchTerms")

    model_config = ConfigDict(populate_by_name=True)


class VideoGenerationRequest(BaseModel):
    scenes: List[ScenePayload]
    config: RenderConfig = Field(default_factory=RenderConfig)


class VideoJobCreatedResponse(BaseModel):
    job_id: UUID


class VideoJobStatusResponse(BaseModel):
    job_id: UUID
    state: VideoJobStage
    progress: Optional[JobProgress] = None
    error: Optional[str] = None
    result: Optional[RenderResult] = None


class VideoJobSummary(BaseModel):
    id: UUID
    state: VideoJobStage
    scenes: int
    created_at: datetime
    updated_at: datetime
    error: Optional[str] = None


class VideoJobListResponse(BaseModel):
    items: List[VideoJobSummary]


class VoiceInfo(BaseModel):
    name: str
    voice_id: str
    description: Optional[str] = None


class VoiceListResponse(BaseModel):
    items: List[VoiceInfo]


class MusicMoodListResponse(BaseModel):
    items: List[str]
