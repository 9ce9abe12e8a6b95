from __future__ import annotations

import logging
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, Response, status

from shortvideo.config import Settings, get_settings
from shortvideo.errors import ConflictError, NotFoundError, NotReadyError, ValidationError
from shortvideo.models.api import (
    MusicMoodListResponse,
    VideoGenerationRequest,
    VideoJobCreatedResponse,
    VideoJobListResponse,
    VideoJobStatusResponse,
    VideoJobSummary,
    VoiceListResponse,
)
from shortvideo.queue.queue import LocalQueue
from shortvideo.services.video_service import VideoService
from shortvideo.storage.repository import VideoJobRepository

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(title="short-video-service")

_repo = VideoJobRepository()
_service: VideoService | None = None


def get_video_service(settings: Settings = Depends(get_settings)) -> VideoService:
    global _service
    if _service is None:
        service = VideoService(repo=_repo, settings=settings)
        service.bind_queue(LocalQueue(processor=service.process_job, concurrency=settings.worker_concurrency))
        _service = service
    return _service


@app.post("/videos", response_model=VideoJobCreatedResponse, status_code=status.HTTP_202_ACCEPTED)
def create_video(
    payload: VideoGenerationRequest,
    service: VideoService = Depends(get_video_service),
) -> VideoJobCreatedResponse:
    try:
        job = service.create_job(payload.scenes, payload.config)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return VideoJobCreatedResponse(job_id=job.id)


@app.get("/videos", response_model=VideoJobListResponse)
def list_videos(service: VideoService = Depends(get_video_service)) -> VideoJobListResponse:
    items = [
        VideoJobSummary(
            id=job.id,
            state=job.stage,
            scenes=len(job.scenes),
            created_at=job.created_at,
            updated_at=job.updated_at,
            error=job.error,
        )
        for job in service.list_jobs()
    ]
    return VideoJobListResponse(items=items)


@app.get("/videos/{job_id}", response_model=VideoJobStatusResponse)
def get_video_status(job_id: UUID, service: VideoService = Depends(get_video_service)) -> VideoJobStatusResponse:
    try:
        job_status = service.get_status(job_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return VideoJobStatusResponse(job_id=job_id, **job_status)


@app.get("/videos/{job_id}/result")
def get_video_result(job_id: UUID, service: VideoService = Depends(get_video_service)) -> Response:
    try:
        content = service.read_result_bytes(job_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except NotReadyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return Response(
        content=content,
        media_type="video/mp4",
        headers={"Content-Disposition": f'attachment; filename="{job_id}.mp4"'},
    )


@app.delete("/videos/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_video(job_id: UUID, service: VideoService = Depends(get_video_service)) -> Response:
    try:
        service.delete_job(job_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/voices", response_model=VoiceListResponse)
def list_voices(service: VideoService = Depends(get_video_service)) -> VoiceListResponse:
    return VoiceListResponse(items=service.list_voices())


@app.get("/music/moods", response_model=MusicMoodListResponse)
def list_music_moods(service: VideoService = Depends(get_video_service)) -> MusicMoodListResponse:
    return MusicMoodListResponse(items=service.list_music_moods())


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
