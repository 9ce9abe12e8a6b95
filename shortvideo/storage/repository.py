from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Callable, Dict, List
from uuid import UUID

from shortvideo.models.domain import VideoJob, VideoJobStage, VideoJobStatusHistory


class VideoJobRepository:
    """In-memory job index. Callers always get deep copies."""

    def __init__(self) -> None:
        self._jobs: Dict[UUID, VideoJob] = {}
        self._lock = Lock()

    def add(self, job: VideoJob) -> VideoJob:
        with self._lock:
            if job.id in self._jobs:
                raise KeyError(f"job {job.id} already exists")
            self._jobs[job.id] = job.model_copy(deep=True)
        return job

    def save(self, job: VideoJob) -> bool:
        """Store ``job`` unless its record was deleted or already terminal."""
        with self._lock:
            current = self._jobs.get(job.id)
            if current is None or current.is_terminal:
                return False
            self._jobs[job.id] = job.model_copy(deep=True)
            return True

    def start(self, job_id: UUID, message: str) -> VideoJob | None:
        """Move a queued job to processing; ``None`` if it is gone or not queued."""
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None or current.stage != VideoJobStage.QUEUED:
                return None
            current.status = VideoJobStage.PROCESSING.value
            current.stage = VideoJobStage.PROCESSING
            current.status_history.append(
                VideoJobStatusHistory(
                    status=VideoJobStage.PROCESSING.value,
                    stage=VideoJobStage.PROCESSING,
                    message=message,
                )
            )
            current.updated_at = datetime.utcnow()
            return current.model_copy(deep=True)

    def get(self, job_id: UUID) -> VideoJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def list(self) -> List[VideoJob]:
        with self._lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]

    def delete(self, job_id: UUID, guard: Callable[[VideoJob], None] | None = None) -> VideoJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            if guard is not None:
                guard(job)
            del self._jobs[job_id]
            return job

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
