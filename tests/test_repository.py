from uuid import uuid4

import pytest

from shortvideo.errors import ConflictError
from shortvideo.models.domain import RenderConfig, SceneInput, VideoJob, VideoJobStage
from shortvideo.storage.repository import VideoJobRepository


def make_job(stage=VideoJobStage.QUEUED):
    return VideoJob(
        id=uuid4(),
        scenes=[SceneInput(index=0, text="Hello", search_terms=["nature"])],
        config=RenderConfig(),
        status=stage.value,
        stage=stage,
    )


def test_reads_are_copies():
    repo = VideoJobRepository()
    job = repo.add(make_job())
    copy = repo.get(job.id)
    copy.error = "mutated"
    assert repo.get(job.id).error is None


def test_list_preserves_creation_order():
    repo = VideoJobRepository()
    jobs = [repo.add(make_job()) for _ in range(5)]
    assert [job.id for job in repo.list()] == [job.id for job in jobs]


def test_terminal_jobs_cannot_be_overwritten():
    repo = VideoJobRepository()
    job = repo.add(make_job())
    job.stage = VideoJobStage.FAILED
    job.error = "boom"
    assert repo.save(job) is True

    job.stage = VideoJobStage.READY
    job.error = None
    assert repo.save(job) is False
    stored = repo.get(job.id)
    assert stored.stage == VideoJobStage.FAILED
    assert stored.error == "boom"


def test_save_after_delete_is_dropped():
    repo = VideoJobRepository()
    job = repo.add(make_job())
    assert repo.delete(job.id) is not None
    assert repo.save(job) is False
    assert repo.get(job.id) is None
    assert repo.delete(job.id) is None


def test_delete_guard_can_veto():
    repo = VideoJobRepository()
    job = repo.add(make_job(VideoJobStage.PROCESSING))

    def guard(current):
        raise ConflictError("busy")

    with pytest.raises(ConflictError):
        repo.delete(job.id, guard=guard)
    assert repo.get(job.id) is not None


def test_duplicate_add_is_rejected():
    repo = VideoJobRepository()
    job = repo.add(make_job())
    with pytest.raises(KeyError):
        repo.add(job)


def test_start_moves_queued_job_to_processing_once():
    repo = VideoJobRepository()
    job = repo.add(make_job())

    started = repo.start(job.id, "Processing scenes")
    assert started.stage == VideoJobStage.PROCESSING
    assert started.status_history[-1].message == "Processing scenes"
    assert repo.get(job.id).stage == VideoJobStage.PROCESSING
    assert repo.start(job.id, "Processing scenes") is None


def test_start_returns_none_for_deleted_job():
    repo = VideoJobRepository()
    job = repo.add(make_job())
    repo.delete(job.id)
    assert repo.start(job.id, "Processing scenes") is None
    assert repo.get(job.id) is None
