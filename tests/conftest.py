import os
import tempfile
import threading
import time

import pytest

from shortvideo.clients.s3_storage import S3StorageClient
from shortvideo.config import Settings
from shortvideo.errors import SynthesisError
from shortvideo.models.domain import Caption, FootageClip
from shortvideo.services.music import MusicLibrary
from shortvideo.services.video_service import VideoService
from shortvideo.storage.repository import VideoJobRepository

WORD_MS = 400


class FakeSynthesizer:
    def __init__(self, fail_on=None):
        self.fail_on = fail_on or set()
        self.calls = []
        self._lock = threading.Lock()

    def synthesize(self, text, voice):
        with self._lock:
            self.calls.append((text, voice))
        if text in self.fail_on:
            raise SynthesisError(f"engine refused '{text}'")
        return f"RAW:{text}".encode("utf-8"), len(text.split()) * WORD_MS


class FakeTranscoder:
    def normalize(self, audio):
        return b"WAV:" + audio

    def to_delivery_format(self, audio):
        return b"MP3:" + audio


class FakeCaptioner:
    def align(self, audio):
        text = audio.decode("utf-8").split("RAW:", 1)[1]
        return [
            Caption(text=word, start_ms=idx * WORD_MS, end_ms=(idx + 1) * WORD_MS)
            for idx, word in enumerate(text.split())
        ]


class FakeFootage:
    """Returns the first clip for the first term that has one not in ``exclude_ids``."""

    def __init__(self, library=None):
        self.library = library if library is not None else {}
        self.calls = []
        self._lock = threading.Lock()

    def search(self, terms, min_duration_ms, orientation, exclude_ids):
        excluded = set(exclude_ids)
        with self._lock:
            self.calls.append((list(terms), min_duration_ms, orientation, excluded))
        for term in terms:
            for clip_id in self.library.get(term, []):
                if clip_id in excluded:
                    continue
                return FootageClip(
                    id=clip_id,
                    url=f"https://footage.test/{clip_id}.mp4",
                    duration_ms=min_duration_ms + 1000,
                    width=1080,
                    height=1920,
                )
        return None


class FakeRenderer:
    def __init__(self, gate=None, fail=False):
        self.gate = gate
        self.fail = fail
        self.calls = []
        self.started = threading.Event()

    def render(self, scenes, music, config, on_progress):
        self.calls.append({"scenes": list(scenes), "music": music, "config": config})
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail:
            raise RuntimeError("encoder exploded")
        on_progress(0.5)
        workdir = tempfile.mkdtemp(prefix="short-video-")
        path = os.path.join(workdir, "final.mp4")
        with open(path, "wb") as f:
            f.write(b"".join(scene.audio for scene in scenes))
        return path


def wait_for_terminal(service, job_id, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        job = service.get_job(job_id)
        if job.is_terminal:
            return job
        time.sleep(0.01)
    raise AssertionError(f"job {job_id} did not finish in time")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        local_artifact_dir=str(tmp_path / "artifacts"),
        footage_fallback_terms=["nature", "globe", "space", "ocean"],
        footage_duration_buffer_ms=3000,
    )


@pytest.fixture
def footage():
    return FakeFootage(
        {
            "nature": ["nature-1", "nature-2", "nature-3"],
            "city": ["city-1", "city-2"],
            "ocean": ["ocean-1"],
        }
    )


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def make_service(settings, footage, renderer, synthesizer):
    def factory(**overrides):
        active = settings.model_copy(update=overrides.pop("settings", {}))
        kwargs = {
            "synthesizer": synthesizer,
            "transcoder": FakeTranscoder(),
            "captioner": FakeCaptioner(),
            "footage": footage,
            "renderer": renderer,
            "storage": S3StorageClient(
                bucket="",
                access_key=None,
                secret_key=None,
                local_root=active.local_artifact_dir,
            ),
            "music": MusicLibrary(
                [
                    {"name": "lofi", "mood": "chill", "source": "lofi.mp3", "start_ms": "0", "end_ms": "60000"},
                    {"name": "tide", "mood": "chill", "source": "tide.mp3", "start_ms": "0", "end_ms": "5000"},
                ]
            ),
        }
        kwargs.update(overrides)
        return VideoService(repo=VideoJobRepository(), settings=active, **kwargs)

    return factory
