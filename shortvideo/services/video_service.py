from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Any, Iterable, Mapping
from uuid import UUID, uuid4

import pydantic

from shortvideo.clients.base import AudioTranscoder, Captioner, FootageSource, SpeechSynthesizer, VideoRenderer
from shortvideo.clients.ffmpeg import FfmpegTranscoder
from shortvideo.clients.moviepy_renderer import MoviePyRenderer
from shortvideo.clients.pexels import PexelsClient
from shortvideo.clients.s3_storage import S3StorageClient
from shortvideo.clients.tts import ElevenLabsClient
from shortvideo.clients.whisper import LocalWhisperClient
from shortvideo.config import Settings
from shortvideo.errors import (
    ConflictError,
    NotFoundError,
    NotReadyError,
    StageError,
    ValidationError,
    describe_error,
)
from shortvideo.events.publisher import JobEventPublisher
from shortvideo.models.domain import (
    JobProgress,
    RenderConfig,
    RenderResult,
    ResolvedScene,
    SceneInput,
    VideoJob,
    VideoJobStage,
    VideoJobStatusHistory,
)
from shortvideo.queue.queue import BaseQueue
from shortvideo.services.composer import Composer
from shortvideo.services.music import MusicLibrary
from shortvideo.services.scene_pipeline import FootageReservations, ScenePipeline
from shortvideo.storage.repository import VideoJobRepository

SCENE_STAGE = "scene-processing"
RENDER_STAGE = "rendering"


class VideoService:
    def __init__(
        self,
        repo: VideoJobRepository,
        settings: Settings,
        synthesizer: SpeechSynthesizer | None = None,
        transcoder: AudioTranscoder | None = None,
        captioner: Captioner | None = None,
        footage: FootageSource | None = None,
        renderer: VideoRenderer | None = None,
        storage: S3StorageClient | None = None,
        music: MusicLibrary | None = None,
    ) -> None:
        self.repo = repo
        self.queue: BaseQueue | None = None
        self.settings = settings
        self.log = logging.getLogger(__name__)
        self.voice_catalog: list[dict[str, str]] = settings.voice_catalog or []
        self.synthesizer = synthesizer or ElevenLabsClient(
            api_key=settings.elevenlabs_api_key,
            voice_catalog=self.voice_catalog,
            model_id=settings.elevenlabs_model_id,
            base_url=settings.elevenlabs_base_url,
            timeout=settings.elevenlabs_timeout,
            logger=self.log,
        )
        self.transcoder = transcoder or FfmpegTranscoder(binary=settings.ffmpeg_binary, logger=self.log)
        self.captioner = captioner or LocalWhisperClient(
            model_name=settings.whisper_local_model,
            language=settings.whisper_language,
            logger=self.log,
        )
        self.footage = footage or PexelsClient(
            api_key=settings.pexels_api_key,
            base_url=settings.pexels_base_url,
            max_attempts=settings.footage_max_attempts,
            backoff_seconds=settings.footage_backoff_seconds,
            timeout=settings.footage_timeout_seconds,
            min_width=settings.footage_min_width,
            min_height=settings.footage_min_height,
            logger=self.log,
        )
        self.storage = storage or S3StorageClient(
            bucket=settings.s3_bucket,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            endpoint_url=settings.s3_endpoint_url,
            region_name=settings.s3_region,
            public_url=settings.s3_public_url,
            addressing_style=settings.s3_addressing_style,
            local_root=settings.local_artifact_dir,
        )
        self.music = music or MusicLibrary(settings.music_catalog, logger=self.log)
        self.scene_pipeline = ScenePipeline(
            synthesizer=self.synthesizer,
            transcoder=self.transcoder,
            captioner=self.captioner,
            footage=self.footage,
            default_voice=settings.default_voice,
            fallback_terms=settings.footage_fallback_terms,
            duration_buffer_ms=settings.footage_duration_buffer_ms,
            logger=self.log,
        )
        self.composer = Composer(
            renderer
            or MoviePyRenderer(
                fps=settings.render_fps,
                ffmpeg_binary=settings.ffmpeg_binary,
                caption_max_chars=settings.caption_max_chars,
                download_timeout=settings.asset_download_timeout,
                logger=self.log,
            ),
            logger=self.log,
        )
        self.events: JobEventPublisher | None = None
        if settings.kafka_enabled and settings.kafka_updates_topic:
            try:
                self.events = JobEventPublisher(
                    bootstrap_servers=settings.kafka_bootstrap_servers,
                    topic=settings.kafka_updates_topic,
                    logger=self.log,
                )
            except Exception:  # pragma: no cover - best effort logging
                self.log.warning(
                    "job event publisher unavailable",
                    extra={"topic": settings.kafka_updates_topic},
                    exc_info=True,
                )

    def bind_queue(self, queue: BaseQueue) -> None:
        self.queue = queue

    def create_job(
        self,
        scenes: Iterable[Any],
        config: RenderConfig | Mapping[str, Any] | None = None,
    ) -> VideoJob:
        scene_inputs = self._validate_scenes(scenes)
        render_config = self._validate_config(config)
        job = VideoJob(
            id=uuid4(),
            scenes=scene_inputs,
            config=render_config,
            status=VideoJobStage.QUEUED.value,
            stage=VideoJobStage.QUEUED,
            status_history=[
                VideoJobStatusHistory(
                    status=VideoJobStage.QUEUED.value,
                    stage=VideoJobStage.QUEUED,
                    message="Job enqueued",
                )
            ],
        )
        self.repo.add(job)
        self.log.info("video job queued", extra={"job_id": str(job.id), "scenes": len(scene_inputs)})
        if self.queue is not None:
            self.queue.enqueue(job.id)
        self._emit_job_update(job)
        return job

    def get_job(self, job_id: UUID) -> VideoJob:
        job = self.repo.get(job_id)
        if not job:
            raise NotFoundError(f"video job {job_id} not found")
        return job

    def get_status(self, job_id: UUID) -> dict[str, Any]:
        job = self.get_job(job_id)
        return {
            "state": job.stage,
            "progress": job.progress,
            "error": job.error,
            "result": job.result,
        }

    def get_result(self, job_id: UUID) -> RenderResult:
        job = self.get_job(job_id)
        if job.stage != VideoJobStage.READY or job.result is None:
            raise NotReadyError(f"video job {job_id} is {job.stage.value}")
        return job.result

    def read_result_bytes(self, job_id: UUID) -> bytes:
        result = self.get_result(job_id)
        try:
            return self.storage.download_bytes(result.key)
        except ValueError as exc:
            raise NotFoundError(f"artifact for video job {job_id} is missing") from exc

    def list_jobs(self) -> list[VideoJob]:
        return self.repo.list()

    def delete_job(self, job_id: UUID) -> None:
        def reject_processing(job: VideoJob) -> None:
            if job.stage == VideoJobStage.PROCESSING:
                raise ConflictError(f"video job {job_id} is processing and cannot be deleted")

        removed = self.repo.delete(job_id, guard=reject_processing)
        if removed is None:
            raise NotFoundError(f"video job {job_id} not found")
        if removed.result:
            try:
                self.storage.delete(removed.result.key)
            except ValueError:
                self.log.warning(
                    "artifact delete failed",
                    extra={"job_id": str(job_id), "key": removed.result.key},
                    exc_info=True,
                )
        self.log.info("video job deleted", extra={"job_id": str(job_id), "stage": removed.stage.value})

    def list_voices(self) -> list[dict[str, str]]:
        normalized: list[dict[str, str]] = []
        for entry in self.voice_catalog:
            voice_id = entry.get("voice_id") or entry.get("id")
            name = entry.get("name") or voice_id
            if not voice_id:
                continue
            normalized.append(
                {
                    "name": name,
                    "voice_id": voice_id,
                    "description": entry.get("description"),
                }
            )
        return normalized

    def list_music_moods(self) -> list[str]:
        return self.music.moods()

    def process_job(self, job_id: UUID) -> None:
        job = self.repo.start(job_id, "Processing scenes")
        if job is None:
            self.log.debug("skipping video job that is gone or not queued", extra={"job_id": str(job_id)})
            return
        self._emit_job_update(job)
        try:
            self._pipeline(job)
        except StageError as exc:
            self.log.warning(
                "video job failed",
                extra={"job_id": str(job_id), "error": describe_error(exc)},
                exc_info=True,
            )
            self._update_status(job, VideoJobStage.FAILED, "Video generation failed", error=describe_error(exc))
        except Exception as exc:
            self.log.exception("video job crashed", extra={"job_id": str(job_id)})
            self._update_status(job, VideoJobStage.FAILED, "Video generation failed", error=describe_error(exc))

    def _pipeline(self, job: VideoJob) -> None:
        self._set_progress(job, JobProgress(stage=SCENE_STAGE, scene=0, total=len(job.scenes)))
        resolved = self._resolve_scenes(job)

        required_ms = sum(scene.duration_ms for scene in resolved) + job.config.padding_back_ms
        music = self.music.select(job.config.music, required_ms)
        self.log.info(
            "rendering video job",
            extra={
                "job_id": str(job.id),
                "duration_ms": required_ms,
                "music": music.name if music else None,
            },
        )
        self._set_progress(job, JobProgress(stage=RENDER_STAGE, fraction=0.0))
        rendered = self.composer.render(
            resolved,
            music,
            job.config,
            on_progress=lambda fraction: self._set_progress(
                job, JobProgress(stage=RENDER_STAGE, fraction=fraction)
            ),
        )
        try:
            key = self._artifact_key(job.id)
            url = self.storage.upload_file(key, rendered.path, content_type="video/mp4")
        finally:
            rendered.cleanup()
        result = RenderResult(
            key=key,
            url=url,
            duration_ms=rendered.duration_ms,
            size_bytes=rendered.size_bytes,
        )
        self._update_status(
            job,
            VideoJobStage.READY,
            "Video is ready for download",
            progress=JobProgress(stage=RENDER_STAGE, fraction=1.0),
            result=result,
        )

    def _resolve_scenes(self, job: VideoJob) -> list[ResolvedScene]:
        total = len(job.scenes)
        reservations = FootageReservations()
        job_ref = str(job.id)
        resolved: list[ResolvedScene] = []
        workers = min(max(1, self.settings.scene_concurrency), total)
        if workers == 1:
            for scene in job.scenes:
                resolved.append(self.scene_pipeline.resolve(scene, job.config, reservations, job_id=job_ref))
                self._set_progress(job, JobProgress(stage=SCENE_STAGE, scene=len(resolved), total=total))
        else:
            pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"scenes-{job_ref[:8]}")
            try:
                pending = {
                    pool.submit(self.scene_pipeline.resolve, scene, job.config, reservations, job_ref)
                    for scene in job.scenes
                }
                while pending:
                    done, pending = wait(pending, return_when=FIRST_EXCEPTION)
                    for future in done:
                        resolved.append(future.result())
                    self._set_progress(job, JobProgress(stage=SCENE_STAGE, scene=len(resolved), total=total))
            finally:
                pool.shutdown(wait=True, cancel_futures=True)
        resolved.sort(key=lambda item: item.index)
        if len(resolved) != total:
            raise RuntimeError(f"resolved {len(resolved)} of {total} scenes")
        return resolved

    def _validate_scenes(self, scenes: Iterable[Any]) -> list[SceneInput]:
        items = list(scenes or [])
        if not items:
            raise ValidationError("at least one scene is required")
        result: list[SceneInput] = []
        for idx, raw in enumerate(items):
            if hasattr(raw, "model_dump"):
                data = raw.model_dump()
            elif isinstance(raw, Mapping):
                data = dict(raw)
            else:
                raise ValidationError(f"scene {idx + 1} has an unsupported type")
            text = (data.get("text") or "").strip()
            if not text:
                raise ValidationError(f"scene {idx + 1} has no narration text")
            raw_terms = data.get("search_terms") or []
            if not isinstance(raw_terms, (list, tuple)) or not all(isinstance(term, str) for term in raw_terms):
                raise ValidationError(f"scene {idx + 1} search_terms must be a list of strings")
            terms = [term.strip() for term in raw_terms if term.strip()]
            result.append(SceneInput(index=idx, text=text, search_terms=terms))
        return result

    def _validate_config(self, config: RenderConfig | Mapping[str, Any] | None) -> RenderConfig:
        if config is None:
            render_config = RenderConfig()
        elif isinstance(config, RenderConfig):
            render_config = config
        else:
            try:
                render_config = RenderConfig.model_validate(dict(config))
            except pydantic.ValidationError as exc:
                raise ValidationError(f"invalid render config: {exc}") from exc
        if render_config.voice is None:
            return render_config.model_copy(update={"voice": self.settings.default_voice})
        known = {
            key.lower()
            for voice in self.list_voices()
            for key in (voice["name"], voice["voice_id"])
        }
        if known and render_config.voice.lower() not in known:
            raise ValidationError(f"unknown voice '{render_config.voice}'")
        return render_config

    def _artifact_key(self, job_id: UUID) -> str:
        prefix = self.settings.storage_folder_prefix.strip("/")
        return "/".join(part for part in (prefix, str(job_id), "final.mp4") if part)

    def _set_progress(self, job: VideoJob, progress: JobProgress) -> None:
        if job.is_terminal:
            return
        job.progress = progress
        job.updated_at = datetime.utcnow()
        if self.repo.save(job):
            self._emit_job_update(job)

    def _update_status(
        self,
        job: VideoJob,
        stage: VideoJobStage,
        message: str,
        progress: JobProgress | None = None,
        result: RenderResult | None = None,
        error: str | None = None,
    ) -> bool:
        if job.is_terminal:
            return False
        job.status = stage.value
        job.stage = stage
        job.status_history.append(
            VideoJobStatusHistory(
                status=stage.value,
                stage=stage,
                message=message,
            )
        )
        job.updated_at = datetime.utcnow()
        if progress is not None:
            job.progress = progress
        if result is not None:
            job.result = result
        if error:
            job.error = error
        saved = self.repo.save(job)
        if saved:
            self._emit_job_update(job)
        else:
            self.log.debug("status update dropped", extra={"job_id": str(job.id), "stage": stage.value})
        return saved

    def _emit_job_update(self, job: VideoJob) -> None:
        if not self.events:
            return
        try:
            self.events.publish_job(job)
        except Exception:  # pragma: no cover
            self.log.warning("job event emission failed", extra={"job_id": str(job.id)}, exc_info=True)
