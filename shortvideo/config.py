from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SHORT_VIDEO_", env_file=".env", env_file_encoding="utf-8")

    app_name: str = "short-video-service"
    host: str = "0.0.0.0"
    port: int = 8100

    # Job scheduling
    worker_concurrency: int = Field(default=1, ge=1)
    scene_concurrency: int = Field(default=1, ge=1)

    # Speech synthesis
    elevenlabs_api_key: str = ""
    elevenlabs_model_id: str = "eleven_multilingual_v2"
    elevenlabs_base_url: str = "https://api.elevenlabs.io"
    elevenlabs_timeout: float = 60.0
    default_voice: str = "rachel"
    voice_catalog: list[dict[str, str]] = Field(
        default_factory=lambda: [
            {"name": "rachel", "voice_id": "21m00Tcm4TlvDq8ikWAM", "description": "Calm female narrator"},
            {"name": "adam", "voice_id": "pNInz6obpgDQGcFmaJgB", "description": "Deep male narrator"},
            {"name": "bella", "voice_id": "EXAVITQu4vr4xnSDxMaL", "description": "Soft female voice"},
            {"name": "antoni", "voice_id": "ErXwobaYiN019PkySvjV", "description": "Well-rounded male voice"},
        ]
    )

    # Captioning
    whisper_local_model: str = "base.en"
    whisper_language: str | None = "en"
    caption_max_chars: int = Field(default=24, ge=4)

    # Stock footage
    pexels_api_key: str = ""
    pexels_base_url: str = "https://api.pexels.com"
    footage_max_attempts: int = Field(default=3, ge=1)
    footage_backoff_seconds: float = 1.0
    footage_timeout_seconds: float = 5.0
    footage_duration_buffer_ms: int = 3000
    footage_min_width: int = 1080
    footage_min_height: int = 1080
    footage_fallback_terms: list[str] = Field(default_factory=lambda: ["nature", "globe", "space", "ocean"])
    asset_download_timeout: float = 60.0

    # Audio / video toolchain
    ffmpeg_binary: str = "ffmpeg"
    render_fps: int = 25
    music_catalog: list[dict[str, str]] = Field(default_factory=list)

    # Object storage configuration
    s3_endpoint_url: str = ""
    s3_region: str | None = None
    s3_public_url: str = ""
    s3_bucket: str = "short-videos"
    s3_access_key: str = ""
    s3_secret_key: str = ""
    s3_addressing_style: str | None = None
    local_artifact_dir: str = "data/artifacts"
    storage_folder_prefix: str = "jobs"

    kafka_enabled: bool = False
    kafka_bootstrap_servers: str = "localhost:9092"
    kafka_updates_topic: str = "short_video_updates"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
