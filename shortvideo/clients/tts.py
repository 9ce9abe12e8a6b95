from __future__ import annotations

import logging
from typing import Optional

import httpx

from shortvideo.clients.ffmpeg import probe_duration_ms
from shortvideo.errors import SynthesisError


class ElevenLabsClient:
    def __init__(
        self,
        api_key: str | None,
        voice_catalog: list[dict[str, str]] | None = None,
        model_id: str = "eleven_multilingual_v2",
        base_url: str = "https://api.elevenlabs.io",
        timeout: float = 60.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.voice_catalog = voice_catalog or []
        self.model_id = model_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.log = logger or logging.getLogger(__name__)

    def enabled(self) -> bool:
        return bool(self.api_key)

    def resolve_voice_id(self, voice: str) -> str:
        target = (voice or "").strip().lower()
        for entry in self.voice_catalog:
            name = (entry.get("name") or "").strip().lower()
            voice_id = (entry.get("voice_id") or entry.get("id") or "").strip()
            if target in (name, voice_id.lower()) and voice_id:
                return voice_id
        return voice

    def synthesize(self, text: str, voice: str) -> tuple[bytes, int]:
        if not self.enabled():
            raise SynthesisError("ElevenLabs client is not configured")
        voice_id = self.resolve_voice_id(voice)
        url = f"{self.base_url}/v1/text-to-speech/{voice_id}"
        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.5},
        }
        headers = {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SynthesisError(f"speech synthesis request failed: {exc}") from exc
        audio = response.content
        if not audio:
            raise SynthesisError("speech synthesis returned an empty body")
        duration_ms = probe_duration_ms(audio, suffix=".mp3")
        if not duration_ms:
            raise SynthesisError("could not determine synthesized audio duration")
        self.log.info(
            "elevenlabs synthesis completed",
            extra={
                "voice_id": voice_id,
                "model_id": self.model_id,
                "content_length": len(audio),
                "duration_ms": duration_ms,
            },
        )
        return audio, duration_ms
