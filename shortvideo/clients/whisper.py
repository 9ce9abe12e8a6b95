from __future__ import annotations

import logging
import tempfile
import threading
from typing import Any, Optional

import whisper

from shortvideo.errors import CaptionError
from shortvideo.models.domain import Caption


class LocalWhisperClient:
    def __init__(
        self,
        model_name: str = "base.en",
        language: str | None = "en",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.model_name = model_name
        self.language = language
        self.log = logger or logging.getLogger(__name__)
        self._model = None
        self._lock = threading.Lock()

    def _load_model(self):
        with self._lock:
            if self._model is None:
                self._model = whisper.load_model(self.model_name)
                self.log.info("local whisper model loaded", extra={"model": self.model_name})
        return self._model

    def align(self, audio: bytes) -> list[Caption]:
        if not audio:
            raise CaptionError("no audio to caption")
        try:
            model = self._load_model()
            with tempfile.NamedTemporaryFile(suffix=".wav") as tmp:
                tmp.write(audio)
                tmp.flush()
                result = model.transcribe(
                    tmp.name,
                    task="transcribe",
                    language=self.language,
                    word_timestamps=True,
                    verbose=False,
                )
        except Exception as exc:
            raise CaptionError(f"whisper transcription failed: {exc}") from exc
        captions = captions_from_segments(result.get("segments", []))
        self.log.info(
            "whisper transcription completed (local)",
            extra={"model": self.model_name, "captions": len(captions)},
        )
        return captions


def captions_from_segments(segments: list[dict[str, Any]]) -> list[Caption]:
    """Flatten whisper segments into word captions with increasing, non-overlapping times."""
    captions: list[Caption] = []
    cursor = 0
    for segment in segments:
        words = segment.get("words") or [
            {"word": segment.get("text", ""), "start": segment.get("start", 0.0), "end": segment.get("end", 0.0)}
        ]
        for word in words:
            text = (word.get("word") or "").strip()
            if not text:
                continue
            start_ms = max(cursor, int(round(float(word.get("start") or 0.0) * 1000)))
            end_ms = max(start_ms, int(round(float(word.get("end") or 0.0) * 1000)))
            captions.append(Caption(text=text, start_ms=start_ms, end_ms=end_ms))
            cursor = end_ms
    return captions
