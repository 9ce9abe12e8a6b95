from __future__ import annotations

import logging
import threading
from typing import Iterable, Optional, Sequence

from shortvideo.clients.base import AudioTranscoder, Captioner, FootageSource, SpeechSynthesizer
from shortvideo.errors import FootageNotFoundError, SynthesisError
from shortvideo.models.domain import FootageClip, Orientation, RenderConfig, ResolvedScene, SceneInput

DEFAULT_FALLBACK_TERMS = ("nature", "globe", "space", "ocean")
MAX_CLAIM_ATTEMPTS = 5


class FootageReservations:
    """Footage ids already taken by scenes of one job."""

    def __init__(self, initial: Iterable[str] = ()) -> None:
        self._ids: set[str] = set(initial)
        self._lock = threading.Lock()

    def snapshot(self) -> set[str]:
        with self._lock:
            return set(self._ids)

    def claim(self, footage_id: str) -> bool:
        with self._lock:
            if footage_id in self._ids:
                return False
            self._ids.add(footage_id)
            return True

    def __contains__(self, footage_id: object) -> bool:
        with self._lock:
            return footage_id in self._ids


class ScenePipeline:
    """Resolves a single scene: speech, audio normalization, captions, footage."""

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        transcoder: AudioTranscoder,
        captioner: Captioner,
        footage: FootageSource,
        default_voice: str,
        fallback_terms: Sequence[str] = DEFAULT_FALLBACK_TERMS,
        duration_buffer_ms: int = 3000,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.synthesizer = synthesizer
        self.transcoder = transcoder
        self.captioner = captioner
        self.footage = footage
        self.default_voice = default_voice
        self.fallback_terms = [term for term in fallback_terms if term.strip()]
        self.duration_buffer_ms = max(0, duration_buffer_ms)
        self.log = logger or logging.getLogger(__name__)

    def resolve(
        self,
        scene: SceneInput,
        config: RenderConfig,
        reservations: FootageReservations,
        job_id: str | None = None,
    ) -> ResolvedScene:
        context = {"job_id": job_id, "scene": scene.index}
        voice = config.voice or self.default_voice

        raw_audio, duration_ms = self.synthesizer.synthesize(scene.text, voice)
        if not raw_audio or duration_ms <= 0:
            raise SynthesisError(f"scene {scene.index + 1}: synthesizer returned no audio")
        self.log.debug("scene speech synthesized", extra={**context, "duration_ms": duration_ms})

        normalized = self.transcoder.normalize(raw_audio)
        captions = self.captioner.align(normalized)
        self.log.debug("scene captions aligned", extra={**context, "captions": len(captions)})

        footage = self._find_footage(scene, duration_ms, config.orientation, reservations)
        delivery_audio = self.transcoder.to_delivery_format(normalized)

        self.log.info(
            "scene resolved",
            extra={**context, "footage_id": footage.id, "duration_ms": duration_ms},
        )
        return ResolvedScene(
            index=scene.index,
            text=scene.text,
            audio=delivery_audio,
            duration_ms=duration_ms,
            captions=captions,
            footage=footage,
            normalized_audio=normalized,
        )

    def _find_footage(
        self,
        scene: SceneInput,
        duration_ms: int,
        orientation: Orientation,
        reservations: FootageReservations,
    ) -> FootageClip:
        target_ms = duration_ms + self.duration_buffer_ms
        term_sets = [list(scene.search_terms), self.fallback_terms]
        # second pass drops the exclusion set: reuse is allowed only once the pool is exhausted
        for exclude_used in (True, False):
            for terms in term_sets:
                if not terms:
                    continue
                clip = self._search_and_claim(terms, target_ms, orientation, reservations, exclude_used)
                if clip:
                    return clip
            if exclude_used:
                self.log.warning(
                    "footage pool exhausted, allowing reuse",
                    extra={"scene": scene.index, "terms": scene.search_terms},
                )
        raise FootageNotFoundError(
            f"scene {scene.index + 1}: no footage found for {scene.search_terms or []} or fallback terms"
        )

    def _search_and_claim(
        self,
        terms: Sequence[str],
        target_ms: int,
        orientation: Orientation,
        reservations: FootageReservations,
        exclude_used: bool,
    ) -> Optional[FootageClip]:
        for _ in range(MAX_CLAIM_ATTEMPTS):
            excluded = reservations.snapshot() if exclude_used else set()
            clip = self.footage.search(terms, target_ms, orientation, excluded)
            if clip is None:
                return None
            if reservations.claim(clip.id) or not exclude_used:
                return clip
            # another scene of this job claimed the same clip in the meantime
        return None
