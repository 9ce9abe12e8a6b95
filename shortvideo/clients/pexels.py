from __future__ import annotations

import logging
import time
from typing import Any, Iterable, Optional, Sequence

import httpx

from shortvideo.errors import FootageNotFoundError
from shortvideo.models.domain import FootageClip, Orientation


class PexelsClient:
    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.pexels.com",
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        timeout: float = 5.0,
        min_width: int = 1080,
        min_height: int = 1080,
        per_page: int = 80,
        transport: httpx.BaseTransport | None = None,
        sleep=time.sleep,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.timeout = timeout
        self.min_width = min_width
        self.min_height = min_height
        self.per_page = per_page
        self._transport = transport
        self._sleep = sleep
        self.log = logger or logging.getLogger(__name__)

    def enabled(self) -> bool:
        return bool(self.api_key)

    def search(
        self,
        terms: Sequence[str],
        min_duration_ms: int,
        orientation: Orientation,
        exclude_ids: Iterable[str],
    ) -> Optional[FootageClip]:
        if not self.enabled():
            raise FootageNotFoundError("Pexels client is not configured")
        excluded = set(exclude_ids)
        for term in terms:
            term = term.strip()
            if not term:
                continue
            videos = self._search_term(term, orientation)
            clip = self._pick(videos, min_duration_ms, orientation, excluded)
            if clip:
                self.log.info(
                    "pexels footage selected",
                    extra={"term": term, "footage_id": clip.id, "duration_ms": clip.duration_ms},
                )
                return clip
            self.log.debug("no qualifying pexels footage", extra={"term": term})
        return None

    def _search_term(self, term: str, orientation: Orientation) -> list[dict[str, Any]]:
        params = {
            "query": term,
            "orientation": orientation.value,
            "size": "medium",
            "per_page": self.per_page,
        }
        headers = {"Authorization": self.api_key}
        last_error: Exception | None = None
        for attempt in range(self.max_attempts):
            try:
                with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                    response = client.get(f"{self.base_url}/videos/search", params=params, headers=headers)
                    response.raise_for_status()
                    return response.json().get("videos") or []
            except (httpx.HTTPError, ValueError) as exc:
                last_error = exc
                self.log.warning(
                    "pexels search failed",
                    extra={"term": term, "attempt": attempt + 1, "error": str(exc)},
                )
                if attempt + 1 < self.max_attempts:
                    self._sleep(self.backoff_seconds * (2**attempt))
        raise FootageNotFoundError(
            f"footage search for '{term}' failed after {self.max_attempts} attempts: {last_error}"
        ) from last_error

    def _pick(
        self,
        videos: list[dict[str, Any]],
        min_duration_ms: int,
        orientation: Orientation,
        excluded: set[str],
    ) -> Optional[FootageClip]:
        for video in videos:
            video_id = str(video.get("id") or "")
            if not video_id or video_id in excluded:
                continue
            duration_ms = int(float(video.get("duration") or 0) * 1000)
            if duration_ms < min_duration_ms:
                continue
            best = self._best_file(video.get("video_files") or [], orientation)
            if not best:
                continue
            return FootageClip(
                id=video_id,
                url=best["link"],
                duration_ms=duration_ms,
                width=int(best["width"]),
                height=int(best["height"]),
            )
        return None

    def _best_file(self, files: list[dict[str, Any]], orientation: Orientation) -> dict[str, Any] | None:
        candidates = []
        for entry in files:
            width = int(entry.get("width") or 0)
            height = int(entry.get("height") or 0)
            if not entry.get("link") or entry.get("file_type", "video/mp4") != "video/mp4":
                continue
            if width < self.min_width or height < self.min_height:
                continue
            if orientation == Orientation.PORTRAIT and width > height:
                continue
            if orientation == Orientation.LANDSCAPE and height > width:
                continue
            candidates.append(entry)
        if not candidates:
            return None
        # smallest file that still clears the quality floor keeps downloads short
        return min(candidates, key=lambda item: int(item.get("width") or 0) * int(item.get("height") or 0))
