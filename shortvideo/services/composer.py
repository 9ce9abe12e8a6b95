from __future__ import annotations

import logging
import os
import shutil
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from shortvideo.clients.base import VideoRenderer
from shortvideo.errors import RenderError
from shortvideo.models.domain import MusicTrack, RenderConfig, ResolvedScene


@dataclass
class RenderedVideo:
    path: str
    duration_ms: int
    size_bytes: int

    def cleanup(self) -> None:
        workdir = os.path.dirname(self.path)
        if os.path.basename(workdir).startswith("short-video-"):
            shutil.rmtree(workdir, ignore_errors=True)
        elif os.path.isfile(self.path):
            os.remove(self.path)


class Composer:
    """Hands resolved scenes to the renderer and reports monotonic progress."""

    def __init__(self, renderer: VideoRenderer, logger: Optional[logging.Logger] = None) -> None:
        self.renderer = renderer
        self.log = logger or logging.getLogger(__name__)

    def render(
        self,
        scenes: Sequence[ResolvedScene],
        music: Optional[MusicTrack],
        config: RenderConfig,
        on_progress: Callable[[float], None] | None = None,
    ) -> RenderedVideo:
        ordered = sorted(scenes, key=lambda item: item.index)
        duration_ms = sum(scene.duration_ms for scene in ordered) + config.padding_back_ms
        reporter = _MonotonicProgress(on_progress)
        try:
            path = self.renderer.render(ordered, music, config, reporter)
        except RenderError:
            raise
        except Exception as exc:
            raise RenderError(f"renderer failed: {exc}") from exc
        if not path or not os.path.isfile(path):
            raise RenderError("renderer did not produce an output file")
        reporter(1.0)
        size_bytes = os.path.getsize(path)
        self.log.info(
            "video composed",
            extra={"scenes": len(ordered), "duration_ms": duration_ms, "size_bytes": size_bytes},
        )
        return RenderedVideo(path=path, duration_ms=duration_ms, size_bytes=size_bytes)


class _MonotonicProgress:
    def __init__(self, callback: Callable[[float], None] | None) -> None:
        self._callback = callback
        self._last = 0.0
        self._lock = threading.Lock()

    def __call__(self, fraction: float) -> None:
        value = min(1.0, max(0.0, float(fraction)))
        with self._lock:
            # whole-percent steps only
            if value < 1.0 and value - self._last < 0.01:
                return
            if value <= self._last and self._last > 0:
                return
            self._last = value
        if self._callback is not None:
            self._callback(value)
