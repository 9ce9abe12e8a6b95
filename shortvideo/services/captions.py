from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence

from shortvideo.models.domain import Caption, ResolvedScene


@dataclass
class CaptionPage:
    text: str
    start_ms: int
    end_ms: int


def build_caption_pages(captions: Iterable[Caption], max_chars: int = 24, offset_ms: int = 0) -> List[CaptionPage]:
    """Group word captions into on-screen pages no wider than ``max_chars``."""
    pages: List[CaptionPage] = []
    words: List[str] = []
    start = end = 0
    for caption in captions:
        text = caption.text.strip()
        if not text:
            continue
        candidate = " ".join(words + [text])
        if words and len(candidate) > max_chars:
            pages.append(CaptionPage(" ".join(words), start + offset_ms, end + offset_ms))
            words = []
        if not words:
            start = caption.start_ms
        words.append(text)
        end = caption.end_ms
    if words:
        pages.append(CaptionPage(" ".join(words), start + offset_ms, end + offset_ms))
    return pages


def scene_caption_pages(scenes: Sequence[ResolvedScene], max_chars: int = 24) -> List[CaptionPage]:
    pages: List[CaptionPage] = []
    cursor = 0
    for scene in sorted(scenes, key=lambda item: item.index):
        pages.extend(build_caption_pages(scene.captions, max_chars=max_chars, offset_ms=cursor))
        cursor += scene.duration_ms
    return pages


def format_timestamp(milliseconds: int) -> str:
    total_ms = max(0, int(milliseconds))
    hours = total_ms // 3_600_000
    minutes = (total_ms % 3_600_000) // 60_000
    secs = (total_ms % 60_000) // 1000
    millis = total_ms % 1000
    return f"{hours:02}:{minutes:02}:{secs:02},{millis:03}"


def pages_to_srt(pages: Sequence[CaptionPage]) -> str:
    lines = []
    for idx, page in enumerate(pages, start=1):
        lines.append(f"{idx}\n{format_timestamp(page.start_ms)} --> {format_timestamp(page.end_ms)}\n{page.text}\n")
    return "\n".join(lines)
