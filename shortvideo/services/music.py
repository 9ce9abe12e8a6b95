from __future__ import annotations

import logging
import random
from typing import Iterable, Optional

from shortvideo.models.domain import MusicMood, MusicTrack

DEFAULT_MUSIC_CATALOG: list[dict[str, str]] = [
    {"name": "quiet-rain", "mood": "sad", "source": "assets/music/quiet-rain.mp3", "start_ms": "0", "end_ms": "142000"},
    {"name": "faded-letters", "mood": "melancholic", "source": "assets/music/faded-letters.mp3", "start_ms": "0", "end_ms": "176000"},
    {"name": "sunny-walk", "mood": "happy", "source": "assets/music/sunny-walk.mp3", "start_ms": "0", "end_ms": "121000"},
    {"name": "lift-off", "mood": "euphoric", "source": "assets/music/lift-off.mp3", "start_ms": "2000", "end_ms": "98000"},
    {"name": "fast-lane", "mood": "excited", "source": "assets/music/fast-lane.mp3", "start_ms": "0", "end_ms": "115000"},
    {"name": "lofi-afternoon", "mood": "chill", "source": "assets/music/lofi-afternoon.mp3", "start_ms": "0", "end_ms": "185000"},
    {"name": "slow-tide", "mood": "chill", "source": "assets/music/slow-tide.mp3", "start_ms": "0", "end_ms": "64000"},
    {"name": "low-hum", "mood": "uneasy", "source": "assets/music/low-hum.mp3", "start_ms": "0", "end_ms": "133000"},
    {"name": "red-line", "mood": "angry", "source": "assets/music/red-line.mp3", "start_ms": "0", "end_ms": "102000"},
    {"name": "night-corridor", "mood": "dark", "source": "assets/music/night-corridor.mp3", "start_ms": "0", "end_ms": "150000"},
    {"name": "first-light", "mood": "hopeful", "source": "assets/music/first-light.mp3", "start_ms": "0", "end_ms": "168000"},
    {"name": "open-questions", "mood": "contemplative", "source": "assets/music/open-questions.mp3", "start_ms": "0", "end_ms": "190000"},
    {"name": "bouncy-socks", "mood": "funny", "source": "assets/music/bouncy-socks.mp3", "start_ms": "0", "end_ms": "88000"},
]


class MusicLibrary:
    def __init__(
        self,
        catalog: Iterable[dict[str, str]] | None = None,
        rng: random.Random | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.log = logger or logging.getLogger(__name__)
        self._rng = rng or random.Random()
        entries = list(catalog) if catalog else DEFAULT_MUSIC_CATALOG
        self.tracks: list[MusicTrack] = []
        for entry in entries:
            name = (entry.get("name") or "").strip()
            source = (entry.get("source") or entry.get("url") or "").strip()
            if not name or not source:
                continue
            try:
                track = MusicTrack.model_validate({**entry, "name": name, "source": source})
            except ValueError:
                self.log.warning("skipping invalid music catalog entry", extra={"track": name})
                continue
            self.tracks.append(track)

    def moods(self) -> list[str]:
        seen: list[str] = []
        for track in self.tracks:
            if track.mood.value not in seen:
                seen.append(track.mood.value)
        return seen

    def select(self, mood: MusicMood, required_ms: int) -> Optional[MusicTrack]:
        """Pick a random track of ``mood`` long enough for the video, else the longest one."""
        candidates = [track for track in self.tracks if track.mood == mood]
        if not candidates:
            self.log.warning("no music tracks for mood", extra={"mood": mood.value})
            return None
        long_enough = [track for track in candidates if track.span_ms >= required_ms]
        if long_enough:
            return self._rng.choice(long_enough)
        return max(candidates, key=lambda track: track.span_ms)
