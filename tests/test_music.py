import random

from shortvideo.models.domain import MusicMood
from shortvideo.services.music import DEFAULT_MUSIC_CATALOG, MusicLibrary

CATALOG = [
    {"name": "short", "mood": "happy", "source": "short.mp3", "start_ms": "0", "end_ms": "10000"},
    {"name": "medium", "mood": "happy", "source": "medium.mp3", "start_ms": "5000", "end_ms": "35000"},
    {"name": "long", "mood": "happy", "source": "long.mp3", "start_ms": "0", "end_ms": "90000"},
    {"name": "gloom", "mood": "dark", "source": "gloom.mp3", "start_ms": "0", "end_ms": "40000"},
]


def test_select_picks_only_tracks_long_enough():
    library = MusicLibrary(CATALOG, rng=random.Random(7))
    picks = {library.select(MusicMood.HAPPY, 20000).name for _ in range(50)}
    assert picks == {"medium", "long"}


def test_select_falls_back_to_longest_track():
    library = MusicLibrary(CATALOG)
    assert library.select(MusicMood.HAPPY, 120000).name == "long"


def test_select_without_mood_match_returns_none():
    library = MusicLibrary(CATALOG)
    assert library.select(MusicMood.FUNNY, 1000) is None


def test_invalid_entries_are_skipped():
    library = MusicLibrary(CATALOG + [{"name": "broken", "mood": "polka", "source": "x.mp3", "end_ms": "1"}])
    assert [track.name for track in library.tracks] == ["short", "medium", "long", "gloom"]
    assert library.moods() == ["happy", "dark"]


def test_default_catalog_covers_every_mood():
    library = MusicLibrary()
    assert len(library.tracks) == len(DEFAULT_MUSIC_CATALOG)
    assert set(library.moods()) == {mood.value for mood in MusicMood}
