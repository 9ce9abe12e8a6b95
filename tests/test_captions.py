from shortvideo.clients.whisper import captions_from_segments
from shortvideo.models.domain import Caption, FootageClip, ResolvedScene
from shortvideo.services.captions import build_caption_pages, format_timestamp, pages_to_srt, scene_caption_pages


def words(*pairs):
    return [Caption(text=text, start_ms=start, end_ms=end) for text, start, end in pairs]


def test_pages_respect_character_limit():
    captions = words(("Hello", 0, 300), ("big", 300, 500), ("wide", 500, 800), ("world", 800, 1200))
    pages = build_caption_pages(captions, max_chars=10)
    assert [page.text for page in pages] == ["Hello big", "wide world"]
    assert (pages[0].start_ms, pages[0].end_ms) == (0, 500)
    assert (pages[1].start_ms, pages[1].end_ms) == (500, 1200)


def test_scene_pages_are_offset_by_previous_scenes():
    clip = FootageClip(id="x", url="https://footage.test/x.mp4", duration_ms=9000, width=1080, height=1920)
    scenes = [
        ResolvedScene(index=1, text="b", audio=b"", duration_ms=500, captions=words(("second", 0, 500)), footage=clip),
        ResolvedScene(index=0, text="a", audio=b"", duration_ms=1000, captions=words(("first", 0, 900)), footage=clip),
    ]
    pages = scene_caption_pages(scenes)
    assert [(page.text, page.start_ms, page.end_ms) for page in pages] == [
        ("first", 0, 900),
        ("second", 1000, 1500),
    ]


def test_srt_output():
    pages = build_caption_pages(words(("Hi", 0, 1500)))
    assert pages_to_srt(pages) == "1\n00:00:00,000 --> 00:00:01,500\nHi\n"
    assert format_timestamp(3_723_004) == "01:02:03,004"


def test_whisper_words_become_monotonic_captions():
    segments = [
        {
            "text": " Hello world",
            "start": 0.0,
            "end": 1.0,
            "words": [
                {"word": " Hello", "start": 0.0, "end": 0.52},
                {"word": " world", "start": 0.48, "end": 1.0},
            ],
        },
        {"text": " again", "start": 1.1, "end": 1.6},
    ]
    captions = captions_from_segments(segments)
    assert [(c.text, c.start_ms, c.end_ms) for c in captions] == [
        ("Hello", 0, 520),
        ("world", 520, 1000),
        ("again", 1100, 1600),
    ]
