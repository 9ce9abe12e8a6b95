import pytest

from conftest import FakeCaptioner, FakeFootage, FakeSynthesizer, FakeTranscoder
from shortvideo.errors import CaptionError, FootageNotFoundError
from shortvideo.models.domain import RenderConfig, SceneInput
from shortvideo.services.scene_pipeline import FootageReservations, ScenePipeline


def build_pipeline(footage, captioner=None):
    return ScenePipeline(
        synthesizer=FakeSynthesizer(),
        transcoder=FakeTranscoder(),
        captioner=captioner or FakeCaptioner(),
        footage=footage,
        default_voice="rachel",
        fallback_terms=["nature", "ocean"],
        duration_buffer_ms=3000,
    )


def test_resolve_packages_every_stage():
    footage = FakeFootage({"city": ["city-1"]})
    pipeline = build_pipeline(footage)
    resolved = pipeline.resolve(
        SceneInput(index=2, text="Hello big world", search_terms=["city"]),
        RenderConfig(voice="adam"),
        FootageReservations(),
    )
    assert resolved.index == 2
    assert resolved.duration_ms == 1200
    assert resolved.normalized_audio == b"WAV:RAW:Hello big world"
    assert resolved.audio == b"MP3:WAV:RAW:Hello big world"
    assert [caption.text for caption in resolved.captions] == ["Hello", "big", "world"]
    assert resolved.footage.id == "city-1"
    assert pipeline.synthesizer.calls == [("Hello big world", "adam")]


def test_terms_are_tried_before_fallback_pool():
    footage = FakeFootage({"ocean": ["ocean-1"]})
    pipeline = build_pipeline(footage)
    resolved = pipeline.resolve(
        SceneInput(index=0, text="Hi", search_terms=["mars", "venus"]),
        RenderConfig(),
        FootageReservations(),
    )
    assert resolved.footage.id == "ocean-1"
    assert [call[0] for call in footage.calls] == [["mars", "venus"], ["nature", "ocean"]]


def test_used_footage_is_excluded():
    footage = FakeFootage({"city": ["city-1", "city-2"]})
    pipeline = build_pipeline(footage)
    reservations = FootageReservations(["city-1"])
    resolved = pipeline.resolve(SceneInput(index=1, text="Hi", search_terms=["city"]), RenderConfig(), reservations)
    assert resolved.footage.id == "city-2"
    assert "city-2" in reservations


def test_exhausted_pool_allows_reuse():
    footage = FakeFootage({"city": ["city-1"]})
    pipeline = build_pipeline(footage)
    reservations = FootageReservations(["city-1"])
    resolved = pipeline.resolve(SceneInput(index=1, text="Hi", search_terms=["city"]), RenderConfig(), reservations)
    assert resolved.footage.id == "city-1"


def test_nothing_anywhere_raises_footage_not_found():
    pipeline = build_pipeline(FakeFootage({}))
    with pytest.raises(FootageNotFoundError):
        pipeline.resolve(SceneInput(index=0, text="Hi", search_terms=["mars"]), RenderConfig(), FootageReservations())


def test_caption_failure_propagates_before_footage_search():
    class BrokenCaptioner:
        def align(self, audio):
            raise CaptionError("model crashed")

    footage = FakeFootage({"city": ["city-1"]})
    pipeline = build_pipeline(footage, captioner=BrokenCaptioner())
    with pytest.raises(CaptionError):
        pipeline.resolve(SceneInput(index=0, text="Hi", search_terms=["city"]), RenderConfig(), FootageReservations())
    assert footage.calls == []


def test_reservations_claim_once():
    reservations = FootageReservations()
    assert reservations.claim("a") is True
    assert reservations.claim("a") is False
    assert reservations.snapshot() == {"a"}
