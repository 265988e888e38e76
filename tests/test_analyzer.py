"""End-to-end analysis tests against a hashing embedding backend."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest

from rhetoric.analysis.analyzer import analyze, analyze_text
from rhetoric.analysis.models import AnalysisRequest, SegmentOutcome
from rhetoric.context import AppContext
from rhetoric.embeddings.provider import EmbeddingProvider
from rhetoric.errors import EmbeddingError, EmptyStoreError, StoreError, ValidationError
from rhetoric.exemplars.store import ExemplarStore
from tests.fakes import SCENARIO_TEXT


def _request(store: Path, text: str = SCENARIO_TEXT, **overrides) -> dict:
    return {"text": text, "exemplarStorePath": str(store), "minWords": 2, **overrides}


class TestAnalyzeText:
    def test_classifies_each_sentence(self, context: AppContext, seeded_store_path: Path) -> None:
        result = asyncio.run(analyze_text(_request(seeded_store_path), context))

        assert [s.move_type for s in result.segments] == ["concession", "contrast"]
        assert [s.move_category for s in result.segments] == ["positioning", "argumentation"]
        for seg in result.segments:
            assert seg.confidence >= 0.5
            assert seg.alternatives is not None
            assert seg.matched_exemplars is not None
            assert len(seg.matched_exemplars) == 3
            assert all(len(m.id) == 8 for m in seg.matched_exemplars)
            assert SCENARIO_TEXT[seg.start : seg.end] == seg.text

        assert result.summary.total_segments == 2
        assert result.summary.classified_segments == 2
        assert result.summary.classification_rate == 1.0
        assert result.summary.move_counts == {"concession": 1, "contrast": 1}
        assert result.summary.narrative.startswith("Detected 2 rhetorical moves")
        assert [r.outcome for r in result.segment_outcomes] == [SegmentOutcome.CLASSIFIED] * 2

    def test_result_metadata(self, context: AppContext, seeded_store_path: Path) -> None:
        result = asyncio.run(analyze_text(_request(seeded_store_path, inputFile="essay.txt"), context))
        assert len(result.id) == 8
        assert result.input_file == "essay.txt"
        assert result.input_text_preview == SCENARIO_TEXT
        assert result.word_count == 9
        assert result.exemplar_store.exemplar_count == 6
        assert result.config["segmentationMethod"] == "sentence"
        assert result.config["minWords"] == 2
        assert "text" not in result.config

    def test_input_file_defaults_to_stdin(self, context: AppContext, seeded_store_path: Path) -> None:
        result = asyncio.run(analyze_text(_request(seeded_store_path), context))
        assert result.input_file == "<stdin>"

    def test_optional_sections_can_be_disabled(self, context: AppContext, seeded_store_path: Path) -> None:
        request = _request(seeded_store_path, includeAlternatives=False, includeExemplarMatches=False)
        result = asyncio.run(analyze_text(request, context))
        for seg in result.segments:
            assert seg.alternatives is None
            assert seg.matched_exemplars is None

    def test_high_threshold_skips_segments(self, context: AppContext, seeded_store_path: Path) -> None:
        result = asyncio.run(analyze_text(_request(seeded_store_path, confidenceThreshold=1.0), context))
        assert result.segments == []
        assert [r.outcome for r in result.segment_outcomes] == [SegmentOutcome.SKIPPED_BELOW_THRESHOLD] * 2
        assert result.summary.skipped_counts == {"skipped_below_threshold": 2}
        assert result.summary.narrative == "No rhetorical moves detected above confidence threshold."

    def test_min_exemplars_gate(self, context: AppContext, seeded_store_path: Path) -> None:
        result = asyncio.run(analyze_text(_request(seeded_store_path, minExemplarsPerType=4), context))
        assert result.segments == []
        assert all(r.outcome is SegmentOutcome.SKIPPED_BELOW_THRESHOLD for r in result.segment_outcomes)

    def test_empty_text(self, context: AppContext, seeded_store_path: Path) -> None:
        result = asyncio.run(analyze_text(_request(seeded_store_path, text=""), context))
        assert result.summary.total_segments == 0
        assert result.summary.classified_segments == 0
        assert result.summary.narrative == "No text segments to analyze."

    def test_empty_store_is_fatal(self, context: AppContext, store_path: Path) -> None:
        with pytest.raises(EmptyStoreError):
            asyncio.run(analyze_text(_request(store_path), context))

    def test_invalid_request(self, context: AppContext, seeded_store_path: Path) -> None:
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(analyze_text(_request(seeded_store_path, confidenceThreshold=1.5), context))
        assert any("confidenceThreshold" in d for d in exc_info.value.details)

    def test_invalid_segmenter_settings(self, context: AppContext, seeded_store_path: Path) -> None:
        with pytest.raises(ValidationError):
            request = _request(seeded_store_path, segmentationMethod="sliding", maxWords=10, overlapWords=10)
            asyncio.run(analyze_text(request, context))

    def test_small_max_words_with_default_overlap(self, context: AppContext, seeded_store_path: Path) -> None:
        result = asyncio.run(analyze_text(_request(seeded_store_path, maxWords=20), context))
        assert result.config["maxWords"] == 20
        assert result.config["overlapWords"] == 25
        assert [s.move_type for s in result.segments] == ["concession", "contrast"]

    def test_accepts_request_model(self, context: AppContext, seeded_store_path: Path) -> None:
        request = AnalysisRequest(text=SCENARIO_TEXT, exemplar_store_path=str(seeded_store_path), min_words=2)
        result = asyncio.run(analyze_text(request, context))
        assert len(result.segments) == 2

    def test_model_load_failure_is_fatal(self, seeded_store_path: Path) -> None:
        def broken_factory(model_id: str):
            raise OSError("no weights")

        context = AppContext(embeddings=EmbeddingProvider(backend_factory=broken_factory))
        with pytest.raises(EmbeddingError):
            asyncio.run(analyze_text(_request(seeded_store_path), context))

    def test_failed_segment_search_is_reported(self, context: AppContext, seeded_store_path: Path) -> None:
        result = _run_with_fallback(context, seeded_store_path)
        outcomes = {r.index: r for r in result.segment_outcomes}
        assert outcomes[0].outcome is SegmentOutcome.CLASSIFIED
        assert outcomes[1].outcome is SegmentOutcome.SKIPPED_ERROR
        assert "disk on fire" in (outcomes[1].reason or "")
        assert result.summary.skipped_counts == {"skipped_error": 1}


def _run_with_fallback(context: AppContext, store_path: Path):
    """Fail the batched search, then fail the per-segment search for the second sentence."""
    real_search_many = ExemplarStore.search_many
    state = {"batch_calls": 0}

    async def search_many(self, texts, *args, **kwargs):
        state["batch_calls"] += 1
        if len(texts) > 1:
            raise StoreError("batch failed")
        if texts[0].startswith("However"):
            raise StoreError("disk on fire")
        return await real_search_many(self, texts, *args, **kwargs)

    with patch.object(ExemplarStore, "search_many", search_many):
        result = asyncio.run(analyze_text(_request(store_path), context))
    assert state["batch_calls"] == 3
    return result


class TestAnalyzeEnvelope:
    def test_success(self, context: AppContext, seeded_store_path: Path) -> None:
        response = asyncio.run(analyze(_request(seeded_store_path), context))
        assert response.success is True
        assert response.error is None
        assert response.data is not None
        assert response.metadata.operation == "analyze"

        payload = response.to_json_dict()
        assert "error" not in payload
        assert payload["data"]["summary"]["classifiedSegments"] == 2
        assert payload["data"]["segments"][0]["moveType"] == "concession"
        assert payload["data"]["segmentOutcomes"][0]["outcome"] == "classified"

    def test_empty_text_still_succeeds(self, context: AppContext, seeded_store_path: Path) -> None:
        response = asyncio.run(analyze(_request(seeded_store_path, text=""), context))
        assert response.success is True
        assert response.data is not None
        assert response.data.summary.narrative == "No text segments to analyze."

    def test_empty_store_reports_error(self, context: AppContext, store_path: Path) -> None:
        response = asyncio.run(analyze(_request(store_path), context))
        assert response.success is False
        assert response.data is None
        assert response.error is not None
        assert response.error.code == "NO_EXEMPLARS"

    def test_validation_error_reported(self, context: AppContext, seeded_store_path: Path) -> None:
        response = asyncio.run(analyze({"exemplarStorePath": str(seeded_store_path)}, context))
        assert response.success is False
        assert response.error is not None
        assert response.error.code == "VALIDATION_ERROR"
        assert any(d.startswith("text") for d in response.error.details)

    def test_unexpected_error_wrapped(self, context: AppContext, seeded_store_path: Path) -> None:
        with patch("rhetoric.analysis.analyzer.segment_text", side_effect=KeyError("boom")):
            response = asyncio.run(analyze(_request(seeded_store_path), context))
        assert response.success is False
        assert response.error is not None
        assert response.error.code == "ANALYSIS_ERROR"

    def test_concurrent_analyses_share_store(self, context: AppContext, seeded_store_path: Path) -> None:
        async def run():
            return await asyncio.gather(*(analyze(_request(seeded_store_path), context) for _ in range(4)))

        responses = asyncio.run(run())
        assert all(r.success for r in responses)
        assert len(context.stores.open_paths()) == 1
        assert len(context.embeddings.loaded_models()) == 1
