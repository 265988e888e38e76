"""End-to-end analysis: segment -> search -> vote -> summarise."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from rhetoric.analysis.models import (
    AnalysisRequest,
    AnalysisResponse,
    AnalysisResult,
    ClassifiedSegment,
    ErrorInfo,
    MatchedExemplar,
    ResponseMetadata,
    SegmentOutcome,
    SegmentReport,
    StoreInfo,
)
from rhetoric.analysis.summary import build_summary, empty_summary
from rhetoric.analysis.voting import vote
from rhetoric.context import AppContext, get_context
from rhetoric.errors import AnalysisError, EmptyStoreError, RhetoricError, from_pydantic
from rhetoric.exemplars.models import Match
from rhetoric.exemplars.store import ExemplarStore
from rhetoric.pipeline_config import ClassifierConfig
from rhetoric.segmentation.models import Segment
from rhetoric.segmentation.segmenter import segment_text

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200
MATCHED_EXEMPLARS_SHOWN = 3


def _coerce_request(request: AnalysisRequest | dict[str, Any]) -> AnalysisRequest:
    if isinstance(request, AnalysisRequest):
        return request
    try:
        return AnalysisRequest.model_validate(request)
    except PydanticValidationError as exc:
        raise from_pydantic(exc) from exc


async def _search_segments(
    store: ExemplarStore,
    segments: Sequence[Segment],
    top_k: int,
) -> list[list[Match] | Exception]:
    """Nearest exemplars per segment; a failed search yields the exception.

    All segment texts are encoded in one batch. If the batch fails, each
    segment is searched on its own so one bad segment cannot sink the rest.
    """
    texts = [seg.text for seg in segments]
    try:
        return list(await store.search_many(texts, top_k=top_k, threshold=0.0))
    except Exception as exc:
        logger.warning("Batched search failed (%s); searching segments one at a time", exc)

    results: list[list[Match] | Exception] = []
    for seg in segments:
        try:
            results.append(await store.search(seg.text, top_k=top_k, threshold=0.0))
        except Exception as exc:
            logger.warning("Search failed for segment %d: %s", seg.index, exc)
            results.append(exc)
    return results


def _classify(
    segment: Segment,
    matches: list[Match] | Exception,
    type_counts: dict[str, int],
    config: ClassifierConfig,
) -> tuple[ClassifiedSegment | None, SegmentReport]:
    if isinstance(matches, Exception):
        return None, SegmentReport(index=segment.index, outcome=SegmentOutcome.SKIPPED_ERROR, reason=str(matches))
    if not matches:
        return None, SegmentReport(index=segment.index, outcome=SegmentOutcome.SKIPPED_NO_MATCH)

    result = vote(
        matches,
        type_counts,
        config.min_exemplars_per_type,
        config.confidence_threshold,
        config.max_alternatives,
    )
    if result.winner is None:
        if result.ranked:
            reason = f"best score {result.ranked[0].confidence:.3f} < {config.confidence_threshold}"
        else:
            reason = f"no matched move type has {config.min_exemplars_per_type}+ exemplars"
        return None, SegmentReport(
            index=segment.index, outcome=SegmentOutcome.SKIPPED_BELOW_THRESHOLD, reason=reason
        )

    winner = result.winner
    classified = ClassifiedSegment(
        text=segment.text,
        start=segment.start,
        end=segment.end,
        index=segment.index,
        word_count=segment.word_count,
        speaker=segment.speaker,
        move_type=winner.move_type,
        move_category=winner.category,
        confidence=winner.confidence,
    )
    if config.include_alternatives and result.alternatives:
        classified.alternatives = result.alternatives
    if config.include_exemplar_matches:
        classified.matched_exemplars = [
            MatchedExemplar(
                id=m.exemplar.id[:8],
                text=m.exemplar.text[:50],
                score=round(m.similarity, 3),
            )
            for m in matches[:MATCHED_EXEMPLARS_SHOWN]
        ]
    return classified, SegmentReport(index=segment.index, outcome=SegmentOutcome.CLASSIFIED)


async def analyze_text(
    request: AnalysisRequest | dict[str, Any],
    context: AppContext | None = None,
) -> AnalysisResult:
    """Classify every segment of ``request.text`` against an exemplar collection.

    Args:
        request: An :class:`AnalysisRequest` or its camelCase dict form.
        context: Model cache and store handles; defaults to the process context.

    Returns:
        The full analysis. Segments that were not classified appear only in
        ``segment_outcomes`` and the summary's counts.

    Raises:
        ValidationError: Malformed request or segmenter settings.
        StoreError: The collection is unreadable, malformed or empty.
        EmbeddingError: The embedding model could not be loaded.
        SegmentationError: Splitting the text failed.
    """
    started = time.perf_counter()
    request = _coerce_request(request)
    segmenter_config = request.segmenter_config()
    classifier_config = request.classifier_config()
    context = context or get_context()

    # 1. Load the collection
    store = await context.stores.open(request.exemplar_store_path)

    # 2. Exemplars per move type, for the minimum-exemplar gate
    type_counts = await store.move_type_counts()
    exemplar_count = sum(type_counts.values())
    if exemplar_count == 0:
        raise EmptyStoreError("Exemplar store is empty", details={"path": request.exemplar_store_path})

    # 3. Segment
    segments = segment_text(request.text, segmenter_config)

    base: dict[str, Any] = {
        "id": uuid4().hex[:8],
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "input_file": request.input_file,
        "input_text_preview": request.text[:PREVIEW_CHARS],
        "word_count": len(request.text.split()),
        "config": request.model_dump(
            by_alias=True,
            mode="json",
            exclude={"text", "exemplar_store_path", "input_file"},
        ),
        "exemplar_store": StoreInfo(path=request.exemplar_store_path, exemplar_count=exemplar_count),
    }

    if not segments:
        return AnalysisResult(**base, segments=[], segment_outcomes=[], summary=empty_summary())

    # Model load failures are fatal; later per-segment failures are not.
    await context.embeddings.get_model(store.model_id)

    # 4. Search + 5. vote
    match_sets = await _search_segments(store, segments, classifier_config.top_k)
    classified: list[ClassifiedSegment] = []
    reports: list[SegmentReport] = []
    for segment, matches in zip(segments, match_sets, strict=True):
        result, report = _classify(segment, matches, type_counts, classifier_config)
        reports.append(report)
        if result is not None:
            classified.append(result)

    # 6. Aggregate
    summary = build_summary(classified, reports, len(segments))
    logger.info(
        "Analyzed %d segments from %s: %d classified in %.2fs",
        len(segments),
        request.input_file,
        len(classified),
        time.perf_counter() - started,
    )
    return AnalysisResult(**base, segments=classified, segment_outcomes=reports, summary=summary)


async def analyze(
    request: AnalysisRequest | dict[str, Any],
    context: AppContext | None = None,
) -> AnalysisResponse:
    """Run :func:`analyze_text` and wrap the outcome in a result envelope.

    Never raises: failures come back as ``success=False`` with a typed
    ``error`` and no partial data.
    """
    started = time.perf_counter()
    data: AnalysisResult | None = None
    error: ErrorInfo | None = None
    try:
        data = await analyze_text(request, context)
    except RhetoricError as exc:
        error = ErrorInfo(code=exc.code, message=exc.message, details=exc.details)
    except Exception as exc:
        logger.exception("Rhetoric analysis failed")
        error = ErrorInfo(code=AnalysisError.code, message=str(exc) or "Rhetoric analysis failed")

    return AnalysisResponse(
        success=error is None,
        data=data,
        error=error,
        metadata=ResponseMetadata(
            operation="analyze",
            elapsed_ms=int((time.perf_counter() - started) * 1000),
            timestamp=datetime.now(timezone.utc).isoformat(),
        ),
    )
