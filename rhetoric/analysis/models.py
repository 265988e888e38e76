"""Request, result and envelope models for rhetorical move analysis."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field

from rhetoric.config import settings
from rhetoric.exemplars.models import CamelModel
from rhetoric.pipeline_config import ClassifierConfig, SegmentationMethod, SegmenterConfig


class AnalysisRequest(CamelModel):
    """Input to :func:`rhetoric.analysis.analyzer.analyze`.

    Field names are camelCase on the wire (``exemplarStorePath``,
    ``confidenceThreshold`` ...) and snake_case in Python.
    """

    text: str
    exemplar_store_path: str = Field(min_length=1)
    input_file: str = "<stdin>"
    segmentation_method: SegmentationMethod = SegmentationMethod.SENTENCE
    confidence_threshold: float = Field(default=0.5, ge=0, le=1)
    top_k: int = Field(default=5, gt=0)
    min_exemplars_per_type: int = Field(default=3, gt=0)
    include_alternatives: bool = True
    include_exemplar_matches: bool = True
    max_alternatives: int = Field(default=3, gt=0)
    min_words: int = Field(default_factory=lambda: settings.segment_min_words, gt=0)
    max_words: int = Field(default_factory=lambda: settings.segment_max_words, gt=0)
    overlap_words: int = Field(default_factory=lambda: settings.segment_overlap_words, ge=0)
    speaker_pattern: str = Field(default_factory=lambda: settings.speaker_pattern, min_length=1)

    def segmenter_config(self) -> SegmenterConfig:
        return SegmenterConfig(
            method=self.segmentation_method,
            min_words=self.min_words,
            max_words=self.max_words,
            overlap_words=self.overlap_words,
            speaker_pattern=self.speaker_pattern,
        )

    def classifier_config(self) -> ClassifierConfig:
        return ClassifierConfig(
            confidence_threshold=self.confidence_threshold,
            top_k=self.top_k,
            min_exemplars_per_type=self.min_exemplars_per_type,
            include_alternatives=self.include_alternatives,
            include_exemplar_matches=self.include_exemplar_matches,
            max_alternatives=self.max_alternatives,
        )


class SegmentOutcome(str, Enum):
    """Why a segment did or did not end up classified."""

    CLASSIFIED = "classified"
    SKIPPED_NO_MATCH = "skipped_no_match"
    SKIPPED_BELOW_THRESHOLD = "skipped_below_threshold"
    SKIPPED_ERROR = "skipped_error"


class AlternativeClassification(CamelModel):
    move_type: str
    category: str
    confidence: float


class MatchedExemplar(CamelModel):
    id: str
    text: str
    score: float


class ClassifiedSegment(CamelModel):
    """A segment that cleared the confidence threshold."""

    text: str
    start: int
    end: int
    index: int
    word_count: int
    speaker: str | None = None
    move_type: str
    move_category: str
    confidence: float
    alternatives: list[AlternativeClassification] | None = None
    matched_exemplars: list[MatchedExemplar] | None = None


class SegmentReport(CamelModel):
    index: int
    outcome: SegmentOutcome
    reason: str | None = None


class AnalysisSummary(CamelModel):
    total_segments: int
    classified_segments: int
    classification_rate: float
    average_confidence: float
    move_counts: dict[str, int]
    category_counts: dict[str, int]
    top_moves: list[tuple[str, int]]
    skipped_counts: dict[str, int] = Field(default_factory=dict)
    narrative: str


class StoreInfo(CamelModel):
    path: str
    exemplar_count: int


class AnalysisResult(CamelModel):
    id: str
    timestamp: str
    input_file: str
    input_text_preview: str
    word_count: int
    config: dict[str, Any]
    exemplar_store: StoreInfo
    segments: list[ClassifiedSegment]
    segment_outcomes: list[SegmentReport] = Field(default_factory=list)
    summary: AnalysisSummary


class ErrorInfo(CamelModel):
    code: str
    message: str
    details: Any = None


class ResponseMetadata(CamelModel):
    operation: str
    elapsed_ms: int
    timestamp: str


class AnalysisResponse(CamelModel):
    """Either ``data`` or ``error`` is set, never both."""

    success: bool
    data: AnalysisResult | None = None
    error: ErrorInfo | None = None
    metadata: ResponseMetadata

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
