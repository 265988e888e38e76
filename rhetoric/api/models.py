"""Pydantic request/response schemas for the Rhetoric API."""

from __future__ import annotations

from pydantic import Field

from rhetoric.exemplars.models import CamelModel, Exemplar, ExemplarFields
from rhetoric.pipeline_config import SegmentationMethod


class AddExemplarRequest(ExemplarFields):
    """Request body for POST /api/exemplars."""

    exemplar_store_path: str | None = None


class SearchRequest(CamelModel):
    """Request body for POST /api/exemplars/search."""

    text: str = Field(min_length=1)
    exemplar_store_path: str | None = None
    top_k: int = Field(default=5, gt=0)
    threshold: float = Field(default=0.0, ge=0, le=1)
    move_type: str | None = None


class MatchOut(CamelModel):
    exemplar: Exemplar
    similarity: float


class SearchResponse(CamelModel):
    matches: list[MatchOut]


class ExemplarListResponse(CamelModel):
    count: int
    exemplars: list[Exemplar]


class RemoveResponse(CamelModel):
    removed_id: str


class SegmentRequest(CamelModel):
    """Request body for POST /api/segment."""

    text: str
    method: SegmentationMethod = SegmentationMethod.SENTENCE
    min_words: int = Field(default=5, gt=0)
    max_words: int = Field(default=100, gt=0)
    overlap_words: int = Field(default=25, ge=0)
    speaker_pattern: str | None = None


class SegmentOut(CamelModel):
    text: str
    start: int
    end: int
    index: int
    word_count: int
    speaker: str | None = None


class SegmentResponse(CamelModel):
    method: SegmentationMethod
    total_segments: int
    segments: list[SegmentOut]
