"""Data models for exemplar collections.

Exemplars are serialised in camelCase (``moveType``, ``embeddingModel``) so
collection files stay interchangeable with other tools; Python code uses the
snake_case attribute names.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExemplarConfidence(str, Enum):
    """How sure the annotator was about an exemplar's label."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ExemplarFields(CamelModel):
    """User-supplied fields for a new exemplar.

    ``move_type`` and ``move_category`` are open strings: any non-empty label
    is accepted and there is no registry of known categories.
    """

    text: str = Field(min_length=1)
    move_type: str = Field(min_length=1)
    move_category: str = Field(min_length=1)
    confidence: ExemplarConfidence = ExemplarConfidence.HIGH
    notes: str | None = None
    source_file: str | None = None
    source_title: str | None = None
    speaker: str | None = None
    context_before: str | None = None
    context_after: str | None = None
    annotated_by: str | None = None

    @field_validator("text", "move_type", "move_category")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class Exemplar(ExemplarFields):
    """A labeled reference span owned by one collection."""

    id: str
    annotated_date: str | None = None
    embedding: list[float] | None = None
    embedding_model: str | None = None

    def to_record(self) -> dict[str, object]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


@dataclass
class Match:
    """One exemplar returned by a similarity search."""

    exemplar: Exemplar
    similarity: float


class StoreStats(CamelModel):
    """Aggregate counts for a collection."""

    total_exemplars: int
    move_type_counts: dict[str, int]
    category_counts: dict[str, int]
    confidence_counts: dict[str, int]
    embedded_count: int
