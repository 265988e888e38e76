"""Pipeline configuration: segmentation enum and per-call config dataclasses."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from rhetoric.errors import ValidationError

DEFAULT_SPEAKER_PATTERN = r"^([A-Z][A-Z\s.]+):"


class SegmentationMethod(str, Enum):
    """Available strategies for splitting text into spans."""

    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"
    SLIDING = "sliding"
    SPEAKER_TURN = "speaker_turn"


@dataclass(frozen=True)
class SegmenterConfig:
    """Immutable span-length and speaker-label settings for the segmenter.

    ``max_words`` doubles as the sliding window size; windows advance by
    ``max_words - overlap_words`` words. Other methods ignore ``overlap_words``.
    """

    method: SegmentationMethod = SegmentationMethod.SENTENCE
    min_words: int = 5
    max_words: int = 100
    overlap_words: int = 25
    speaker_pattern: str = DEFAULT_SPEAKER_PATTERN

    def __post_init__(self) -> None:
        errors: list[str] = []
        if self.min_words < 1:
            errors.append("min_words: must be >= 1")
        if self.max_words < 1:
            errors.append("max_words: must be >= 1")
        if self.overlap_words < 0:
            errors.append("overlap_words: must be >= 0")
        elif self.method == SegmentationMethod.SLIDING and self.overlap_words >= self.max_words:
            errors.append("overlap_words: must be smaller than max_words")
        try:
            re.compile(self.speaker_pattern)
        except re.error as exc:
            errors.append(f"speaker_pattern: {exc}")
        if errors:
            raise ValidationError("Invalid segmenter configuration", details=errors)
        # Accept plain strings from callers
        if not isinstance(self.method, SegmentationMethod):
            try:
                object.__setattr__(self, "method", SegmentationMethod(self.method))
            except ValueError as exc:
                raise ValidationError(
                    "Invalid segmenter configuration", details=[f"method: {exc}"]
                ) from exc


@dataclass(frozen=True)
class ClassifierConfig:
    """Immutable voting and output settings for one analysis call."""

    confidence_threshold: float = 0.5
    top_k: int = 5
    min_exemplars_per_type: int = 3
    include_alternatives: bool = True
    include_exemplar_matches: bool = True
    max_alternatives: int = 3
