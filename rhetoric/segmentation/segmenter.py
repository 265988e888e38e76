"""Segmentation strategies: sentence, paragraph, sliding window and speaker turn."""

from __future__ import annotations

import logging
import re

from rhetoric.errors import RhetoricError, SegmentationError
from rhetoric.pipeline_config import SegmentationMethod, SegmenterConfig
from rhetoric.segmentation.models import Segment

logger = logging.getLogger(__name__)

# Fixed-width lookbehinds chained together: no boundary after a title,
# "etc", "i.e", "e.g" or any capitalised two-letter token.
_ABBREVIATIONS = (r"[A-Z][a-z]", "Mr", "Mrs", "Ms", "Dr", "Prof", "Sr", "Jr", "vs", "etc", r"i\.e", r"e\.g")
SENTENCE_BOUNDARY_RE = re.compile("".join(f"(?<!{a})" for a in _ABBREVIATIONS) + r"([.!?]+)\s+")
PARAGRAPH_BOUNDARY_RE = re.compile(r"\n\s*\n")


def count_words(text: str) -> int:
    return len(text.split())


def truncate_to_max_words(text: str, max_words: int) -> str:
    """Keep the first *max_words* words; shorter text is returned unchanged."""
    words = text.split()
    if len(words) <= max_words:
        return text
    return " ".join(words[:max_words])


def _boundary_spans(text: str, boundary: re.Pattern[str], keep_delimiter: bool) -> list[tuple[int, int]]:
    """Return ``(start, end)`` offsets of the pieces between boundary matches.

    With *keep_delimiter* the first capture group (terminal punctuation) stays
    attached to the piece before it.
    """
    spans: list[tuple[int, int]] = []
    pos = 0
    for match in boundary.finditer(text):
        end = match.end(1) if keep_delimiter else match.start()
        spans.append((pos, end))
        pos = match.end()
    spans.append((pos, len(text)))
    return spans


def _spans_to_segments(text: str, spans: list[tuple[int, int]], config: SegmenterConfig) -> list[Segment]:
    segments: list[Segment] = []
    for raw_start, raw_end in spans:
        raw = text[raw_start:raw_end]
        trimmed = raw.strip()
        if not trimmed:
            continue

        word_count = count_words(trimmed)
        if word_count < config.min_words:
            continue

        start = raw_start + (len(raw) - len(raw.lstrip()))
        # Over-long spans are cut to max_words; offsets still cover the full span.
        segment_text = truncate_to_max_words(trimmed, config.max_words)
        segments.append(
            Segment(
                text=segment_text,
                start=start,
                end=start + len(trimmed),
                index=len(segments),
                word_count=count_words(segment_text),
            )
        )
    return segments


def sentence_segments(text: str, config: SegmenterConfig) -> list[Segment]:
    """Split on sentence-final punctuation, guarding common abbreviations."""
    return _spans_to_segments(text, _boundary_spans(text, SENTENCE_BOUNDARY_RE, True), config)


def paragraph_segments(text: str, config: SegmenterConfig) -> list[Segment]:
    """Split on blank lines."""
    return _spans_to_segments(text, _boundary_spans(text, PARAGRAPH_BOUNDARY_RE, False), config)


def sliding_segments(text: str, config: SegmenterConfig) -> list[Segment]:
    """Fixed-size word windows advancing by ``max_words - overlap_words``.

    Character offsets are reconstructed from single-space joins of the words
    before each window, so they drift wherever the source has runs of
    whitespace. Treat them as best-effort.
    """
    words = text.split()
    if not words:
        return []

    window_size = config.max_words
    step = window_size - config.overlap_words
    # Prevent infinite loop when overlap >= window size
    if step <= 0:
        step = window_size

    segments: list[Segment] = []
    pos = 0
    while pos < len(words):
        window = words[pos : pos + window_size]
        window_text = " ".join(window)
        before = " ".join(words[:pos])
        start = len(before) + (1 if pos > 0 else 0)
        segments.append(
            Segment(
                text=window_text,
                start=start,
                end=start + len(window_text),
                index=len(segments),
                word_count=len(window),
            )
        )
        pos += step
    return segments


def speaker_turn_segments(text: str, config: SegmenterConfig) -> list[Segment]:
    """Group lines into turns delimited by speaker labels.

    Lines between two labels accumulate into the current turn. Text before
    the first label forms a turn with no speaker.
    """
    label_re = re.compile(config.speaker_pattern, re.MULTILINE)
    segments: list[Segment] = []

    speaker: str | None = None
    parts: list[str] = []
    turn_start: int | None = None
    turn_end = 0

    def flush() -> None:
        if not parts or turn_start is None:
            return
        turn_text = " ".join(parts).strip()
        word_count = count_words(turn_text)
        if word_count < config.min_words:
            return
        segment_text = truncate_to_max_words(turn_text, config.max_words)
        segments.append(
            Segment(
                text=segment_text,
                start=turn_start,
                end=turn_end,
                index=len(segments),
                word_count=count_words(segment_text),
                speaker=speaker,
            )
        )

    pos = 0
    for line in text.split("\n"):
        match = label_re.match(line)
        if match:
            flush()
            label = match.group(1) if label_re.groups else match.group(0).rstrip(":")
            speaker = (label or "").strip()
            content = line[match.end() :].strip()
            parts = [content] if content else []
            turn_start = pos
            turn_end = pos + len(line.rstrip())
        elif line.strip():
            if turn_start is None:
                turn_start = pos + (len(line) - len(line.lstrip()))
            parts.append(line.strip())
            turn_end = pos + len(line.rstrip())
        pos += len(line) + 1

    flush()
    return segments


_STRATEGIES = {
    SegmentationMethod.SENTENCE: sentence_segments,
    SegmentationMethod.PARAGRAPH: paragraph_segments,
    SegmentationMethod.SLIDING: sliding_segments,
    SegmentationMethod.SPEAKER_TURN: speaker_turn_segments,
}


def segment_text(text: str, config: SegmenterConfig | None = None) -> list[Segment]:
    """Dispatch to the configured segmentation strategy.

    Empty text, or text that yields no span long enough, returns ``[]``.

    Raises:
        SegmentationError: A strategy failed unexpectedly.
    """
    config = config or SegmenterConfig()
    if not text or not text.strip():
        return []

    strategy = _STRATEGIES[config.method]
    try:
        segments = strategy(text, config)
    except RhetoricError:
        raise
    except Exception as exc:
        raise SegmentationError(f"Failed to segment text: {exc}") from exc

    logger.debug("Segmented %d chars into %d %s segments", len(text), len(segments), config.method.value)
    return segments
