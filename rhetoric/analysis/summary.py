"""Aggregate counts and the templated narrative for an analysis."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from rhetoric.analysis.models import AnalysisSummary, ClassifiedSegment, SegmentOutcome, SegmentReport

NO_SEGMENTS_NARRATIVE = "No text segments to analyze."
NO_MOVES_NARRATIVE = "No rhetorical moves detected above confidence threshold."


def _ranked(counts: Mapping[str, int], limit: int) -> list[tuple[str, int]]:
    # sorted() is stable: equal counts keep first-classified order
    return sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[:limit]


def generate_narrative(
    move_counts: Mapping[str, int],
    category_counts: Mapping[str, int],
    total: int,
    average_confidence: float,
) -> str:
    """Deterministic one-paragraph description of the classified moves."""
    if total == 0:
        return NO_MOVES_NARRATIVE

    narrative = f"Detected {total} rhetorical moves (avg confidence: {average_confidence:.2f}). "

    top_moves = _ranked(move_counts, 3)
    if top_moves:
        moves = ", ".join(f"{move} ({count})" for move, count in top_moves)
        narrative += f"Most frequent: {moves}. "

    top_categories = _ranked(category_counts, 1)
    if top_categories:
        narrative += f"Primary mode: {top_categories[0][0]}."

    return narrative.strip()


def empty_summary() -> AnalysisSummary:
    return AnalysisSummary(
        total_segments=0,
        classified_segments=0,
        classification_rate=0.0,
        average_confidence=0.0,
        move_counts={},
        category_counts={},
        top_moves=[],
        skipped_counts={},
        narrative=NO_SEGMENTS_NARRATIVE,
    )


def build_summary(
    classified: Sequence[ClassifiedSegment],
    reports: Sequence[SegmentReport],
    total_segments: int,
) -> AnalysisSummary:
    """Summarise classified segments; *reports* supplies the skip reasons."""
    if total_segments == 0:
        return empty_summary()

    move_counts: dict[str, int] = {}
    category_counts: dict[str, int] = {}
    for seg in classified:
        move_counts[seg.move_type] = move_counts.get(seg.move_type, 0) + 1
        category_counts[seg.move_category] = category_counts.get(seg.move_category, 0) + 1

    skipped_counts: dict[str, int] = {}
    for report in reports:
        if report.outcome is not SegmentOutcome.CLASSIFIED:
            skipped_counts[report.outcome.value] = skipped_counts.get(report.outcome.value, 0) + 1

    average = sum(seg.confidence for seg in classified) / len(classified) if classified else 0.0

    return AnalysisSummary(
        total_segments=total_segments,
        classified_segments=len(classified),
        classification_rate=len(classified) / total_segments,
        average_confidence=round(average, 3),
        move_counts=move_counts,
        category_counts=category_counts,
        top_moves=_ranked(move_counts, 5),
        skipped_counts=skipped_counts,
        narrative=generate_narrative(move_counts, category_counts, len(classified), average),
    )
