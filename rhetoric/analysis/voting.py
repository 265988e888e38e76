"""Weighted nearest-neighbour voting over exemplar matches."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from rhetoric.analysis.models import AlternativeClassification
from rhetoric.exemplars.models import Match

MAX_SCORE_WEIGHT = 0.7
MEAN_SCORE_WEIGHT = 0.3


@dataclass
class _Tally:
    category: str
    total_score: float = 0.0
    count: int = 0
    max_score: float = 0.0


@dataclass
class VoteResult:
    """Outcome of one vote.

    ``ranked`` holds every eligible move type, best first. ``winner`` is
    ``ranked[0]`` when it clears the threshold; otherwise ``None`` and the
    segment is dropped rather than misclassified.
    """

    winner: AlternativeClassification | None
    alternatives: list[AlternativeClassification] = field(default_factory=list)
    ranked: list[AlternativeClassification] = field(default_factory=list)


def blended_score(max_score: float, mean_score: float) -> float:
    return round(max_score * MAX_SCORE_WEIGHT + mean_score * MEAN_SCORE_WEIGHT, 3)


def vote(
    matches: Sequence[Match],
    type_counts: Mapping[str, int],
    min_exemplars_per_type: int,
    confidence_threshold: float,
    max_alternatives: int = 3,
) -> VoteResult:
    """Pick a move type from *matches*.

    Move types with fewer than *min_exemplars_per_type* exemplars in the
    collection (per *type_counts*) take no part. Each remaining type scores
    ``0.7 * best similarity + 0.3 * mean similarity``, rounded to three
    decimals. Ties keep the order in which the types were first matched.

    A type's category is the category of the last match seen for it, so a
    type whose exemplars disagree on category reports whichever came last.
    """
    tallies: dict[str, _Tally] = {}
    for match in matches:
        move_type = match.exemplar.move_type
        if type_counts.get(move_type, 0) < min_exemplars_per_type:
            continue

        tally = tallies.setdefault(move_type, _Tally(category=match.exemplar.move_category))
        tally.category = match.exemplar.move_category
        tally.total_score += match.similarity
        tally.count += 1
        tally.max_score = max(tally.max_score, match.similarity)

    ranked = [
        AlternativeClassification(
            move_type=move_type,
            category=tally.category,
            confidence=blended_score(tally.max_score, tally.total_score / tally.count),
        )
        for move_type, tally in tallies.items()
    ]
    ranked.sort(key=lambda c: c.confidence, reverse=True)

    if not ranked or ranked[0].confidence < confidence_threshold:
        return VoteResult(winner=None, alternatives=[], ranked=ranked)

    return VoteResult(
        winner=ranked[0],
        alternatives=ranked[1 : 1 + max_alternatives],
        ranked=ranked,
    )
