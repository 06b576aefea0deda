"""Scorer — selects one rubric entry per dimension and composes the composites."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Sequence
from enum import Enum

from pydantic import BaseModel, ConfigDict

from app.evaluation.classifier import TranscriptSignals
from app.evaluation.errors import RubricConfigurationError
from app.evaluation.rubrics import DEFAULT_REGISTRY, RubricRegistry
from app.evaluation.schemas import (
    DimensionName,
    DimensionScore,
    NecessityTier,
    NoteAlignment,
    QuestionQuality,
)

logger = logging.getLogger(__name__)

SCORE_MIN = 0
SCORE_MAX = 5

COMMUNICATION_DIMENSIONS = (
    DimensionName.INFORMATION_SHARING,
    DimensionName.RESPONSIVE_COMMUNICATION,
    DimensionName.EFFICIENCY_DEDUCTION,
)
MDM_DIMENSIONS = (
    DimensionName.LABS_ORDERS_QUALITY,
    DimensionName.NOTE_THOUGHT_PROCESS,
    DimensionName.SAFETY_DEDUCTION,
)

NOTE_POINTS = {
    NoteAlignment.NONE: 0,
    NoteAlignment.PARTIAL: 1,
    NoteAlignment.ALIGNED: 2,
}


class TieBreakPolicy(str, Enum):
    """How to pick between point values that share the highest vote share."""

    PREFER_LOWER = "prefer_lower"
    PREFER_HIGHER = "prefer_higher"


class CompositeScores(BaseModel):
    model_config = ConfigDict(frozen=True)

    communication_raw: int
    mdm_raw: int
    communication_score: int
    mdm_score: int
    zero_override: bool


def clamp(raw: int, low: int = SCORE_MIN, high: int = SCORE_MAX) -> int:
    return max(low, min(high, raw))


def select_by_share(votes: Sequence[int], policy: TieBreakPolicy = TieBreakPolicy.PREFER_LOWER) -> int:
    """Pick the point value backed by more than half of the votes.

    Without a strict majority the value with the largest share wins; values
    tied on that share are settled by ``policy``. Exactly 50 % is not a
    majority.
    """
    if not votes:
        raise ValueError("select_by_share needs at least one vote")
    tally = Counter(votes)
    for points, count in tally.items():
        if count * 2 > len(votes):
            return points
    best = max(tally.values())
    tied = [points for points, count in tally.items() if count == best]
    return max(tied) if policy == TieBreakPolicy.PREFER_HIGHER else min(tied)


# ── Per-dimension selection ──────────────────────────────────────────────────


def information_sharing_points(signals: TranscriptSignals, policy: TieBreakPolicy) -> int:
    questions = [c.classification for c in signals.caus if c.classification.is_question]
    if not questions:
        return 0
    votes = [
        2 if q.question_quality == QuestionQuality.TARGETED and not q.redundant else 1
        for q in questions
    ]
    return select_by_share(votes, policy)


def responsive_communication_points(signals: TranscriptSignals, policy: TieBreakPolicy) -> int:
    directives = [c.classification for c in signals.caus if c.classification.is_directive]
    if not directives:
        return 0
    votes = []
    for d in directives:
        if d.closed_loop and d.shares_rationale:
            votes.append(3)
        elif d.closed_loop:
            votes.append(2)
        else:
            votes.append(1)
    return select_by_share(votes, policy)


def _band(value: int, mild: int | None, major: int | None) -> int:
    if major is not None and value >= major:
        return -2
    if mild is not None and value >= mild:
        return -1
    return 0


def efficiency_severity(signals: TranscriptSignals, registry: RubricRegistry) -> int:
    """Most severe efficiency band triggered at the case's difficulty."""
    if signals.no_meaningful_activity:
        return 0
    t = registry.efficiency_thresholds(signals.difficulty)
    bands = [
        _band(signals.cau_count, t.cau_count_mild, t.cau_count_major),
        _band(
            signals.redundant_question_count,
            t.redundant_questions_mild,
            t.redundant_questions_major,
        ),
        _band(
            signals.longest_question_only_streak,
            t.question_streak_mild,
            t.question_streak_major,
        ),
    ]
    if (
        t.consolidation_cau_count is not None
        and signals.cau_count >= t.consolidation_cau_count
        and signals.redundant_question_count > 0
    ):
        bands.append(-1)

    escalation_judged = signals.instability_present and (
        t.caus_before_escalation_mild is not None or t.caus_before_escalation_major is not None
    )
    if escalation_judged:
        bands.append(
            _band(
                signals.caus_before_first_escalation,
                t.caus_before_escalation_mild,
                t.caus_before_escalation_major,
            )
        )
    else:
        bands.append(
            _band(
                signals.caus_before_first_meaningful_order,
                t.caus_before_order_mild,
                t.caus_before_order_major,
            )
        )
    return min(bands)


def labs_orders_conditions(
    signals: TranscriptSignals, registry: RubricRegistry
) -> dict[int, bool]:
    t = registry.labs_orders
    placed_meaningful = bool(
        signals.orders_by_tier[NecessityTier.MUST] or signals.orders_by_tier[NecessityTier.SHOULD]
    )
    return {
        3: (
            placed_meaningful
            and signals.must_coverage >= t.high_quality_must_coverage
            and signals.should_coverage >= t.high_quality_should_coverage
            and signals.could_share <= t.high_quality_max_could_share
            and not signals.must_after_should
        ),
        2: placed_meaningful and signals.must_coverage >= t.mixed_must_coverage,
        1: placed_meaningful,
        0: True,
    }


def safety_conditions(signals: TranscriptSignals) -> dict[int, bool]:
    unsafe = signals.has_contraindicated_order or bool(signals.orders_by_tier[NecessityTier.MUSTNT])
    low_yield = signals.has_redundant_order or bool(signals.orders_by_tier[NecessityTier.SHOULDNT])
    return {
        0: not unsafe and not low_yield,
        -1: not unsafe,
        -2: True,
    }


def _walk(
    registry: RubricRegistry,
    dimension: DimensionName,
    holds: Callable[[int], bool],
) -> DimensionScore:
    """Select the highest-points entry whose qualifying condition holds."""
    for entry in registry.all_entries(dimension):
        if holds(entry.points):
            return DimensionScore(
                dimension=dimension,
                points=entry.points,
                criteria=entry.criteria,
                feedback=entry.feedback,
            )
    raise RubricConfigurationError("No rubric entry qualified", dimension=dimension.value)


def score_dimensions(
    signals: TranscriptSignals,
    registry: RubricRegistry = DEFAULT_REGISTRY,
    policy: TieBreakPolicy = TieBreakPolicy.PREFER_LOWER,
) -> dict[DimensionName, DimensionScore]:
    """One DimensionScore per dimension, in rubric order."""
    selected = {
        DimensionName.INFORMATION_SHARING: information_sharing_points(signals, policy),
        DimensionName.RESPONSIVE_COMMUNICATION: responsive_communication_points(signals, policy),
        DimensionName.EFFICIENCY_DEDUCTION: efficiency_severity(signals, registry),
        DimensionName.NOTE_THOUGHT_PROCESS: NOTE_POINTS[signals.note_alignment],
    }
    labs = labs_orders_conditions(signals, registry)
    safety = safety_conditions(signals)

    scores: dict[DimensionName, DimensionScore] = {}
    for dimension in DimensionName:
        if dimension == DimensionName.LABS_ORDERS_QUALITY:
            scores[dimension] = _walk(registry, dimension, lambda p: labs.get(p, False))
        elif dimension == DimensionName.SAFETY_DEDUCTION:
            scores[dimension] = _walk(registry, dimension, lambda p: safety.get(p, False))
        else:
            target = selected[dimension]
            scores[dimension] = _walk(registry, dimension, lambda p, target=target: p == target)

    logger.debug(
        "Selected points: %s", {d.value: s.points for d, s in scores.items()}
    )
    return scores


def compose(
    scores: dict[DimensionName, DimensionScore], *, no_meaningful_activity: bool
) -> CompositeScores:
    communication_raw = sum(scores[d].points for d in COMMUNICATION_DIMENSIONS)
    mdm_raw = sum(scores[d].points for d in MDM_DIMENSIONS)
    if no_meaningful_activity:
        return CompositeScores(
            communication_raw=communication_raw,
            mdm_raw=mdm_raw,
            communication_score=0,
            mdm_score=0,
            zero_override=True,
        )
    return CompositeScores(
        communication_raw=communication_raw,
        mdm_raw=mdm_raw,
        communication_score=clamp(communication_raw),
        mdm_score=clamp(mdm_raw),
        zero_override=False,
    )
