"""Scoring engine — classifier → scorer → report assembler.

``score_transcript`` is the pure, synchronous core: identical inputs and
collaborator outputs always produce an identical ``ScoreReport``.
``evaluate_transcript`` is the async entry point used by the API; it
materialises collaborator results first and then calls the core.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone

import redis.asyncio as redis

from app.config import settings
from app.evaluation.classifier import CAUClassifierFn, NoteComparatorFn, classify_transcript
from app.evaluation.errors import ClassificationUnavailableError, RubricConfigurationError
from app.evaluation.judge import judge_transcript
from app.evaluation.lexical import KeywordNoteComparator, LexicalCAUClassifier
from app.evaluation.report import assemble_report, render_feedback_text
from app.evaluation.rubrics import DEFAULT_REGISTRY, RubricRegistry
from app.evaluation.schemas import (
    CAUClassification,
    NoteAlignment,
    PrecomputedScoringRequest,
    ScoreReport,
    ScoringRequest,
    ScoringResponse,
)
from app.evaluation.scorer import TieBreakPolicy, compose, score_dimensions

logger = logging.getLogger(__name__)


def configured_tie_break() -> TieBreakPolicy:
    try:
        return TieBreakPolicy(settings.SCORING_TIE_BREAK)
    except ValueError:
        raise RubricConfigurationError(
            "Unknown tie-break policy", policy=settings.SCORING_TIE_BREAK
        ) from None


def score_transcript(
    request: ScoringRequest,
    cau_classifier: CAUClassifierFn,
    note_comparator: NoteComparatorFn,
    *,
    registry: RubricRegistry = DEFAULT_REGISTRY,
    tie_break: TieBreakPolicy = TieBreakPolicy.PREFER_LOWER,
) -> ScoreReport:
    """Score one transcript with the given collaborators."""
    signals = classify_transcript(
        request.messages,
        request.orders,
        request.case_context,
        request.student_note,
        classify=cau_classifier,
        compare=note_comparator,
    )
    scores = score_dimensions(signals, registry, tie_break)
    composites = compose(scores, no_meaningful_activity=signals.no_meaningful_activity)
    return assemble_report(scores, composites, request.case_context, registry)


def precomputed_classifier(classifications: Mapping[str, CAUClassification]) -> CAUClassifierFn:
    """A CAU classifier that answers from already-materialised results."""

    def classify(text: str) -> CAUClassification:
        try:
            return classifications[text]
        except KeyError:
            raise ClassificationUnavailableError(
                "No classification for message", text=text[:80]
            ) from None

    return classify


def fixed_alignment(alignment: NoteAlignment) -> NoteComparatorFn:
    def compare(student_note, reference_note, context) -> NoteAlignment:
        return alignment

    return compare


def score_precomputed(
    request: PrecomputedScoringRequest,
    *,
    registry: RubricRegistry = DEFAULT_REGISTRY,
    tie_break: TieBreakPolicy = TieBreakPolicy.PREFER_LOWER,
) -> ScoreReport:
    """Score with caller-supplied classifications keyed by message position.

    Classification is a function of message text, so every student message
    needs exactly one entry and messages sharing a text must share it.
    Repeats are still marked redundant by the classifier.
    """
    by_position = {c.position: c.classification for c in request.classifications}
    student_positions = {m.position for m in request.messages if m.role == "student"}
    unmatched = sorted(set(by_position) - student_positions)
    if unmatched:
        raise ClassificationUnavailableError(
            "Classification supplied for a position with no student message",
            positions=unmatched,
        )

    by_text: dict[str, CAUClassification] = {}
    first_position: dict[str, int] = {}
    for index, message in enumerate(request.messages):
        if message.role != "student":
            continue
        if message.position not in by_position:
            raise ClassificationUnavailableError(
                "No classification supplied for student message",
                index=index,
                position=message.position,
            )
        supplied = by_position[message.position]
        if message.text in by_text and by_text[message.text] != supplied:
            raise ClassificationUnavailableError(
                "Conflicting classifications for identical message text",
                index=index,
                position=message.position,
                first_position=first_position[message.text],
            )
        by_text.setdefault(message.text, supplied)
        first_position.setdefault(message.text, message.position)

    return score_transcript(
        request,
        precomputed_classifier(by_text),
        fixed_alignment(request.note_alignment),
        registry=registry,
        tie_break=tie_break,
    )


async def evaluate_transcript(
    request: ScoringRequest,
    r: redis.Redis | None = None,
) -> ScoringResponse:
    """Main entry point: judge the transcript, then score it."""
    token_usage: dict = {}
    if settings.JUDGE_BACKEND == "lexical":
        classify: CAUClassifierFn = LexicalCAUClassifier()
        compare: NoteComparatorFn = KeywordNoteComparator()
        model_used = "lexical"
    else:
        judgement = await judge_transcript(
            request.messages,
            request.case_context,
            request.student_note,
            provider=request.model,
            r=r,
        )
        classify = precomputed_classifier(judgement.classifications)
        compare = fixed_alignment(judgement.note_alignment)
        model_used = judgement.model_used
        token_usage = judgement.token_usage

    report = score_transcript(request, classify, compare, tie_break=configured_tie_break())
    logger.info(
        "Scored session %s: communication=%d mdm=%d",
        request.session_id or "anonymous",
        report.communication_score,
        report.mdm_score,
    )

    return ScoringResponse(
        report=report,
        feedback_text=render_feedback_text(report),
        model_used=model_used,
        timestamp=datetime.now(timezone.utc),
        token_usage=token_usage,
        evaluation_id=str(uuid.uuid4()),
    )
