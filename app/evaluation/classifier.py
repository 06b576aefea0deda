"""Transcript classifier — turns messages, orders and case context into signals.

The linguistic judgements (is this message a clinical question? does the note
match the reference?) come from injected collaborators. Everything here is
counting and sequencing over their results.
"""

from __future__ import annotations

import logging
import re
from bisect import bisect_left
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from app.evaluation.errors import ClassificationUnavailableError
from app.evaluation.schemas import (
    CaseContext,
    CAUClassification,
    ClassifiedMessage,
    Difficulty,
    DimensionName,
    Message,
    NecessityTier,
    NoteAlignment,
    Order,
    OrderCategory,
    OrderKeyItem,
)

logger = logging.getLogger(__name__)

CAUClassifierFn = Callable[[str], "CAUClassification | Mapping[str, Any]"]
NoteComparatorFn = Callable[[str, str, CaseContext], "NoteAlignment | str"]

MEANINGFUL_TIERS = (NecessityTier.MUST, NecessityTier.SHOULD)
ESCALATION_CATEGORIES = (OrderCategory.ESCALATION, OrderCategory.BEDSIDE)

_NON_WORD = re.compile(r"[^a-z0-9 ]+")


class CAUCount(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int
    classifications: tuple[ClassifiedMessage, ...]


class TranscriptSignals(BaseModel):
    """Everything the scorer needs, computed once per evaluation."""

    model_config = ConfigDict(frozen=True)

    difficulty: Difficulty
    instability_present: bool
    classifications: tuple[ClassifiedMessage, ...]
    cau_count: int
    redundant_question_count: int
    longest_question_only_streak: int
    first_meaningful_order_position: int | None
    caus_before_first_meaningful_order: int
    first_escalation_position: int | None
    caus_before_first_escalation: int
    orders_by_tier: dict[NecessityTier, tuple[Order, ...]]
    order_count: int
    must_coverage: float
    should_coverage: float
    could_share: float
    must_after_should: bool
    has_redundant_order: bool
    has_contraindicated_order: bool
    note_alignment: NoteAlignment

    @property
    def no_meaningful_activity(self) -> bool:
        return self.cau_count == 0

    @property
    def caus(self) -> tuple[ClassifiedMessage, ...]:
        return tuple(c for c in self.classifications if c.classification.is_cau)


def _normalise(text: str) -> str:
    return " ".join(_NON_WORD.sub(" ", text.lower()).split())


def student_messages(messages: Sequence[Message]) -> list[tuple[int, Message]]:
    """Student turns with their transcript index, in timeline order."""
    indexed = [(i, m) for i, m in enumerate(messages) if m.role == "student"]
    return sorted(indexed, key=lambda pair: pair[1].position)


def _coerce_classification(result: Any, *, index: int, position: int) -> CAUClassification:
    if isinstance(result, CAUClassification):
        return result
    if isinstance(result, Mapping):
        try:
            return CAUClassification.model_validate(result)
        except ValidationError as exc:
            raise ClassificationUnavailableError(
                "Unclassifiable CAU result", index=index, position=position, reason=str(exc)
            ) from exc
    raise ClassificationUnavailableError(
        "Unclassifiable CAU result",
        index=index,
        position=position,
        result_type=type(result).__name__,
    )


def count_caus(messages: Sequence[Message], classify: CAUClassifierFn) -> CAUCount:
    """Classify every student message and count the clinical action units.

    Counterpart messages are never passed to the classifier. Messages that
    could have been merged with a neighbour are still classified separately.
    A question repeating an earlier student question word for word is marked
    redundant whatever the classifier said.
    """
    seen_questions: set[str] = set()
    results: list[ClassifiedMessage] = []

    for index, message in student_messages(messages):
        try:
            raw = classify(message.text)
        except ClassificationUnavailableError:
            raise
        except Exception as exc:
            raise ClassificationUnavailableError(
                "CAU classifier failed", index=index, position=message.position
            ) from exc

        classification = _coerce_classification(raw, index=index, position=message.position)
        if classification.is_question:
            key = _normalise(message.text)
            if key in seen_questions and not classification.redundant:
                classification = classification.model_copy(update={"redundant": True})
            seen_questions.add(key)

        results.append(
            ClassifiedMessage(index=index, position=message.position, classification=classification)
        )

    count = sum(1 for r in results if r.classification.is_cau)
    return CAUCount(count=count, classifications=tuple(results))


def _order_in_range(order_positions: list[int], start: int, end: int) -> bool:
    i = bisect_left(order_positions, start)
    return i < len(order_positions) and order_positions[i] < end


def longest_question_only_streak(
    classifications: Sequence[ClassifiedMessage], orders: Sequence[Order] = ()
) -> int:
    """Longest run of consecutive question-only CAUs with no order placed in between.

    An order shares the timeline with messages; an order at the same position as
    a message counts as placed right after it. Acknowledgements neither extend
    nor break a run.
    """
    order_positions = sorted(o.position for o in orders)
    longest = current = 0
    previous: int | None = None

    for item in sorted(classifications, key=lambda c: c.position):
        if not item.classification.is_cau:
            continue
        if previous is not None and _order_in_range(order_positions, previous, item.position):
            current = 0
        if item.classification.is_question_only:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
        previous = item.position

    return longest


def _first_position(orders: Sequence[Order], predicate: Callable[[Order], bool]) -> int | None:
    positions = [o.position for o in orders if predicate(o)]
    return min(positions) if positions else None


def position_of_first_meaningful_order(orders: Sequence[Order]) -> int | None:
    """Timeline position of the first must- or should-tier order, if any."""
    return _first_position(orders, lambda o: o.necessity_tier in MEANINGFUL_TIERS)


def position_of_first_escalation(orders: Sequence[Order]) -> int | None:
    return _first_position(orders, lambda o: o.category in ESCALATION_CATEGORIES)


def caus_before(position: int | None, classifications: Sequence[ClassifiedMessage]) -> int:
    """CAUs sent at or before ``position``; all CAUs if the event never happened."""
    caus = [c for c in classifications if c.classification.is_cau]
    if position is None:
        return len(caus)
    return sum(1 for c in caus if c.position <= position)


def has_redundant_order(orders: Sequence[Order]) -> bool:
    """True if an order (by name and category) is repeated without a status change."""
    seen: set[tuple[str, OrderCategory]] = set()
    for order in sorted(orders, key=lambda o: o.position):
        key = (_normalise(order.name), order.category)
        if key in seen and not order.status_change_justified:
            return True
        seen.add(key)
    return False


def orders_by_necessity_tier(orders: Sequence[Order]) -> dict[NecessityTier, tuple[Order, ...]]:
    ordered = sorted(orders, key=lambda o: o.position)
    return {
        tier: tuple(o for o in ordered if o.necessity_tier == tier) for tier in NecessityTier
    }


def _key_item_placed(item: OrderKeyItem, orders: Sequence[Order]) -> bool:
    name = _normalise(item.name)
    return any(
        _normalise(o.name) == name and (item.category is None or item.category == o.category)
        for o in orders
    )


def _first_key_match(
    order_key: Sequence[OrderKeyItem], orders: Sequence[Order], tier: NecessityTier
) -> int | None:
    """Position of the first placed order matching a ``tier`` item of the key."""
    expected = [item for item in order_key if item.necessity_tier == tier]
    return _first_position(orders, lambda o: any(_key_item_placed(i, [o]) for i in expected))


def tier_coverage(
    order_key: Sequence[OrderKeyItem], orders: Sequence[Order], tier: NecessityTier
) -> float:
    """Share of the key's ``tier`` items that were placed; 1.0 if the key lists none."""
    expected = [item for item in order_key if item.necessity_tier == tier]
    if not expected:
        return 1.0
    placed = sum(1 for item in expected if _key_item_placed(item, orders))
    return placed / len(expected)


def note_alignment(
    student_note: str,
    reference_note: str,
    context: CaseContext,
    compare: NoteComparatorFn,
) -> NoteAlignment:
    """Ask the comparator once and pass its category through."""
    try:
        result = compare(student_note, reference_note, context)
    except ClassificationUnavailableError:
        raise
    except Exception as exc:
        raise ClassificationUnavailableError(
            "Note comparator failed", dimension=DimensionName.NOTE_THOUGHT_PROCESS.value
        ) from exc

    try:
        return NoteAlignment(result)
    except ValueError:
        raise ClassificationUnavailableError(
            "Unclassifiable note alignment",
            dimension=DimensionName.NOTE_THOUGHT_PROCESS.value,
            result=repr(result),
        ) from None


def classify_transcript(
    messages: Sequence[Message],
    orders: Sequence[Order],
    context: CaseContext,
    student_note: str,
    *,
    classify: CAUClassifierFn,
    compare: NoteComparatorFn,
) -> TranscriptSignals:
    cau = count_caus(messages, classify)
    by_tier = orders_by_necessity_tier(orders)

    first_order = position_of_first_meaningful_order(orders)
    first_escalation = position_of_first_escalation(orders)

    # Coverage and sequencing both read tiers from the order key.
    first_must = _first_key_match(context.order_key, orders, NecessityTier.MUST)
    first_should = _first_key_match(context.order_key, orders, NecessityTier.SHOULD)
    must_after_should = (
        first_must is not None and first_should is not None and first_must > first_should
    )

    signals = TranscriptSignals(
        difficulty=context.difficulty,
        instability_present=context.instability_present,
        classifications=cau.classifications,
        cau_count=cau.count,
        redundant_question_count=sum(
            1
            for c in cau.classifications
            if c.classification.is_question and c.classification.redundant
        ),
        longest_question_only_streak=longest_question_only_streak(cau.classifications, orders),
        first_meaningful_order_position=first_order,
        caus_before_first_meaningful_order=caus_before(first_order, cau.classifications),
        first_escalation_position=first_escalation,
        caus_before_first_escalation=caus_before(first_escalation, cau.classifications),
        orders_by_tier=by_tier,
        order_count=len(orders),
        must_coverage=tier_coverage(context.order_key, orders, NecessityTier.MUST),
        should_coverage=tier_coverage(context.order_key, orders, NecessityTier.SHOULD),
        could_share=len(by_tier[NecessityTier.COULD]) / len(orders) if orders else 0.0,
        must_after_should=must_after_should,
        has_redundant_order=has_redundant_order(orders),
        has_contraindicated_order=any(o.contraindicated for o in orders),
        note_alignment=note_alignment(
            student_note, context.reference_note, context, compare
        ),
    )

    if signals.no_meaningful_activity:
        logger.info("No clinical action units in %d messages", len(messages))
    return signals
