"""Tests for transcript classification: CAU counting, streaks and order signals."""

from __future__ import annotations

import pytest

from app.evaluation.classifier import (
    caus_before,
    classify_transcript,
    count_caus,
    has_redundant_order,
    longest_question_only_streak,
    note_alignment,
    orders_by_necessity_tier,
    position_of_first_escalation,
    position_of_first_meaningful_order,
    tier_coverage,
)
from app.evaluation.errors import ClassificationUnavailableError
from app.evaluation.schemas import Message, NecessityTier, NoteAlignment, Order


def student(text: str, position: int) -> Message:
    return Message(role="student", text=text, position=position)


def nurse(text: str, position: int) -> Message:
    return Message(role="counterpart", text=text, position=position)


def order(name: str, tier: str, position: int, category: str = "lab", **kw) -> Order:
    return Order(name=name, category=category, necessity_tier=tier, position=position, **kw)


class TestCountCAUs:
    def test_counterpart_messages_never_classified(self, stub_classifier, cau):
        classify = stub_classifier({"Vitals?": cau.question})
        result = count_caus([nurse("BP 80/50", 0), student("Vitals?", 1)], classify)
        assert result.count == 1
        assert classify.calls == ["Vitals?"]

    def test_acknowledgements_not_counted(self, stub_classifier, cau):
        classify = stub_classifier({"ok": cau.ack, "Give fluids": cau.instruction})
        result = count_caus([student("ok", 0), student("Give fluids", 1)], classify)
        assert result.count == 1
        assert len(result.classifications) == 2

    def test_split_messages_count_separately(self, stub_classifier, cau):
        classify = stub_classifier({"Start fluids": cau.instruction, "and cultures": cau.instruction})
        result = count_caus([student("Start fluids", 0), student("and cultures", 1)], classify)
        assert result.count == 2

    def test_timeline_order(self, stub_classifier, cau):
        classify = stub_classifier({"a?": cau.question, "b?": cau.question})
        result = count_caus([student("b?", 5), student("a?", 2)], classify)
        assert [c.position for c in result.classifications] == [2, 5]
        assert [c.index for c in result.classifications] == [1, 0]

    def test_repeated_question_marked_redundant(self, stub_classifier, cau):
        classify = stub_classifier({"Vitals?": cau.question, "vitals ?": cau.question})
        result = count_caus([student("Vitals?", 0), student("vitals ?", 1)], classify)
        first, second = result.classifications
        assert not first.classification.redundant
        assert second.classification.redundant

    def test_empty_transcript(self, stub_classifier):
        result = count_caus([], stub_classifier({}))
        assert result.count == 0
        assert result.classifications == ()

    def test_collaborator_failure_reports_index(self):
        def broken(text):
            raise TimeoutError("judge timed out")

        with pytest.raises(ClassificationUnavailableError) as exc_info:
            count_caus([nurse("hi", 0), student("Vitals?", 3)], broken)
        assert exc_info.value.details == {"index": 1, "position": 3}

    def test_unclassifiable_mapping(self):
        with pytest.raises(ClassificationUnavailableError):
            count_caus([student("hmm", 0)], lambda text: {"is_question": False})

    def test_contradictory_mapping(self):
        bad = {"is_question": True, "is_acknowledgement_only": True}
        with pytest.raises(ClassificationUnavailableError):
            count_caus([student("ok?", 0)], lambda text: bad)

    def test_mapping_result_accepted(self):
        result = count_caus([student("Vitals?", 0)], lambda text: {"is_question": True})
        assert result.count == 1

    def test_unexpected_result_type(self):
        with pytest.raises(ClassificationUnavailableError):
            count_caus([student("Vitals?", 0)], lambda text: "question")


class TestQuestionStreak:
    def _classified(self, stub_classifier, cau, kinds: list[str]):
        table = {f"m{i}": getattr(cau, k) for i, k in enumerate(kinds)}
        messages = [student(f"m{i}", i) for i in range(len(kinds))]
        return count_caus(messages, stub_classifier(table)).classifications

    def test_consecutive_questions(self, stub_classifier, cau):
        items = self._classified(stub_classifier, cau, ["question"] * 4)
        assert longest_question_only_streak(items) == 4

    def test_instruction_breaks_run(self, stub_classifier, cau):
        items = self._classified(
            stub_classifier, cau, ["question", "question", "instruction", "question"]
        )
        assert longest_question_only_streak(items) == 2

    def test_acknowledgement_does_not_break_run(self, stub_classifier, cau):
        items = self._classified(stub_classifier, cau, ["question", "ack", "question"])
        assert longest_question_only_streak(items) == 2

    def test_order_breaks_run(self, stub_classifier, cau):
        items = self._classified(stub_classifier, cau, ["question"] * 4)
        assert longest_question_only_streak(items, [order("CBC", "could", 1)]) == 2

    def test_order_at_message_position_counts_after_it(self, stub_classifier, cau):
        items = self._classified(stub_classifier, cau, ["question"] * 3)
        assert longest_question_only_streak(items, [order("CBC", "could", 0)]) == 2

    def test_no_caus(self):
        assert longest_question_only_streak([]) == 0


class TestOrderSignals:
    def test_first_meaningful_order(self):
        orders = [order("TSH", "could", 1), order("Lactate", "must", 4), order("CXR", "should", 3)]
        assert position_of_first_meaningful_order(orders) == 3

    def test_first_meaningful_order_none(self):
        assert position_of_first_meaningful_order([]) is None
        assert position_of_first_meaningful_order([order("TSH", "could", 1)]) is None

    def test_first_escalation(self):
        orders = [
            order("Lactate", "must", 1),
            order("Rapid response", "must", 6, category="escalation"),
        ]
        assert position_of_first_escalation(orders) == 6

    def test_caus_before(self, stub_classifier, cau):
        items = count_caus(
            [student("a", 0), student("b", 2), student("c", 4)],
            stub_classifier({"a": cau.question, "b": cau.ack, "c": cau.instruction}),
        ).classifications
        assert caus_before(2, items) == 1
        assert caus_before(4, items) == 2
        assert caus_before(None, items) == 2

    def test_redundant_order(self):
        orders = [order("Lactate", "must", 1), order("lactate", "must", 5)]
        assert has_redundant_order(orders)

    def test_justified_repeat_not_redundant(self):
        orders = [
            order("Lactate", "must", 1),
            order("Lactate", "must", 5, status_change_justified=True),
        ]
        assert not has_redundant_order(orders)

    def test_same_name_different_category_not_redundant(self):
        orders = [order("Potassium", "should", 1), order("Potassium", "should", 2, category="medication")]
        assert not has_redundant_order(orders)

    def test_orders_by_tier(self):
        orders = [order("B", "must", 3), order("A", "must", 1), order("C", "could", 2)]
        by_tier = orders_by_necessity_tier(orders)
        assert set(by_tier) == set(NecessityTier)
        assert [o.name for o in by_tier[NecessityTier.MUST]] == ["A", "B"]
        assert by_tier[NecessityTier.MUSTNT] == ()

    def test_tier_coverage(self, case_context):
        orders = [order("lactate", "must", 1)]
        assert tier_coverage(case_context.order_key, orders, NecessityTier.MUST) == 0.5
        assert tier_coverage(case_context.order_key, orders, NecessityTier.COULD) == 1.0


class TestNoteAlignment:
    def test_comparator_called_once(self, stub_comparator, case_context):
        compare = stub_comparator("partial")
        assert note_alignment("note", "ref", case_context, compare) == NoteAlignment.PARTIAL
        assert compare.calls == 1

    def test_unclassifiable_result(self, stub_comparator, case_context):
        with pytest.raises(ClassificationUnavailableError) as exc_info:
            note_alignment("note", "ref", case_context, stub_comparator("mostly"))
        assert exc_info.value.details["dimension"] == "note_thought_process"

    def test_comparator_failure(self, case_context):
        def broken(*args):
            raise ConnectionError("down")

        with pytest.raises(ClassificationUnavailableError):
            note_alignment("note", "ref", case_context, broken)


class TestClassifyTranscript:
    def test_empty_messages_reported_not_raised(self, stub_classifier, stub_comparator, case_context):
        compare = stub_comparator()
        signals = classify_transcript(
            [], [], case_context, "", classify=stub_classifier({}), compare=compare
        )
        assert signals.no_meaningful_activity
        assert signals.first_meaningful_order_position is None
        assert compare.calls == 1

    def test_must_after_should(self, stub_classifier, stub_comparator, case_context):
        orders = [order("Chest X-ray", "should", 1, category="imaging"), order("Lactate", "must", 2)]
        signals = classify_transcript(
            [], orders, case_context, "", classify=stub_classifier({}), compare=stub_comparator()
        )
        assert signals.must_after_should
        assert signals.must_coverage == 0.5
        assert signals.should_coverage == 0.5
