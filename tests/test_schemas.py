"""Tests for Pydantic schema validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.evaluation.schemas import (
    CaseContext,
    CAUClassification,
    Difficulty,
    Message,
    NecessityTier,
    Order,
    OrderCategory,
    ScoreReport,
    ScoringRequest,
)


class TestCaseContext:
    def test_validates(self, case_context_data: dict):
        context = CaseContext.model_validate(case_context_data)
        assert context.difficulty == Difficulty.INTERMEDIATE
        assert context.order_key[2].category == OrderCategory.IMAGING

    @pytest.mark.parametrize(
        "legacy,expected",
        [("easy", Difficulty.BEGINNER), ("Medium", Difficulty.INTERMEDIATE), ("hard", Difficulty.ADVANCED)],
    )
    def test_legacy_difficulty_names(self, legacy, expected):
        assert CaseContext(difficulty=legacy).difficulty == expected

    def test_unknown_difficulty(self):
        with pytest.raises(ValidationError):
            CaseContext(difficulty="expert")

    def test_defaults(self):
        context = CaseContext()
        assert context.order_key == []
        assert not context.instability_present


class TestMessagesAndOrders:
    def test_unknown_role(self):
        with pytest.raises(ValidationError):
            Message(role="nurse", text="BP 90/60", position=0)

    def test_negative_position(self):
        with pytest.raises(ValidationError):
            Message(role="student", text="BP?", position=-1)

    def test_order_defaults(self):
        order = Order(name="Lactate", necessity_tier="must", position=2)
        assert order.category == OrderCategory.OTHER
        assert order.necessity_tier == NecessityTier.MUST
        assert not order.contraindicated
        assert order.time_offset_minutes is None

    def test_unknown_tier(self):
        with pytest.raises(ValidationError):
            Order(name="Lactate", necessity_tier="maybe", position=2)

    def test_frozen(self):
        message = Message(role="student", text="BP?", position=0)
        with pytest.raises(ValidationError):
            message.text = "HR?"


class TestCAUClassification:
    def test_acknowledgement(self):
        ack = CAUClassification(is_acknowledgement_only=True)
        assert not ack.is_cau
        assert not ack.is_directive

    def test_question_with_instruction_is_not_question_only(self):
        c = CAUClassification(is_question=True, is_instruction=True)
        assert c.is_cau
        assert not c.is_question_only

    def test_ack_with_clinical_content_rejected(self):
        with pytest.raises(ValidationError):
            CAUClassification(is_action=True, is_acknowledgement_only=True)

    def test_empty_classification_rejected(self):
        with pytest.raises(ValidationError):
            CAUClassification()


class TestRequestAndReport:
    def test_request_defaults(self, case_context_data: dict):
        request = ScoringRequest.model_validate(
            {"messages": [], "case_context": case_context_data}
        )
        assert request.orders == []
        assert request.student_note == ""
        assert request.model is None

    def test_unknown_model(self, case_context_data: dict):
        with pytest.raises(ValidationError):
            ScoringRequest.model_validate(
                {"messages": [], "case_context": case_context_data, "model": "llama"}
            )

    def test_scores_bounded(self):
        with pytest.raises(ValidationError):
            ScoreReport(
                communication_score=6,
                mdm_score=0,
                communication_raw=6,
                mdm_raw=0,
                dimensions={},
                summary="",
                recommendations=[],
            )
