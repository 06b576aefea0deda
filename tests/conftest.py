"""Shared test fixtures."""

from __future__ import annotations

from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.evaluation.router import router as evaluation_router
from app.evaluation.schemas import CaseContext, CAUClassification, NoteAlignment, QuestionQuality


class StubClassifier:
    """CAU classifier answering from a text → classification table."""

    def __init__(self, table: dict[str, CAUClassification]):
        self.table = table
        self.calls: list[str] = []

    def __call__(self, text: str) -> CAUClassification:
        self.calls.append(text)
        return self.table[text]


class StubComparator:
    def __init__(self, result: NoteAlignment | str = NoteAlignment.NONE):
        self.result = result
        self.calls = 0

    def __call__(self, student_note, reference_note, context):
        self.calls += 1
        return self.result


@pytest.fixture()
def case_context_data() -> dict:
    return {
        "expected_diagnosis": "Septic shock",
        "expected_treatment": ["fluid bolus", "blood cultures", "broad spectrum antibiotics"],
        "case_goals": "Recognize sepsis early and start resuscitation.",
        "difficulty": "intermediate",
        "reference_note": "Septic shock from urinary source. Fluid bolus, cultures, antibiotics.",
        "instability_present": False,
        "order_key": [
            {"name": "Lactate", "category": "lab", "necessity_tier": "must"},
            {"name": "Blood cultures", "category": "lab", "necessity_tier": "must"},
            {"name": "Chest X-ray", "category": "imaging", "necessity_tier": "should"},
            {"name": "Urinalysis", "category": "lab", "necessity_tier": "should"},
        ],
    }


@pytest.fixture()
def case_context(case_context_data: dict) -> CaseContext:
    return CaseContext.model_validate(case_context_data)


@pytest.fixture()
def cau() -> SimpleNamespace:
    """Canonical collaborator results."""
    return SimpleNamespace(
        question=CAUClassification(is_question=True, question_quality=QuestionQuality.TARGETED),
        poor_question=CAUClassification(
            is_question=True, question_quality=QuestionQuality.POORLY_FORMED
        ),
        instruction=CAUClassification(is_instruction=True),
        closed_loop=CAUClassification(is_instruction=True, closed_loop=True),
        team=CAUClassification(is_instruction=True, closed_loop=True, shares_rationale=True),
        action=CAUClassification(is_action=True),
        ack=CAUClassification(is_acknowledgement_only=True),
    )


@pytest.fixture()
def stub_classifier():
    return StubClassifier


@pytest.fixture()
def stub_comparator():
    return StubComparator


@pytest.fixture()
def mock_pool():
    return AsyncMock()


@pytest.fixture()
def mock_redis():
    r = AsyncMock()
    r.get = AsyncMock(return_value=None)
    r.set = AsyncMock()
    return r


@pytest.fixture()
def client(mock_pool, mock_redis) -> TestClient:
    @asynccontextmanager
    async def noop_lifespan(app: FastAPI):
        yield

    test_app = FastAPI(lifespan=noop_lifespan)
    test_app.include_router(evaluation_router)
    test_app.state.db_pool = mock_pool
    test_app.state.redis = mock_redis

    with TestClient(test_app, raise_server_exceptions=True) as c:
        yield c
