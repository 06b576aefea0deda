"""Evaluation API router — /api/v1/evaluate."""

from __future__ import annotations

from datetime import datetime, timezone

import asyncpg
import redis.asyncio as redis
from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_db_pool, get_redis
from app.db import queries
from app.evaluation.engine import configured_tie_break, evaluate_transcript, score_precomputed
from app.evaluation.errors import (
    ClassificationUnavailableError,
    RubricConfigurationError,
    ScoringError,
)
from app.evaluation.report import render_feedback_text
from app.evaluation.rubrics import DEFAULT_REGISTRY, get_rubric
from app.evaluation.schemas import (
    DimensionName,
    PrecomputedScoringRequest,
    ScoringRequest,
    ScoringResponse,
)

router = APIRouter(prefix="/api/v1/evaluate", tags=["evaluation"])


def _http_error(exc: ScoringError) -> HTTPException:
    if isinstance(exc, ClassificationUnavailableError):
        return HTTPException(status_code=502, detail=exc.to_dict())
    return HTTPException(status_code=500, detail=exc.to_dict())


async def _evaluate_and_store(
    body: ScoringRequest, pool: asyncpg.Pool, r: redis.Redis
) -> ScoringResponse:
    try:
        response = await evaluate_transcript(body, r=r)
    except ScoringError as exc:
        raise _http_error(exc) from exc

    await queries.insert_score_report(
        pool, session_id=body.session_id or "anonymous", response=response
    )
    return response


# ── Evaluate ─────────────────────────────────────────────────────────────────


@router.post("/", response_model=ScoringResponse)
async def run_evaluation(
    body: ScoringRequest,
    pool: asyncpg.Pool = Depends(get_db_pool),
    r: redis.Redis = Depends(get_redis),
):
    """Judge and score a transcript, then persist the report."""
    return await _evaluate_and_store(body, pool, r)


@router.post("/batch", response_model=list[ScoringResponse])
async def run_batch_evaluation(
    bodies: list[ScoringRequest],
    pool: asyncpg.Pool = Depends(get_db_pool),
    r: redis.Redis = Depends(get_redis),
):
    """Score several transcripts. Any failure fails the whole batch."""
    return [await _evaluate_and_store(body, pool, r) for body in bodies]


@router.post("/score", response_model=ScoringResponse)
async def score_with_classifications(body: PrecomputedScoringRequest):
    """Score with caller-supplied classifications. No model call, nothing stored."""
    try:
        report = score_precomputed(body, tie_break=configured_tie_break())
    except ClassificationUnavailableError as exc:
        # The caller supplied the classifications, so a gap is a bad request.
        raise HTTPException(status_code=422, detail=exc.to_dict()) from exc
    except ScoringError as exc:
        raise _http_error(exc) from exc

    return ScoringResponse(
        report=report,
        feedback_text=render_feedback_text(report),
        model_used="precomputed",
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/{evaluation_id}", response_model=ScoringResponse)
async def get_evaluation(
    evaluation_id: str,
    pool: asyncpg.Pool = Depends(get_db_pool),
):
    """Retrieve a stored score report by ID."""
    row = await queries.get_score_report(pool, evaluation_id)
    if not row:
        raise HTTPException(status_code=404, detail="Evaluation not found")
    return queries.row_to_response(row)


@router.get("/by-session/{session_id}", response_model=list[ScoringResponse])
async def get_evaluations_for_session(
    session_id: str,
    pool: asyncpg.Pool = Depends(get_db_pool),
):
    rows = await queries.list_score_reports_by_session(pool, session_id)
    if not rows:
        raise HTTPException(status_code=404, detail=f"No evaluations for session {session_id}")
    return [queries.row_to_response(row) for row in rows]


# ── Rubrics ──────────────────────────────────────────────────────────────────


@router.get("/rubrics/list")
async def list_rubrics():
    """List the rubric dimensions and their point ranges."""
    return {
        "version": DEFAULT_REGISTRY.version,
        "dimensions": [
            {
                "dimension": rubric.dimension.value,
                "label": rubric.label,
                "composite": rubric.composite.value,
                "points": [e.points for e in DEFAULT_REGISTRY.all_entries(rubric.dimension)],
            }
            for rubric in DEFAULT_REGISTRY.dimensions
        ],
    }


@router.get("/rubrics/{dimension}")
async def get_rubric_detail(dimension: str):
    """Get the full rubric definition for one dimension."""
    try:
        rubric = get_rubric(dimension)
    except RubricConfigurationError:
        raise HTTPException(status_code=404, detail=f"Unknown dimension: {dimension}") from None

    detail = rubric.model_dump(mode="json")
    if rubric.dimension == DimensionName.EFFICIENCY_DEDUCTION:
        detail["thresholds"] = {
            tier.value: t.model_dump() for tier, t in DEFAULT_REGISTRY.efficiency.items()
        }
    elif rubric.dimension == DimensionName.LABS_ORDERS_QUALITY:
        detail["thresholds"] = DEFAULT_REGISTRY.labs_orders.model_dump()
    return detail
