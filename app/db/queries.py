"""Raw SQL query functions for the score_reports table."""

from __future__ import annotations

import json
import uuid
from pathlib import Path

import asyncpg

from app.evaluation.schemas import ScoringResponse


async def init_schema(pool: asyncpg.Pool) -> None:
    sql = (Path(__file__).parent / "schema.sql").read_text()
    async with pool.acquire() as conn:
        await conn.execute(sql)


async def insert_score_report(
    pool: asyncpg.Pool,
    *,
    session_id: str,
    response: ScoringResponse,
) -> None:
    async with pool.acquire() as conn:
        await conn.execute(
            """
            INSERT INTO score_reports (evaluation_id, session_id, communication_score, mdm_score,
                                       report, feedback_text, model_used, token_usage, created_at)
            VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7, $8::jsonb, $9)
            """,
            uuid.UUID(response.evaluation_id),
            session_id,
            response.report.communication_score,
            response.report.mdm_score,
            response.report.model_dump_json(),
            response.feedback_text,
            response.model_used,
            json.dumps(response.token_usage),
            response.timestamp,
        )


async def get_score_report(pool: asyncpg.Pool, evaluation_id: str) -> dict | None:
    try:
        key = uuid.UUID(evaluation_id)
    except ValueError:
        return None
    async with pool.acquire() as conn:
        row = await conn.fetchrow("SELECT * FROM score_reports WHERE evaluation_id = $1", key)
    return dict(row) if row else None


async def list_score_reports_by_session(pool: asyncpg.Pool, session_id: str) -> list[dict]:
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            "SELECT * FROM score_reports WHERE session_id = $1 ORDER BY created_at DESC",
            session_id,
        )
    return [dict(r) for r in rows]


def row_to_response(row: dict) -> ScoringResponse:
    report = row["report"]
    if isinstance(report, str):
        report = json.loads(report)
    token_usage = row["token_usage"]
    if isinstance(token_usage, str):
        token_usage = json.loads(token_usage)
    return ScoringResponse(
        report=report,
        feedback_text=row["feedback_text"],
        model_used=row["model_used"],
        timestamp=row["created_at"],
        token_usage=token_usage,
        evaluation_id=str(row["evaluation_id"]),
    )
