"""Redis read-through cache for LLM judgements."""

from __future__ import annotations

import hashlib
import json
import logging

import redis.asyncio as redis

from app.config import settings

logger = logging.getLogger(__name__)


def judgement_key(*parts: str) -> str:
    """Deterministic key from the judged inputs."""
    raw = "|".join(parts)
    return f"judgement:{hashlib.sha256(raw.encode()).hexdigest()}"


async def get_cached_judgement(r: redis.Redis | None, key: str) -> dict | None:
    if r is None:
        return None
    try:
        raw = await r.get(key)
        if raw:
            return json.loads(raw)
    except Exception:
        logger.warning("Redis cache read failed", exc_info=True)
    return None


async def set_cached_judgement(r: redis.Redis | None, key: str, data: dict) -> None:
    if r is None:
        return
    try:
        await r.set(key, json.dumps(data, default=str), ex=settings.JUDGE_CACHE_TTL)
    except Exception:
        logger.warning("Redis cache write failed", exc_info=True)
