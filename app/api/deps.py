"""FastAPI dependency injection helpers."""

from __future__ import annotations

from typing import AsyncGenerator

import asyncpg
import redis.asyncio as redis
from fastapi import Request


async def get_db_pool(request: Request) -> asyncpg.Pool:
    return request.app.state.db_pool


async def get_redis(request: Request) -> AsyncGenerator[redis.Redis | None, None]:
    # Judgement caching is optional; without a client every request calls the judge.
    r: redis.Redis | None = getattr(request.app.state, "redis", None)
    yield r
