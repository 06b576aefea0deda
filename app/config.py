"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


class Settings:
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o")
    ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
    ANTHROPIC_MODEL: str = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")
    # "llm" calls the judge; "lexical" scores offline with pattern matching.
    JUDGE_BACKEND: str = os.getenv("JUDGE_BACKEND", "llm")
    JUDGE_PROVIDER: str = os.getenv("JUDGE_PROVIDER", "claude")
    JUDGE_CACHE_TTL: int = int(os.getenv("JUDGE_CACHE_TTL", "3600"))
    SCORING_TIE_BREAK: str = os.getenv("SCORING_TIE_BREAK", "prefer_lower")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://localhost:5432/casesim")
    DB_POOL_MIN_SIZE: int = int(os.getenv("DB_POOL_MIN_SIZE", "2"))
    DB_POOL_MAX_SIZE: int = int(os.getenv("DB_POOL_MAX_SIZE", "10"))
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
