"""Health check endpoint."""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from fastapi import APIRouter
from sqlalchemy import text

from config import settings
from database import SessionLocal

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict:
    """Report Redis and database reachability."""
    redis_ok = False
    try:
        conn = aioredis.from_url(settings.REDIS_URL)
        try:
            redis_ok = bool(await conn.ping())
        finally:
            await conn.aclose()
    except Exception:
        logger.warning("Health check: Redis unreachable", exc_info=True)

    db_ok = False
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        logger.warning("Health check: database unreachable", exc_info=True)

    return {
        "status": "ok" if redis_ok and db_ok else "degraded",
        "redis": redis_ok,
        "database": db_ok,
    }
