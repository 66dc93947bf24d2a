"""FastAPI application entry point.

Besides the HTTP surface, the lifespan wires the bot: gateway client,
Redis session store, repository, conversation engine, and the two background
jobs (event polling and reminder sweep) on APScheduler.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import api_router
from api.health import router as health_router
from config import settings
from database import Base, engine
from services.conversation import ConversationEngine
from services.dispatcher import EventDispatcher
from services.gateway import MessagingGateway
from services.reminders import ReminderScheduler
from services.repository import TaskRepository
from services.scheduling import build_scheduler
from services.session_store import SessionStore

__version__ = "1.0.0"

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure unified logging before anything else
    from logging_config import setup_logging
    setup_logging("Server")

    if settings.POLLING_ENABLED and not settings.VK_BOT_TOKEN:
        raise RuntimeError("VK_BOT_TOKEN must be set when POLLING_ENABLED is true.")

    # Startup: create tables if they don't exist
    Base.metadata.create_all(bind=engine)

    gateway = MessagingGateway(settings.BOT_API_URL, settings.VK_BOT_TOKEN, settings.BOT_HTTP_TIMEOUT)
    redis_client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    sessions = SessionStore(redis_client, ttl=settings.SESSION_TTL_SECONDS)
    repository = TaskRepository()

    if settings.FLUSH_SESSIONS_ON_START:
        try:
            removed = await sessions.clear()
            logger.info("Cleared %d conversation sessions", removed)
        except Exception:
            logger.exception("Failed to clear conversation sessions on startup")

    conversation = ConversationEngine(gateway, sessions, repository)
    dispatcher = EventDispatcher(
        gateway,
        conversation,
        poll_time=settings.POLL_TIMEOUT_SECONDS,
        checkpoint=repository if settings.EVENT_CURSOR_CHECKPOINT else None,
    )
    reminders = ReminderScheduler(gateway, repository)

    scheduler = None
    if settings.POLLING_ENABLED:
        try:
            await dispatcher.restore()
        except Exception:
            logger.exception("Failed to restore event cursor, starting from 0")
        scheduler = build_scheduler(
            dispatcher,
            reminders,
            poll_interval=settings.POLL_INTERVAL_SECONDS,
            reminder_interval=settings.REMINDER_INTERVAL_SECONDS,
        )
        scheduler.start()
    else:
        logger.info("Polling disabled; HTTP endpoints only")

    app.state.gateway = gateway

    yield

    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
    await gateway.close()
    await redis_client.aclose()
    app.state.gateway = None


app = FastAPI(title="Task Delegation Bot", version=__version__, lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.CORS_CREDENTIALS,
    allow_methods=settings.cors_methods,
    allow_headers=settings.cors_allowed_headers,
)

app.include_router(health_router)
app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=settings.APP_HOST, port=settings.APP_PORT, log_config=None)
