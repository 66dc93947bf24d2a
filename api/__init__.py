"""FastAPI router aggregation."""

from fastapi import APIRouter

from api.bot import router as bot_router

api_router = APIRouter(prefix="/api")

api_router.include_router(bot_router, prefix="/bot", tags=["bot"])
