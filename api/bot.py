"""Bot debug endpoints — proxy self info and fetch events on demand."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from services.gateway import GatewayError, MessagingGateway

logger = logging.getLogger(__name__)

router = APIRouter()


def get_gateway(request: Request) -> MessagingGateway:
    """FastAPI dependency returning the gateway created at startup."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="Bot gateway is not running.")
    return gateway


@router.get("/self")
async def get_self_info(gateway: MessagingGateway = Depends(get_gateway)):
    try:
        return await gateway.get_self()
    except GatewayError as exc:
        logger.error("Failed to get self info: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc))


@router.get("/events")
async def get_events(
    last_event_id: int = Query(0, alias="lastEventId", ge=0),
    poll_time: int = Query(0, alias="pollTime", ge=0, le=60),
    gateway: MessagingGateway = Depends(get_gateway),
):
    """Fetch events directly. Does not move the dispatcher's cursor."""
    try:
        return await gateway.get_events(last_event_id, poll_time)
    except GatewayError as exc:
        logger.error("Failed to get events: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc))
