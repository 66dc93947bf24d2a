"""EventDispatcher — long-poll the gateway and route events to the engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import ValidationError

from logging_config import event_id_var
from schemas.events import CallbackQuery, EventEnvelope, EventsResponse, IncomingMessage, decode_event
from services.conversation import ConversationEngine
from services.gateway import GatewayError, MessagingGateway
from services.repository import TaskRepository

logger = logging.getLogger(__name__)

CURSOR_NAME = "events"


@dataclass
class DispatcherState:
    """Polling watermark: id of the last event that was fully dispatched."""

    last_event_id: int = 0


class EventDispatcher:
    def __init__(
        self,
        gateway: MessagingGateway,
        engine: ConversationEngine,
        poll_time: int = 3,
        state: DispatcherState | None = None,
        checkpoint: TaskRepository | None = None,
    ):
        self._gateway = gateway
        self._engine = engine
        self._poll_time = poll_time
        self.state = state or DispatcherState()
        self._checkpoint = checkpoint

    async def restore(self) -> None:
        """Load the durable cursor, when checkpointing is enabled."""
        if self._checkpoint is None:
            return
        self.state.last_event_id = await self._checkpoint.load_cursor(CURSOR_NAME)
        logger.info("Restored event cursor at %d", self.state.last_event_id)

    async def tick(self) -> int:
        """Poll once and dispatch the returned batch in order.

        Returns the number of events whose processing completed. A failed
        dispatch leaves the cursor before that event, so it is delivered
        again on the next tick.
        """
        start = self.state.last_event_id
        logger.debug("Polling events after %d", start)
        try:
            data = await self._gateway.get_events(start, self._poll_time)
        except GatewayError:
            logger.exception("Error polling events")
            return 0

        try:
            response = EventsResponse.model_validate(data)
        except ValidationError:
            logger.error("Unexpected events response: %r", data)
            return 0
        if not response.ok:
            logger.error("Events request rejected: %s", response.description or data)
            return 0

        processed = 0
        for raw in response.events:
            try:
                envelope = EventEnvelope.model_validate(raw)
            except ValidationError:
                logger.warning("Skipping event without id/type: %r", raw)
                continue

            token = event_id_var.set(str(envelope.event_id))
            try:
                await self._dispatch(envelope)
            except Exception:
                logger.exception("Error dispatching event %d", envelope.event_id)
                break
            finally:
                event_id_var.reset(token)

            self.state.last_event_id = envelope.event_id
            processed += 1

        if self._checkpoint is not None and self.state.last_event_id != start:
            try:
                await self._checkpoint.save_cursor(CURSOR_NAME, self.state.last_event_id)
            except Exception:
                logger.exception("Failed to checkpoint event cursor")
        return processed

    async def _dispatch(self, envelope: EventEnvelope) -> None:
        logger.info("New event %d (%s)", envelope.event_id, envelope.type)
        event = decode_event(envelope)
        if isinstance(event, IncomingMessage):
            await self._engine.handle_message(event)
        elif isinstance(event, CallbackQuery):
            await self._engine.handle_callback(event)
