"""Gateway event schemas — transport envelope and decoded domain events.

``events/get`` returns ``{"ok": true, "events": [...]}`` where every event is
``{"eventId": int, "type": str, "payload": {...}}``. The dispatcher first
reads the envelope (so the cursor can always advance), then decodes the
payload into one of the domain events below.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


# ── Transport shapes ───────────────────────────────────────────────────────

class _Transport(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class EventEnvelope(_Transport):
    event_id: int = Field(alias="eventId")
    type: str
    payload: dict = {}


class EventsResponse(_Transport):
    ok: bool = False
    events: list = []
    description: str = ""


class ChatIn(_Transport):
    chat_id: str = Field(alias="chatId")
    type: str = ""


class SenderIn(_Transport):
    user_id: str = Field(alias="userId")
    first_name: str = Field("", alias="firstName")
    last_name: str = Field("", alias="lastName")


class PartIn(_Transport):
    type: str
    payload: dict = {}


class NewMessagePayload(_Transport):
    chat: ChatIn
    sender: SenderIn = Field(alias="from")
    text: str | None = None
    parts: list[PartIn] = []


class CallbackMessageIn(_Transport):
    chat: ChatIn


class CallbackQueryPayload(_Transport):
    query_id: str = Field(alias="queryId")
    callback_data: str = Field("", alias="callbackData")
    sender: SenderIn = Field(alias="from")
    message: CallbackMessageIn


class NewMessageEventIn(_Transport):
    type: Literal["newMessage"]
    payload: NewMessagePayload


class CallbackQueryEventIn(_Transport):
    type: Literal["callbackQuery"]
    payload: CallbackQueryPayload


_KNOWN_TYPES = {"newMessage", "callbackQuery"}

_event_adapter: TypeAdapter = TypeAdapter(
    Annotated[Union[NewMessageEventIn, CallbackQueryEventIn], Field(discriminator="type")]
)


# ── Domain events ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Sender:
    user_id: str
    first_name: str = ""
    last_name: str = ""


@dataclass(frozen=True)
class FileAttachment:
    file_id: str
    caption: str | None = None


@dataclass(frozen=True)
class IncomingMessage:
    chat_id: str
    text: str
    sender: Sender
    file: FileAttachment | None = None


@dataclass(frozen=True)
class CallbackQuery:
    query_id: str
    data: str
    chat_id: str
    user_id: str


def _first_file(parts: list[PartIn]) -> FileAttachment | None:
    for part in parts:
        if part.type == "file" and part.payload.get("fileId"):
            return FileAttachment(
                file_id=str(part.payload["fileId"]),
                caption=part.payload.get("caption"),
            )
    return None


def decode_event(envelope: EventEnvelope) -> IncomingMessage | CallbackQuery | None:
    """Decode an envelope into a domain event.

    Returns None for unrecognized event types and for payloads that do not
    match the expected shape (the latter is logged).
    """
    if envelope.type not in _KNOWN_TYPES:
        return None

    try:
        parsed = _event_adapter.validate_python({"type": envelope.type, "payload": envelope.payload})
    except ValidationError as exc:
        logger.warning("Malformed %s event %s: %s", envelope.type, envelope.event_id, exc)
        return None

    if isinstance(parsed, NewMessageEventIn):
        p = parsed.payload
        return IncomingMessage(
            chat_id=p.chat.chat_id,
            text=p.text or "",
            sender=Sender(p.sender.user_id, p.sender.first_name, p.sender.last_name),
            file=_first_file(p.parts),
        )

    p = parsed.payload
    return CallbackQuery(
        query_id=p.query_id,
        data=p.callback_data,
        chat_id=p.message.chat.chat_id,
        user_id=p.sender.user_id,
    )
