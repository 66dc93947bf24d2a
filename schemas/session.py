"""Conversation session state — one closed union member per step."""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class TaskDraft(BaseModel):
    """Task fields accumulated while the creation flow is in progress."""

    description: str | None = None
    first_name: str = ""
    last_name: str = ""
    file_id: str | None = None
    file_caption: str | None = None


class AwaitingDescription(BaseModel):
    step: Literal["AWAITING_DESCRIPTION"] = "AWAITING_DESCRIPTION"


class AwaitingUserId(BaseModel):
    step: Literal["AWAITING_USER_ID"] = "AWAITING_USER_ID"
    draft: TaskDraft


class AwaitingTime(BaseModel):
    step: Literal["AWAITING_TIME"] = "AWAITING_TIME"
    draft: TaskDraft
    assignee_id: str


class AwaitingUserIdForTasks(BaseModel):
    step: Literal["AWAITING_USER_ID_FOR_TASKS"] = "AWAITING_USER_ID_FOR_TASKS"


ConversationSession = Annotated[
    Union[AwaitingDescription, AwaitingUserId, AwaitingTime, AwaitingUserIdForTasks],
    Field(discriminator="step"),
]

session_adapter: TypeAdapter = TypeAdapter(ConversationSession)
