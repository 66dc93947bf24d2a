"""ConversationEngine — per-chat state machine for the task-delegation flow.

Idle chats (no stored session) dispatch on the first word of the message:
``/start``, ``/help``, or "unknown command". ``/start`` also ends any flow in
progress; while a session exists, other messages are interpreted according
to its step:

    AWAITING_DESCRIPTION  → AWAITING_USER_ID → AWAITING_TIME → task created
    AWAITING_USER_ID_FOR_TASKS → report sent

Callback buttons (``create_task``, ``check_user_tasks``, ``watch_tasks``,
``watch_statistics``, ``approve_<id>``, ``reject_<id>``) are handled by
``handle_callback``. Every inbound event produces exactly one reply.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Callable

from logging_config import chat_id_var
from models.task import TaskStatus
from schemas.events import CallbackQuery, IncomingMessage
from schemas.session import (
    AwaitingDescription,
    AwaitingTime,
    AwaitingUserId,
    AwaitingUserIdForTasks,
    ConversationSession,
    TaskDraft,
)
from services import replies
from services.gateway import MessagingGateway
from services.repository import RECENT_TASKS_LIMIT, TaskRepository
from services.session_store import SessionStore

logger = logging.getLogger(__name__)

MAX_REMIND_INTERVAL = 365 * 24 * 60  # one year, in minutes
_DIGITS = re.compile(r"[0-9]+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_contact(text: str) -> str | None:
    """Extract the user id from a shared contact link.

    The id is the last ``/``-separated segment and must contain ``@``,
    e.g. ``https://u.example.com/profile/bob@example.com`` → ``bob@example.com``.
    """
    contact_id = (text or "").strip().split("/")[-1]
    if not contact_id or "@" not in contact_id:
        return None
    return contact_id


def parse_interval(text: str) -> int | None:
    """Parse a reminder interval in minutes.

    Only plain ASCII digits between 1 and ``MAX_REMIND_INTERVAL`` are valid.
    """
    value = (text or "").strip()
    if not _DIGITS.fullmatch(value):
        return None
    minutes = int(value)
    return minutes if 0 < minutes <= MAX_REMIND_INTERVAL else None


def _command(text: str) -> str:
    words = (text or "").split(maxsplit=1)
    return words[0] if words else ""


class ConversationEngine:
    def __init__(
        self,
        gateway: MessagingGateway,
        sessions: SessionStore,
        repository: TaskRepository,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._gateway = gateway
        self._sessions = sessions
        self._repository = repository
        self._clock = clock

    # ── Message path ───────────────────────────────────────────────────────

    async def handle_message(self, message: IncomingMessage) -> None:
        token = chat_id_var.set(message.chat_id)
        try:
            keyboard = None
            # /start abandons any flow in progress
            session = None if _command(message.text) == "/start" else await self._sessions.get(message.chat_id)
            if session is None:
                text, keyboard = await self._handle_command(message)
            else:
                text = await self._handle_step(message, session)
            await self._gateway.send_text(message.chat_id, text, inline_keyboard=keyboard)
        finally:
            chat_id_var.reset(token)

    async def _handle_command(self, message: IncomingMessage) -> tuple[str, list | None]:
        command = _command(message.text)

        if command == "/start":
            await self._sessions.delete(message.chat_id)
            try:
                await self._repository.upsert_user(
                    message.chat_id, message.sender.first_name, message.sender.last_name
                )
            except Exception:
                logger.exception("Failed to register user %s", message.chat_id)
                return replies.GENERIC_ERROR, None
            return replies.WELCOME, replies.main_menu_keyboard()

        if command == "/help":
            return replies.HELP, None

        return replies.UNKNOWN_COMMAND, None

    async def _handle_step(self, message: IncomingMessage, session: ConversationSession) -> str:
        if isinstance(session, AwaitingDescription):
            return await self._on_description(message)
        if isinstance(session, AwaitingUserId):
            return await self._on_assignee(message, session)
        if isinstance(session, AwaitingUserIdForTasks):
            return await self._on_user_for_report(message)
        if isinstance(session, AwaitingTime):
            return await self._on_interval(message, session)
        return replies.UNKNOWN_COMMAND

    async def _on_description(self, message: IncomingMessage) -> str:
        draft = TaskDraft(
            description=message.text or None,
            first_name=message.sender.first_name,
            last_name=message.sender.last_name,
        )
        if message.file:
            draft.file_id = message.file.file_id
            draft.file_caption = message.file.caption
        await self._sessions.set(message.chat_id, AwaitingUserId(draft=draft))
        return replies.ASK_ASSIGNEE_CONTACT

    async def _on_assignee(self, message: IncomingMessage, session: AwaitingUserId) -> str:
        contact_id = parse_contact(message.text)
        if contact_id is None:
            return replies.INVALID_CONTACT

        try:
            user = await self._repository.get_user(contact_id)
        except Exception:
            logger.exception("Failed to look up user %s", contact_id)
            return replies.USER_CHECK_FAILED
        if user is None:
            return replies.USER_NOT_FOUND

        draft = session.draft
        if message.file:
            draft.file_id = message.file.file_id
            draft.file_caption = message.file.caption
        await self._sessions.set(message.chat_id, AwaitingTime(draft=draft, assignee_id=contact_id))
        return replies.ASK_INTERVAL

    async def _on_user_for_report(self, message: IncomingMessage) -> str:
        contact_id = parse_contact(message.text)
        if contact_id is None:
            return replies.INVALID_CONTACT

        try:
            user = await self._repository.get_user(contact_id)
            if user is None:
                return replies.USER_NOT_FOUND
            tasks = await self._repository.list_tasks(assignee_id=contact_id)
            if tasks:
                users = await self._repository.users_by_vk_id([t.assignee_id for t in tasks])
                text = replies.format_task_report(
                    f"Latest {RECENT_TASKS_LIMIT} tasks of {user.display_name}:", tasks, users
                )
            else:
                text = replies.no_user_tasks(user)
        except Exception:
            logger.exception("Failed to load tasks for user %s", contact_id)
            return replies.TASKS_FETCH_FAILED

        await self._sessions.delete(message.chat_id)
        return text

    async def _on_interval(self, message: IncomingMessage, session: AwaitingTime) -> str:
        minutes = parse_interval(message.text)
        if minutes is None:
            return replies.INVALID_INTERVAL

        draft = session.draft
        try:
            task = await self._repository.create_task(
                assignee_id=session.assignee_id,
                chat_id=message.chat_id,
                first_name=draft.first_name,
                last_name=draft.last_name,
                text=draft.description,
                file_id=draft.file_id,
                file_caption=draft.file_caption,
                status=TaskStatus.PENDING.value,
                remind_interval=minutes,
                last_remind=self._clock(),
            )
        except Exception:
            logger.exception("Failed to create task for chat %s", message.chat_id)
            await self._sessions.delete(message.chat_id)
            return replies.TASK_CREATE_FAILED

        logger.info("Task %s created for %s (every %d min)", task.id, task.assignee_id, minutes)
        await self._sessions.delete(message.chat_id)
        return replies.TASK_CREATED

    # ── Callback path ──────────────────────────────────────────────────────

    async def handle_callback(self, query: CallbackQuery) -> None:
        token = chat_id_var.set(query.chat_id)
        try:
            text = await self._callback_reply(query)
            await self._gateway.answer_callback_query(query.query_id, replies.CALLBACK_ACK)
            await self._gateway.send_text(query.chat_id, text)
        finally:
            chat_id_var.reset(token)

    async def _callback_reply(self, query: CallbackQuery) -> str:
        action, sep, task_id = query.data.partition("_")
        if sep and action in ("approve", "reject"):
            return await self._resolve_task(task_id, action)

        if query.data == "create_task":
            await self._sessions.set(query.chat_id, AwaitingDescription())
            return replies.ASK_DESCRIPTION
        if query.data == "check_user_tasks":
            await self._sessions.set(query.chat_id, AwaitingUserIdForTasks())
            return replies.ASK_USER_CONTACT
        if query.data == "watch_tasks":
            return await self._own_tasks(query.user_id)
        if query.data == "watch_statistics":
            return await self._statistics(query.user_id)
        return replies.UNKNOWN_COMMAND

    async def _resolve_task(self, task_id: str, action: str) -> str:
        new_status = TaskStatus.APPROVED if action == "approve" else TaskStatus.REJECTED
        try:
            task, changed = await self._repository.resolve_task(task_id, new_status)
        except Exception:
            logger.exception("Failed to %s task %s", action, task_id)
            return replies.TASK_UPDATE_FAILED

        if task is None:
            return replies.TASK_NOT_FOUND
        if changed:
            logger.info("Task %s %s", task_id, new_status.value.lower())
            return replies.TASK_APPROVED if new_status is TaskStatus.APPROVED else replies.TASK_REJECTED
        if task.status == TaskStatus.APPROVED.value:
            return replies.TASK_ALREADY_APPROVED
        return replies.TASK_ALREADY_REJECTED

    async def _own_tasks(self, user_id: str) -> str:
        try:
            tasks = await self._repository.list_tasks(chat_id=user_id)
            if not tasks:
                return replies.NO_OWN_TASKS
            users = await self._repository.users_by_vk_id([t.assignee_id for t in tasks])
        except Exception:
            logger.exception("Failed to load tasks created by %s", user_id)
            return replies.TASKS_FETCH_FAILED
        return replies.format_task_report(f"Latest {RECENT_TASKS_LIMIT} tasks:", tasks, users)

    async def _statistics(self, user_id: str) -> str:
        try:
            total = await self._repository.count_tasks(user_id)
            approved = await self._repository.count_tasks(user_id, TaskStatus.APPROVED)
            rejected = await self._repository.count_tasks(user_id, TaskStatus.REJECTED)
            pending = await self._repository.count_tasks(user_id, TaskStatus.PENDING)
        except Exception:
            logger.exception("Failed to compute statistics for %s", user_id)
            return replies.STATISTICS_FAILED
        return replies.format_statistics(total, approved, rejected, pending)
