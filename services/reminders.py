"""ReminderScheduler — re-send approve/reject prompts for pending tasks."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from models.task import Task
from services import replies
from services.gateway import MessagingGateway
from services.repository import TaskRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ReminderScheduler:
    """Periodic sweep over pending tasks.

    Each sweep selects tasks with ``status == PENDING`` and
    ``last_remind < now``, sends the prompt to the assignee, and moves
    ``last_remind`` to ``now + remind_interval`` minutes. Status is never
    changed here.
    """

    def __init__(
        self,
        gateway: MessagingGateway,
        repository: TaskRepository,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._gateway = gateway
        self._repository = repository
        self._clock = clock

    async def tick(self) -> int:
        """Run one sweep. Returns the number of reminders sent."""
        now = self._clock()
        logger.debug("Checking for pending reminders")
        try:
            tasks = await self._repository.due_reminders(now)
        except Exception:
            logger.exception("Error loading due reminders")
            return 0

        sent = 0
        for task in tasks:
            try:
                # A reminder is only sent once its next threshold is known
                next_remind = now + timedelta(minutes=task.remind_interval)
                await self._send_reminder(task)
                await self._repository.update_task(task.id, last_remind=next_remind)
            except Exception:
                logger.exception("Error sending reminder for task %s", task.id)
                continue
            sent += 1
            logger.info("Reminder sent for task %s, next at %s", task.id, next_remind)
        return sent

    async def _send_reminder(self, task: Task) -> None:
        text = replies.format_reminder(task)
        keyboard = replies.decision_keyboard(task.id)
        if task.file_id:
            await self._gateway.send_file(task.assignee_id, task.file_id, caption=text, inline_keyboard=keyboard)
        else:
            await self._gateway.send_text(task.assignee_id, text, inline_keyboard=keyboard)
