"""TaskRepository — users, tasks, and the event cursor on SQLAlchemy.

Queries use sync sessions; the async methods run them in a worker thread so
the polling and reminder loops never block the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from sqlalchemy.orm import sessionmaker

from database import SessionLocal
from models.cursor import EventCursor
from models.task import Task, TaskStatus
from models.user import User, _utcnow

logger = logging.getLogger(__name__)

RECENT_TASKS_LIMIT = 10


class TaskRepository:
    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    # ── Users ──────────────────────────────────────────────────────────────

    async def get_user(self, vk_id: str) -> User | None:
        return await asyncio.to_thread(self._get_user, vk_id)

    async def upsert_user(self, vk_id: str, first_name: str, last_name: str) -> User:
        """Create the user if absent; an existing row is left untouched."""
        return await asyncio.to_thread(self._upsert_user, vk_id, first_name, last_name)

    async def users_by_vk_id(self, vk_ids: list[str]) -> dict[str, User]:
        return await asyncio.to_thread(self._users_by_vk_id, vk_ids)

    # ── Tasks ──────────────────────────────────────────────────────────────

    async def create_task(self, **values) -> Task:
        return await asyncio.to_thread(self._create_task, values)

    async def get_task(self, task_id: str) -> Task | None:
        return await asyncio.to_thread(self._get_task, task_id)

    async def update_task(self, task_id: str, **values) -> Task | None:
        return await asyncio.to_thread(self._update_task, task_id, values)

    async def resolve_task(self, task_id: str, status: TaskStatus) -> tuple[Task | None, bool]:
        """Move a PENDING task to *status*.

        Returns the task as stored afterwards and whether this call changed it;
        a task that already left PENDING is returned unchanged.
        """
        return await asyncio.to_thread(self._resolve_task, task_id, status)

    async def list_tasks(
        self,
        assignee_id: str | None = None,
        chat_id: str | None = None,
        limit: int = RECENT_TASKS_LIMIT,
    ) -> list[Task]:
        """Most recent tasks first, filtered by assignee and/or originating chat."""
        return await asyncio.to_thread(self._list_tasks, assignee_id, chat_id, limit)

    async def count_tasks(self, chat_id: str, status: TaskStatus | None = None) -> int:
        return await asyncio.to_thread(self._count_tasks, chat_id, status)

    async def due_reminders(self, now: datetime) -> list[Task]:
        """Pending tasks whose reminder threshold is before *now*."""
        return await asyncio.to_thread(self._due_reminders, now)

    # ── Event cursor ───────────────────────────────────────────────────────

    async def load_cursor(self, name: str) -> int:
        return await asyncio.to_thread(self._load_cursor, name)

    async def save_cursor(self, name: str, last_event_id: int) -> None:
        await asyncio.to_thread(self._save_cursor, name, last_event_id)

    # ── Sync implementations ───────────────────────────────────────────────

    def _get_user(self, vk_id: str) -> User | None:
        with self._session_factory() as db:
            return db.query(User).filter(User.vk_id == vk_id).first()

    def _upsert_user(self, vk_id: str, first_name: str, last_name: str) -> User:
        with self._session_factory() as db:
            user = db.query(User).filter(User.vk_id == vk_id).first()
            if user:
                return user
            user = User(vk_id=vk_id, first_name=first_name or "", last_name=last_name or "")
            db.add(user)
            db.commit()
            db.refresh(user)
            logger.info("Registered user %s", vk_id)
            return user

    def _users_by_vk_id(self, vk_ids: list[str]) -> dict[str, User]:
        if not vk_ids:
            return {}
        with self._session_factory() as db:
            users = db.query(User).filter(User.vk_id.in_(set(vk_ids))).all()
            return {u.vk_id: u for u in users}

    def _create_task(self, values: dict) -> Task:
        with self._session_factory() as db:
            task = Task(**values)
            db.add(task)
            db.commit()
            db.refresh(task)
            return task

    def _get_task(self, task_id: str) -> Task | None:
        with self._session_factory() as db:
            return db.get(Task, task_id)

    def _update_task(self, task_id: str, values: dict) -> Task | None:
        with self._session_factory() as db:
            task = db.get(Task, task_id)
            if not task:
                return None
            for field, value in values.items():
                setattr(task, field, value)
            db.commit()
            db.refresh(task)
            return task

    def _resolve_task(self, task_id: str, status: TaskStatus) -> tuple[Task | None, bool]:
        with self._session_factory() as db:
            updated = (
                db.query(Task)
                .filter(Task.id == task_id, Task.status == TaskStatus.PENDING.value)
                .update({Task.status: status.value, Task.updated_at: _utcnow()}, synchronize_session=False)
            )
            db.commit()
            return db.get(Task, task_id), updated > 0

    def _list_tasks(self, assignee_id: str | None, chat_id: str | None, limit: int) -> list[Task]:
        with self._session_factory() as db:
            q = db.query(Task)
            if assignee_id is not None:
                q = q.filter(Task.assignee_id == assignee_id)
            if chat_id is not None:
                q = q.filter(Task.chat_id == chat_id)
            return q.order_by(Task.created_at.desc()).limit(limit).all()

    def _count_tasks(self, chat_id: str, status: TaskStatus | None) -> int:
        with self._session_factory() as db:
            q = db.query(Task).filter(Task.chat_id == chat_id)
            if status is not None:
                q = q.filter(Task.status == status.value)
            return q.count()

    def _due_reminders(self, now: datetime) -> list[Task]:
        with self._session_factory() as db:
            return (
                db.query(Task)
                .filter(
                    Task.status == TaskStatus.PENDING.value,
                    Task.last_remind < now,
                )
                .order_by(Task.last_remind)
                .all()
            )

    def _load_cursor(self, name: str) -> int:
        with self._session_factory() as db:
            cursor = db.get(EventCursor, name)
            return cursor.last_event_id if cursor else 0

    def _save_cursor(self, name: str, last_event_id: int) -> None:
        with self._session_factory() as db:
            cursor = db.get(EventCursor, name)
            if cursor is None:
                cursor = EventCursor(name=name)
                db.add(cursor)
            cursor.last_event_id = last_event_id
            db.commit()
