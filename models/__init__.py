"""SQLAlchemy models, re-exported."""

from models.user import User  # noqa: F401
from models.task import Task, TaskStatus  # noqa: F401
from models.cursor import EventCursor  # noqa: F401
