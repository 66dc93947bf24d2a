"""Process-wide logging for the bot.

``setup_logging("Server")`` is called once from the FastAPI lifespan. The
dispatcher sets ``event_id_var`` while an event is being handled and the
conversation engine sets ``chat_id_var`` for the chat it is answering, so a
log line can be traced back to the inbound event that caused it::

    2026-10-18 12:00:01 [Server][Event 42][Chat alice@example.com][INFO] services.conversation:231 - Task ... created
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from contextvars import ContextVar
from pathlib import Path

event_id_var: ContextVar[str] = ContextVar("event_id_var", default="")
chat_id_var: ContextVar[str] = ContextVar("chat_id_var", default="")

STREAM_HANDLER_NAME = "_taskbot_stream"
FILE_HANDLER_NAME = "_taskbot_file"

# Outbound HTTP libraries log every long-poll request at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "urllib3")
_UVICORN_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error")


class ContextFilter(logging.Filter):
    """Copy the process role and the current event/chat ids onto each record."""

    def __init__(self, role: str) -> None:
        super().__init__()
        self.role = role

    def filter(self, record: logging.LogRecord) -> bool:
        record.role = self.role  # type: ignore[attr-defined]
        record.event_id = event_id_var.get()  # type: ignore[attr-defined]
        record.chat_id = chat_id_var.get()  # type: ignore[attr-defined]
        return True


class ContextFormatter(logging.Formatter):
    """``<time> [Role][Event n][Chat id][LEVEL] logger:line - message``.

    Event and chat tags are left out when unset.
    """

    def format(self, record: logging.LogRecord) -> str:
        tags = [
            getattr(record, "role", ""),
            _tag("Event", getattr(record, "event_id", "")),
            _tag("Chat", getattr(record, "chat_id", "")),
            record.levelname,
        ]
        prefix = "".join(f"[{t}]" for t in tags if t)
        line = (
            f"{self.formatTime(record, self.datefmt)} {prefix} "
            f"{record.name}:{record.lineno} - {record.getMessage()}"
        )

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        extras = [text for text in (record.exc_text, record.stack_info) if text]
        return "\n".join([line, *extras])


def _tag(label: str, value: str) -> str:
    return f"{label} {value}" if value else ""


def _add_handler(root: logging.Logger, handler: logging.Handler, name: str, role: str) -> None:
    handler.name = name
    handler.addFilter(ContextFilter(role))
    handler.setFormatter(ContextFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)


def setup_logging(role: str) -> None:
    """Attach the stderr handler (and the rotating file handler when
    ``LOG_FILE`` is set) to the root logger. Later calls are no-ops.
    """
    from config import settings

    root = logging.getLogger()
    if any(h.name == STREAM_HANDLER_NAME for h in root.handlers):
        return

    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    _add_handler(root, logging.StreamHandler(sys.stderr), STREAM_HANDLER_NAME, role)

    if settings.LOG_FILE:
        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=settings.LOG_MAX_BYTES,
            backupCount=settings.LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        _add_handler(root, file_handler, FILE_HANDLER_NAME, role)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # uvicorn installs its own handlers; route its records through root instead
    for name in _UVICORN_LOGGERS:
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = True
