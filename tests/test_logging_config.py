"""Tests for the logging setup and per-event context."""

from __future__ import annotations

import logging
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

from logging_config import ContextFilter, ContextFormatter, chat_id_var, event_id_var, setup_logging

_OUR_HANDLERS = ("_taskbot_stream", "_taskbot_file")


@pytest.fixture(autouse=True)
def _clean_root_logger():
    """Drop handlers added by the test and start from a root without ours."""
    root = logging.getLogger()
    before = list(root.handlers)
    root.handlers = [h for h in before if getattr(h, "name", None) not in _OUR_HANDLERS]
    yield root
    root.handlers = before


def _record(name: str = "test", level: int = logging.INFO, msg: str = "msg", exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(name, level, "", 7, msg, (), exc_info)


# ── ContextFilter ──────────────────────────────────────────────────────────

def test_filter_defaults_to_empty_context():
    record = _record()
    assert ContextFilter("Server").filter(record) is True
    assert record.role == "Server"  # type: ignore[attr-defined]
    assert record.event_id == ""  # type: ignore[attr-defined]
    assert record.chat_id == ""  # type: ignore[attr-defined]


def test_filter_reads_context_vars():
    event_token = event_id_var.set("42")
    chat_token = chat_id_var.set("alice@x")
    try:
        record = _record()
        ContextFilter("Server").filter(record)
        assert record.event_id == "42"  # type: ignore[attr-defined]
        assert record.chat_id == "alice@x"  # type: ignore[attr-defined]
    finally:
        chat_id_var.reset(chat_token)
        event_id_var.reset(event_token)


# ── ContextFormatter ───────────────────────────────────────────────────────

def test_formatter_without_context():
    record = _record("services.reminders", msg="Reminder sent")
    ContextFilter("Server").filter(record)

    line = ContextFormatter(datefmt="%Y-%m-%d %H:%M:%S").format(record)

    assert "[Server][INFO] services.reminders:7 - Reminder sent" in line
    assert "[Event" not in line
    assert "[Chat" not in line


def test_formatter_with_event_and_chat():
    record = _record("services.conversation", logging.WARNING, "Task created")
    record.role = "Server"  # type: ignore[attr-defined]
    record.event_id = "42"  # type: ignore[attr-defined]
    record.chat_id = "alice@x"  # type: ignore[attr-defined]

    line = ContextFormatter().format(record)

    assert "[Server][Event 42][Chat alice@x][WARNING]" in line


def test_formatter_includes_exception():
    try:
        raise ValueError("boom")
    except ValueError:
        exc_info = sys.exc_info()
    record = _record(level=logging.ERROR, msg="failed", exc_info=exc_info)
    record.role = "Server"  # type: ignore[attr-defined]

    line = ContextFormatter().format(record)

    assert "failed" in line
    assert "ValueError: boom" in line


# ── setup_logging ──────────────────────────────────────────────────────────

def test_setup_adds_stream_handler_once(_clean_root_logger):
    setup_logging("Server")
    count = len(_clean_root_logger.handlers)
    setup_logging("Server")

    names = [getattr(h, "name", None) for h in _clean_root_logger.handlers]
    assert "_taskbot_stream" in names
    assert len(_clean_root_logger.handlers) == count


def test_setup_file_handler(monkeypatch, tmp_path, _clean_root_logger):
    import config

    log_file = tmp_path / "logs" / "bot.log"
    monkeypatch.setattr(config.settings, "LOG_FILE", str(log_file))

    setup_logging("Server")
    logging.getLogger("test.file").warning("written to file")
    for handler in _clean_root_logger.handlers:
        handler.flush()

    assert "_taskbot_file" in [getattr(h, "name", None) for h in _clean_root_logger.handlers]
    assert "written to file" in log_file.read_text()


def test_setup_tames_http_loggers():
    setup_logging("Server")
    for name in ("httpx", "httpcore", "urllib3"):
        assert logging.getLogger(name).level >= logging.WARNING


def test_setup_uvicorn_propagates():
    setup_logging("Server")
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        assert logging.getLogger(name).propagate is True


# ── Context during dispatch ────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_event_id_set_during_dispatch_and_reset_after(gateway):
    from services.dispatcher import EventDispatcher

    seen = []
    engine = MagicMock()
    engine.handle_callback = AsyncMock(side_effect=lambda q: seen.append(event_id_var.get()))
    gateway.get_events.return_value = {
        "ok": True,
        "events": [{
            "eventId": 77,
            "type": "callbackQuery",
            "payload": {
                "queryId": "q",
                "callbackData": "watch_tasks",
                "from": {"userId": "bob@x"},
                "message": {"chat": {"chatId": "bob@x"}},
            },
        }],
    }

    await EventDispatcher(gateway, engine).tick()

    assert seen == ["77"]
    assert event_id_var.get() == ""
