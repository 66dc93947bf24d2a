"""Tests for the bot API client, using httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from services.gateway import GatewayError, MessagingGateway

BASE_URL = "https://bot.example.com/bot/v1/"


def _gateway(handler) -> MessagingGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MessagingGateway(BASE_URL, "secret-token", timeout=5, client=client)


class _Recorder:
    def __init__(self, response: dict | None = None, status_code: int = 200):
        self.requests: list[httpx.Request] = []
        self._response = response if response is not None else {"ok": True}
        self._status_code = status_code

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self._status_code, json=self._response)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


class TestRequests:
    @pytest.mark.asyncio
    async def test_get_self(self):
        recorder = _Recorder({"ok": True, "nick": "taskbot"})
        gateway = _gateway(recorder)

        assert await gateway.get_self() == {"ok": True, "nick": "taskbot"}

        assert recorder.last.method == "GET"
        assert recorder.last.url.path == "/bot/v1/self/get"
        assert recorder.last.url.params["token"] == "secret-token"

    @pytest.mark.asyncio
    async def test_get_events(self):
        recorder = _Recorder({"ok": True, "events": []})
        gateway = _gateway(recorder)

        await gateway.get_events(42, 3)

        params = recorder.last.url.params
        assert recorder.last.url.path == "/bot/v1/events/get"
        assert params["lastEventId"] == "42"
        assert params["pollTime"] == "3"

    @pytest.mark.asyncio
    async def test_send_text_with_keyboard(self):
        recorder = _Recorder()
        gateway = _gateway(recorder)
        keyboard = [[{"text": "Approve", "callbackData": "approve_1", "style": "primary"}]]

        await gateway.send_text("bob@x", "Hello", inline_keyboard=keyboard)

        params = recorder.last.url.params
        assert recorder.last.method == "POST"
        assert recorder.last.url.path == "/bot/v1/messages/sendText"
        assert params["chatId"] == "bob@x"
        assert params["text"] == "Hello"
        assert params["parseMode"] == "MarkdownV2"
        assert json.loads(params["inlineKeyboardMarkup"]) == keyboard

    @pytest.mark.asyncio
    async def test_send_text_without_keyboard_or_parse_mode(self):
        recorder = _Recorder()
        gateway = _gateway(recorder)

        await gateway.send_text("bob@x", "plain", parse_mode=None)

        params = recorder.last.url.params
        assert "inlineKeyboardMarkup" not in params
        assert "parseMode" not in params

    @pytest.mark.asyncio
    async def test_send_file(self):
        recorder = _Recorder()
        gateway = _gateway(recorder)

        await gateway.send_file("bob@x", "f-1", caption="Reminder")

        params = recorder.last.url.params
        assert recorder.last.url.path == "/bot/v1/messages/sendFile"
        assert params["fileId"] == "f-1"
        assert params["caption"] == "Reminder"

    @pytest.mark.asyncio
    async def test_answer_callback_query(self):
        recorder = _Recorder()
        gateway = _gateway(recorder)

        await gateway.answer_callback_query("q-1", "Command processed")

        params = recorder.last.url.params
        assert recorder.last.url.path == "/bot/v1/messages/answerCallbackQuery"
        assert params["queryId"] == "q-1"
        assert params["text"] == "Command processed"


class TestErrors:
    @pytest.mark.asyncio
    async def test_http_error_status(self):
        gateway = _gateway(_Recorder({"ok": False}, status_code=500))
        with pytest.raises(GatewayError):
            await gateway.get_self()

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        gateway = _gateway(handler)
        with pytest.raises(GatewayError):
            await gateway.get_events(0, 1)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        gateway = _gateway(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(GatewayError, match="invalid JSON"):
            await gateway.get_self()

    @pytest.mark.asyncio
    async def test_api_level_failure_is_returned(self):
        gateway = _gateway(_Recorder({"ok": False, "description": "Invalid token"}))
        assert await gateway.send_text("bob@x", "hi") == {"ok": False, "description": "Invalid token"}

    @pytest.mark.asyncio
    async def test_close(self):
        gateway = _gateway(_Recorder())
        await gateway.close()
        with pytest.raises(RuntimeError):
            await gateway._client.get(BASE_URL)
