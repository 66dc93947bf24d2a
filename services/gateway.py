"""MessagingGateway — async client for the bot HTTP API (``/bot/v1``)."""

from __future__ import annotations

import json
import logging

import httpx

logger = logging.getLogger(__name__)

DEFAULT_PARSE_MODE = "MarkdownV2"


class GatewayError(Exception):
    """Raised when a bot API call fails at the transport or HTTP level."""


class MessagingGateway:
    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def get_self(self) -> dict:
        return await self._request("GET", "self/get")

    async def get_events(self, last_event_id: int, poll_time: int) -> dict:
        """Long-poll for events after *last_event_id*."""
        return await self._request(
            "GET",
            "events/get",
            {"lastEventId": last_event_id, "pollTime": poll_time},
            timeout=poll_time + self._timeout,
        )

    async def send_text(
        self,
        chat_id: str,
        text: str,
        inline_keyboard: list[list[dict]] | None = None,
        parse_mode: str | None = DEFAULT_PARSE_MODE,
    ) -> dict:
        params = {"chatId": chat_id, "text": text}
        if parse_mode:
            params["parseMode"] = parse_mode
        if inline_keyboard:
            params["inlineKeyboardMarkup"] = json.dumps(inline_keyboard, ensure_ascii=False)
        return await self._request("POST", "messages/sendText", params)

    async def send_file(
        self,
        chat_id: str,
        file_id: str,
        caption: str | None = None,
        inline_keyboard: list[list[dict]] | None = None,
        parse_mode: str | None = DEFAULT_PARSE_MODE,
    ) -> dict:
        params = {"chatId": chat_id, "fileId": file_id}
        if caption:
            params["caption"] = caption
        if parse_mode:
            params["parseMode"] = parse_mode
        if inline_keyboard:
            params["inlineKeyboardMarkup"] = json.dumps(inline_keyboard, ensure_ascii=False)
        return await self._request("GET", "messages/sendFile", params)

    async def answer_callback_query(self, query_id: str, text: str | None = None) -> dict:
        params = {"queryId": query_id}
        if text:
            params["text"] = text
        return await self._request("GET", "messages/answerCallbackQuery", params)

    async def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        timeout: float | None = None,
    ) -> dict:
        url = f"{self.base_url}/{path}"
        query = {"token": self._token, **(params or {})}
        logger.debug("%s %s %s", method, path, {k: v for k, v in query.items() if k != "token"})
        try:
            resp = await self._client.request(
                method,
                url,
                params=query,
                timeout=timeout if timeout is not None else self._timeout,
            )
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as exc:
            raise GatewayError(f"{method} {path} failed: {exc}") from exc
        except ValueError as exc:
            raise GatewayError(f"{method} {path} returned invalid JSON") from exc
