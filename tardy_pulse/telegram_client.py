"""HTTP client for interacting with the Telegram Bot API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

TELEGRAM_API_BASE = "https://api.telegram.org"

InlineKeyboard = List[List[Dict[str, str]]]


class TelegramApiError(RuntimeError):
    """Raised when Telegram returns an error response."""

    def __init__(self, method: str, error: str) -> None:
        super().__init__(f"Telegram API error for {method}: {error}")
        self.method = method
        self.error = error


def inline_keyboard(rows: InlineKeyboard) -> Dict[str, Any]:
    return {"inline_keyboard": rows}


class TelegramClient:
    """Simple async wrapper around the Bot API methods used by Tardy Pulse."""

    def __init__(
        self,
        token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=f"{TELEGRAM_API_BASE}/bot{token}/",
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, payload: Dict[str, Any]) -> Any:
        response = await self._client.post(method, json=payload)
        try:
            data = response.json()
        except ValueError as exc:
            raise TelegramApiError(method, f"HTTP {response.status_code}: {response.text[:200]!r}") from exc
        if not isinstance(data, dict):
            raise TelegramApiError(method, f"HTTP {response.status_code}: unexpected payload")
        if not data.get("ok"):
            raise TelegramApiError(method, data.get("description", "unknown_error"))
        return data.get("result")

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        *,
        reply_markup: Optional[Dict[str, Any]] = None,
    ) -> Any:
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await self._call("sendMessage", payload)

    async def edit_message_text(
        self,
        chat_id: int | str,
        message_id: int,
        text: str,
        *,
        reply_markup: Optional[Dict[str, Any]] = None,
    ) -> Any:
        payload: Dict[str, Any] = {"chat_id": chat_id, "message_id": message_id, "text": text}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await self._call("editMessageText", payload)

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> Any:
        payload: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        return await self._call("answerCallbackQuery", payload)

    async def set_webhook(self, url: str, secret_token: Optional[str] = None) -> Any:
        payload: Dict[str, Any] = {"url": url}
        if secret_token:
            payload["secret_token"] = secret_token
        return await self._call("setWebhook", payload)


__all__ = ["TelegramClient", "TelegramApiError", "inline_keyboard", "InlineKeyboard"]
