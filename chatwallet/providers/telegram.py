"""
Telegram Bot API transport.

Thin async wrapper over the HTTP Bot API. Text goes out as JSON bodies,
photos and documents as multipart uploads.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from .base import ChatTransport


logger = logging.getLogger(__name__)


class TelegramAPIError(Exception):
    """Bot API answered with ``ok: false`` or an HTTP error."""

    def __init__(self, method: str, description: str, error_code: Optional[int] = None):
        super().__init__(f"{method} failed: {description}")
        self.method = method
        self.description = description
        self.error_code = error_code


class TelegramTransport(ChatTransport):
    """Bot API client bound to one bot token."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.token = token or settings.telegram_bot_token
        self.base_url = (base_url or settings.telegram_api_base_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout_seconds
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _call(
        self,
        method: str,
        payload: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        timeout: Any = httpx.USE_CLIENT_DEFAULT,
    ) -> Any:
        client = await self._get_client()
        url = f"{self.base_url}/bot{self.token}/{method}"
        try:
            if files:
                # Multipart form fields must be strings
                data = {
                    k: json.dumps(v) if isinstance(v, (dict, list)) else str(v)
                    for k, v in (payload or {}).items()
                    if v is not None
                }
                response = await client.post(url, data=data, files=files, timeout=timeout)
            else:
                body = {k: v for k, v in (payload or {}).items() if v is not None}
                response = await client.post(url, json=body, timeout=timeout)
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TelegramAPIError(method, str(e)) from e

        if not result.get("ok"):
            raise TelegramAPIError(
                method,
                result.get("description", "unknown error"),
                result.get("error_code"),
            )
        return result.get("result")

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_markup: Optional[Dict[str, Any]] = None,
        parse_mode: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._call(
            "sendMessage",
            {"chat_id": chat_id, "text": text, "reply_markup": reply_markup, "parse_mode": parse_mode},
        )

    async def send_photo(self, chat_id: int, photo: bytes, *, caption: Optional[str] = None) -> Dict[str, Any]:
        return await self._call(
            "sendPhoto",
            {"chat_id": chat_id, "caption": caption},
            files={"photo": ("qr.png", photo, "image/png")},
        )

    async def send_document(
        self,
        chat_id: int,
        document: bytes,
        *,
        filename: str,
        content_type: str = "application/octet-stream",
        caption: Optional[str] = None,
        parse_mode: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._call(
            "sendDocument",
            {"chat_id": chat_id, "caption": caption, "parse_mode": parse_mode},
            files={"document": (filename, document, content_type)},
        )

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        await self._call("deleteMessage", {"chat_id": chat_id, "message_id": message_id})

    async def answer_callback(self, callback_id: str, text: Optional[str] = None) -> None:
        await self._call("answerCallbackQuery", {"callback_query_id": callback_id, "text": text})

    async def get_updates(self, offset: Optional[int] = None, timeout: int = 30) -> List[Dict[str, Any]]:
        """Long-poll for updates; the HTTP timeout outlasts the server-side wait."""
        return await self._call(
            "getUpdates",
            {"offset": offset, "timeout": timeout, "allowed_updates": ["message", "callback_query"]},
            timeout=timeout + 10,
        )

    async def set_webhook(self, url: str, secret_token: Optional[str] = None) -> bool:
        return await self._call(
            "setWebhook",
            {
                "url": url,
                "secret_token": secret_token or None,
                "allowed_updates": ["message", "callback_query"],
            },
        )

    async def delete_webhook(self) -> bool:
        return await self._call("deleteWebhook", {})
