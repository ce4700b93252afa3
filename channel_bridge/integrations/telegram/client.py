"""Telegram Bot API client over httpx."""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ...core.exceptions import PlatformError

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


@dataclass(frozen=True)
class BotIdentity:
    """Who a bot token belongs to, as reported by getMe."""
    id: str
    username: str


class TelegramBotClient:
    """One bot's handle on the Telegram Bot API."""

    def __init__(self, token: str, http_client: httpx.AsyncClient):
        self.token = token
        self._http = http_client

    async def _call(self, method: str, payload: dict[str, Any] | None = None) -> Any:
        try:
            response = await self._http.post(
                f"{TELEGRAM_API_BASE}/bot{self.token}/{method}",
                json=payload or {},
            )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PlatformError("Telegram", method, str(e)) from e

        if not data.get("ok"):
            raise PlatformError("Telegram", method, data.get("description", "unknown_error"))
        return data.get("result")

    async def get_me(self) -> BotIdentity:
        result = await self._call("getMe")
        return BotIdentity(id=str(result["id"]), username=result["username"])

    async def send_message(self, chat_id: str, text: str, parse_mode: str | None = None) -> None:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        await self._call("sendMessage", payload)

    async def get_user_profile_photo_url(self, user_id: str) -> str | None:
        """URL of the largest size of the user's latest profile photo."""
        photos = await self._call("getUserProfilePhotos", {"user_id": user_id, "limit": 1})
        if not photos or photos.get("total_count", 0) == 0 or not photos.get("photos"):
            return None

        sizes = photos["photos"][0]
        largest = sizes[-1]
        file = await self._call("getFile", {"file_id": largest["file_id"]})
        file_path = file.get("file_path") if file else None
        if not file_path:
            return None
        return f"{TELEGRAM_API_BASE}/file/bot{self.token}/{file_path}"

    async def set_webhook(self, url: str) -> None:
        await self._call("setWebhook", {"url": url})
        logger.info(f"Webhook set to {url}")
