"""Slack Web API client over httpx."""

import logging
from typing import Any

import httpx

from ...core.exceptions import PlatformError

logger = logging.getLogger(__name__)

SLACK_API_BASE = "https://slack.com/api"


class SlackClient:
    """Thin wrapper over the Slack Web API methods the bridge uses.

    Every call raises PlatformError when Slack answers `ok: false` or the
    request itself fails.
    """

    def __init__(self, access_token: str, http_client: httpx.AsyncClient):
        self._token = access_token
        self._http = http_client

    async def _call(
        self,
        method: str,
        payload: dict[str, Any] | None = None,
        *,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """POST `payload` as JSON, or GET with `params` for read methods."""
        headers = {"Authorization": f"Bearer {self._token}"}
        try:
            if params is not None:
                response = await self._http.get(
                    f"{SLACK_API_BASE}/{method}",
                    headers=headers,
                    params=params,
                )
            else:
                response = await self._http.post(
                    f"{SLACK_API_BASE}/{method}",
                    headers=headers,
                    json=payload or {},
                )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PlatformError("Slack", method, str(e)) from e

        if not data.get("ok"):
            raise PlatformError("Slack", method, data.get("error", "unknown_error"))
        return data

    async def post_message(
        self,
        channel: str,
        text: str,
        *,
        blocks: list[dict] | None = None,
        thread_ts: str | None = None,
        username: str | None = None,
        icon_url: str | None = None,
    ) -> str:
        """Post a message and return its ts."""
        payload: dict[str, Any] = {"channel": channel, "text": text}
        if blocks:
            payload["blocks"] = blocks
        if thread_ts:
            payload["thread_ts"] = thread_ts
        if username:
            payload["username"] = username
        if icon_url:
            payload["icon_url"] = icon_url

        data = await self._call("chat.postMessage", payload)
        return data["ts"]

    async def delete_message(self, channel: str, ts: str) -> None:
        await self._call("chat.delete", {"channel": channel, "ts": ts})

    async def get_user_display_name(self, user_id: str) -> str:
        data = await self._call("users.info", params={"user": user_id})
        user = data.get("user") or {}
        profile = user.get("profile") or {}
        return profile.get("display_name") or user.get("real_name") or "Unknown"

    async def open_modal(self, trigger_id: str, view: dict) -> None:
        await self._call("views.open", {"trigger_id": trigger_id, "view": view})

    @classmethod
    async def exchange_oauth_code(
        cls,
        http_client: httpx.AsyncClient,
        client_id: str,
        client_secret: str,
        code: str,
    ) -> dict[str, Any]:
        """Exchange an OAuth code for the workspace's bot token."""
        method = "oauth.v2.access"
        try:
            response = await http_client.post(
                f"{SLACK_API_BASE}/{method}",
                data={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "code": code,
                },
            )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PlatformError("Slack", method, str(e)) from e

        if not data.get("ok"):
            raise PlatformError("Slack", method, data.get("error", "unknown_error"))
        return data
