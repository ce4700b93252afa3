"""Tests for the Slack and Telegram HTTP clients against a mocked transport."""

import json

import httpx
import pytest

from channel_bridge.core.exceptions import PlatformError
from channel_bridge.integrations.slack import SlackClient
from channel_bridge.integrations.telegram import TelegramBotClient

BOT_TOKEN = "123456789:" + "A" * 35


def recording_client(handler, requests: list[httpx.Request]) -> httpx.AsyncClient:
    def transport(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(transport))


# =============================================================================
# TEST: SLACK
# =============================================================================


def slack_api(request: httpx.Request) -> httpx.Response:
    method = request.url.path.rsplit("/", 1)[-1]
    if method == "users.info":
        if request.url.params.get("user") != "U1":
            return httpx.Response(200, json={"ok": False, "error": "user_not_found"})
        return httpx.Response(200, json={
            "ok": True,
            "user": {"id": "U1", "real_name": "Ann Lee", "profile": {"display_name": "ann"}},
        })
    if method == "chat.postMessage":
        return httpx.Response(200, json={"ok": True, "ts": "1700000000.000100"})
    if method == "chat.delete":
        return httpx.Response(200, json={"ok": False, "error": "message_not_found"})
    return httpx.Response(200, json={"ok": True})


class TestSlackClient:

    async def test_users_info_sends_user_as_query_argument(self):
        requests = []
        async with recording_client(slack_api, requests) as http:
            name = await SlackClient("xoxb-test", http).get_user_display_name("U1")

        assert name == "ann"
        request = requests[0]
        assert request.method == "GET"
        assert request.url.params["user"] == "U1"
        assert request.headers["Authorization"] == "Bearer xoxb-test"

    async def test_display_name_falls_back_to_real_name(self):
        def handler(request):
            return httpx.Response(200, json={"ok": True, "user": {"real_name": "Ann Lee", "profile": {}}})

        async with recording_client(handler, []) as http:
            assert await SlackClient("xoxb-test", http).get_user_display_name("U1") == "Ann Lee"

    async def test_post_message_carries_overrides(self):
        requests = []
        async with recording_client(slack_api, requests) as http:
            ts = await SlackClient("xoxb-test", http).post_message(
                "C1",
                "hello",
                thread_ts="1700000000.000001",
                username="Ann @ann",
                icon_url="https://t.me/avatar.jpg",
            )

        assert ts == "1700000000.000100"
        request = requests[0]
        assert request.method == "POST"
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {
            "channel": "C1",
            "text": "hello",
            "thread_ts": "1700000000.000001",
            "username": "Ann @ann",
            "icon_url": "https://t.me/avatar.jpg",
        }

    async def test_not_ok_raises_platform_error(self):
        async with recording_client(slack_api, []) as http:
            with pytest.raises(PlatformError) as exc_info:
                await SlackClient("xoxb-test", http).delete_message("C1", "1.1")

        assert exc_info.value.method == "chat.delete"
        assert exc_info.value.error == "message_not_found"

    async def test_transport_error_raises_platform_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with recording_client(handler, []) as http:
            with pytest.raises(PlatformError) as exc_info:
                await SlackClient("xoxb-test", http).post_message("C1", "hello")

        assert exc_info.value.platform == "Slack"


# =============================================================================
# TEST: TELEGRAM
# =============================================================================


class TestTelegramBotClient:

    async def test_profile_photo_url_uses_largest_size(self):
        def handler(request):
            method = request.url.path.rsplit("/", 1)[-1]
            if method == "getUserProfilePhotos":
                assert json.loads(request.content) == {"user_id": "42", "limit": 1}
                return httpx.Response(200, json={"ok": True, "result": {
                    "total_count": 1,
                    "photos": [[{"file_id": "small"}, {"file_id": "large"}]],
                }})
            if method == "getFile":
                assert json.loads(request.content) == {"file_id": "large"}
                return httpx.Response(200, json={"ok": True, "result": {"file_path": "photos/file_7.jpg"}})
            return httpx.Response(404, json={"ok": False, "description": "Not Found"})

        requests = []
        async with recording_client(handler, requests) as http:
            url = await TelegramBotClient(BOT_TOKEN, http).get_user_profile_photo_url("42")

        assert url == f"https://api.telegram.org/file/bot{BOT_TOKEN}/photos/file_7.jpg"
        assert [r.url.path.rsplit("/", 1)[-1] for r in requests] == ["getUserProfilePhotos", "getFile"]

    async def test_no_profile_photo(self):
        requests = []

        def handler(request):
            return httpx.Response(200, json={"ok": True, "result": {"total_count": 0, "photos": []}})

        async with recording_client(handler, requests) as http:
            assert await TelegramBotClient(BOT_TOKEN, http).get_user_profile_photo_url("42") is None

        assert len(requests) == 1

    async def test_send_message_with_parse_mode(self):
        requests = []

        def handler(request):
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

        async with recording_client(handler, requests) as http:
            await TelegramBotClient(BOT_TOKEN, http).send_message("T1", "<b>Ann</b>: hi", parse_mode="HTML")

        assert requests[0].url.path == f"/bot{BOT_TOKEN}/sendMessage"
        assert json.loads(requests[0].content) == {"chat_id": "T1", "text": "<b>Ann</b>: hi", "parse_mode": "HTML"}

    async def test_rejected_call_raises_platform_error(self):
        def handler(request):
            return httpx.Response(403, json={"ok": False, "description": "Forbidden: bot was kicked"})

        async with recording_client(handler, []) as http:
            with pytest.raises(PlatformError) as exc_info:
                await TelegramBotClient(BOT_TOKEN, http).send_message("T1", "hi")

        assert exc_info.value.error == "Forbidden: bot was kicked"
