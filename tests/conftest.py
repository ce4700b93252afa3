"""
Shared fixtures: an in-memory database, a store on top of it, and fake
Slack / Telegram clients that record what they were asked to send.
"""

import itertools

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from channel_bridge.core.exceptions import PlatformError, TeamNotFound
from channel_bridge.integrations.telegram import BotIdentity
from channel_bridge.models import Base
from channel_bridge.services import (
    BotRegistry,
    BridgeStore,
    ErrorSink,
    MessageRouter,
    PairingEngine,
    SetupWorkflow,
    WorkspaceDirectory,
)

WORKSPACE_ID = "W1"
SLACK_BOT_USER_ID = "UBOT"
DEFAULT_BOT_ID = "B1"
DEFAULT_BOT_USERNAME = "TeleConnectBot"


# =============================================================================
# FAKE PLATFORM CLIENTS
# =============================================================================


class FakeSlackClient:
    """Records Slack calls; every post gets a fresh, increasing ts."""

    def __init__(self):
        self.posted: list[dict] = []
        self.deleted: list[tuple[str, str]] = []
        self.modals: list[tuple[str, dict]] = []
        self.display_names: dict[str, str] = {}
        self.fail_delete = False
        self._counter = itertools.count(1)

    async def post_message(
        self,
        channel,
        text,
        *,
        blocks=None,
        thread_ts=None,
        username=None,
        icon_url=None,
    ):
        ts = f"1700000000.{next(self._counter):06d}"
        self.posted.append({
            "channel": channel,
            "text": text,
            "blocks": blocks,
            "thread_ts": thread_ts,
            "username": username,
            "icon_url": icon_url,
            "ts": ts,
        })
        return ts

    async def delete_message(self, channel, ts):
        if self.fail_delete:
            raise PlatformError("Slack", "chat.delete", "message_not_found")
        self.deleted.append((channel, ts))

    async def get_user_display_name(self, user_id):
        return self.display_names.get(user_id, "Unknown")

    async def open_modal(self, trigger_id, view):
        self.modals.append((trigger_id, view))


class FakeTelegramBot:
    """Records Telegram sends for one bot."""

    def __init__(self, bot_id: str, username: str, photo_url: str | None = None):
        self.identity = BotIdentity(id=bot_id, username=username)
        self.token = f"{bot_id}:fake"
        self.photo_url = photo_url
        self.fail_send = False
        self.fail_photo = False
        self.sent: list[dict] = []

    async def get_me(self):
        return self.identity

    async def send_message(self, chat_id, text, parse_mode=None):
        if self.fail_send:
            raise PlatformError("Telegram", "sendMessage", "Forbidden: bot was kicked")
        self.sent.append({"chat_id": chat_id, "text": text, "parse_mode": parse_mode})

    async def get_user_profile_photo_url(self, user_id):
        if self.fail_photo:
            raise PlatformError("Telegram", "getUserProfilePhotos", "timeout")
        return self.photo_url


class FakeWorkspaces(WorkspaceDirectory):
    """Serves fake Slack clients for teams that exist in the store."""

    def __init__(self, store: BridgeStore, clients: dict[str, FakeSlackClient]):
        super().__init__(store, http_client=None)
        self.clients = clients

    async def client_for(self, team_id):
        if team_id not in self.clients:
            raise TeamNotFound(team_id)
        await self.get_team(team_id)
        return self.clients[team_id]


def telegram_api_handler(request: httpx.Request) -> httpx.Response:
    """MockTransport handler for the Telegram Bot API.

    Tokens starting with "999" are rejected, as Telegram does for revoked tokens.
    """
    token, method = request.url.path.removeprefix("/bot").split("/", 1)
    if token.startswith("999"):
        return httpx.Response(401, json={"ok": False, "description": "Unauthorized"})
    if method == "getMe":
        bot_id = token.split(":", 1)[0]
        return httpx.Response(200, json={
            "ok": True,
            "result": {"id": int(bot_id), "is_bot": True, "username": f"bot{bot_id}"},
        })
    return httpx.Response(200, json={"ok": True, "result": True})


async def count_rows(engine: AsyncEngine, model) -> int:
    async with engine.connect() as conn:
        result = await conn.execute(select(func.count()).select_from(model))
        return result.scalar_one()


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
async def engine():
    """In-memory SQLite shared by every session through StaticPool."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def store(engine) -> BridgeStore:
    store = BridgeStore(engine)
    await store.upsert_team(WORKSPACE_ID, "Acme", "xoxb-test", SLACK_BOT_USER_ID)
    return store


@pytest.fixture
def error_sink(store) -> ErrorSink:
    return ErrorSink(store)


@pytest.fixture
def slack() -> FakeSlackClient:
    return FakeSlackClient()


@pytest.fixture
def workspaces(store, slack) -> FakeWorkspaces:
    return FakeWorkspaces(store, {WORKSPACE_ID: slack})


@pytest.fixture
async def http_client():
    async with httpx.AsyncClient(transport=httpx.MockTransport(telegram_api_handler)) as client:
        yield client


@pytest.fixture
def default_bot() -> FakeTelegramBot:
    return FakeTelegramBot(DEFAULT_BOT_ID, DEFAULT_BOT_USERNAME, photo_url="https://t.me/avatar.jpg")


@pytest.fixture
def registry(store, error_sink, http_client, default_bot) -> BotRegistry:
    registry = BotRegistry(store, error_sink, http_client, public_url="https://bridge.example.com")
    registry.add(default_bot.identity, default_bot)
    registry.default_bot = default_bot.identity
    return registry


@pytest.fixture
def pairing(store, workspaces, error_sink) -> PairingEngine:
    return PairingEngine(store, workspaces, error_sink)


@pytest.fixture
def router(store, pairing, registry, workspaces, error_sink) -> MessageRouter:
    return MessageRouter(store, pairing, registry, workspaces, error_sink)


@pytest.fixture
def setup_workflow(store, pairing, registry, workspaces, error_sink) -> SetupWorkflow:
    workflow = SetupWorkflow(store, pairing, registry, workspaces, error_sink)
    pairing.on_paired(workflow.announce_pairing)
    return workflow
