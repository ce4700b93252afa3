"""
Bot Registry: the single owner of live Telegram bot clients.

Keyed by Telegram bot id. Filled at startup from the shared default bot
and every stored team registration, and grown whenever a workspace
submits a new custom bot token. The router and the setup workflow look
clients up here; nothing else keeps its own client cache.
"""

import logging
import re

import httpx

from ..core.exceptions import InvalidToken, PlatformError, RoutingError
from ..integrations.telegram import BotIdentity, TelegramBotClient
from .error_sink import ErrorSink
from .store import BridgeStore

logger = logging.getLogger(__name__)

BOT_TOKEN_PATTERN = re.compile(r"^\d+:[A-Za-z0-9_-]{35}$")


def is_bot_token(text: str) -> bool:
    return bool(BOT_TOKEN_PATTERN.match(text.strip()))


class BotRegistry:
    """In-memory map of bot id -> live TelegramBotClient."""

    def __init__(
        self,
        store: BridgeStore,
        error_sink: ErrorSink,
        http_client: httpx.AsyncClient,
        public_url: str | None = None,
    ):
        self._store = store
        self._error_sink = error_sink
        self._http = http_client
        self._public_url = public_url.rstrip("/") if public_url else None
        self._clients: dict[str, TelegramBotClient] = {}
        self._identities: dict[str, BotIdentity] = {}
        self.default_bot: BotIdentity | None = None

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def get(self, bot_id: str) -> TelegramBotClient | None:
        return self._clients.get(bot_id)

    def require(self, bot_id: str) -> TelegramBotClient:
        client = self._clients.get(bot_id)
        if client is None:
            raise RoutingError(bot_id)
        return client

    def identity(self, bot_id: str) -> BotIdentity | None:
        return self._identities.get(bot_id)

    def __contains__(self, bot_id: object) -> bool:
        return bot_id in self._clients

    def __len__(self) -> int:
        return len(self._clients)

    # =========================================================================
    # INSTALL
    # =========================================================================

    def add(self, identity: BotIdentity, client: TelegramBotClient) -> None:
        """Make a client resolvable by its bot id."""
        self._clients[identity.id] = client
        self._identities[identity.id] = identity

    async def _validate(self, token: str) -> tuple[BotIdentity, TelegramBotClient]:
        client = TelegramBotClient(token, self._http)
        try:
            identity = await client.get_me()
        except PlatformError as e:
            raise InvalidToken("Telegram rejected the bot token") from e
        return identity, client

    async def _activate(self, identity: BotIdentity, client: TelegramBotClient) -> None:
        """Register the client and point the bot's webhook at us."""
        self.add(identity, client)

        if self._public_url:
            try:
                await client.set_webhook(f"{self._public_url}/bot/{identity.id}")
            except PlatformError as e:
                await self._error_sink.record(e)

        logger.info(f"Telegram bot @{identity.username} set up successfully.")

    async def install_default(self, token: str) -> BotIdentity:
        """Install the shared default bot (not tied to any workspace)."""
        identity, client = await self._validate(token)
        await self._activate(identity, client)
        self.default_bot = identity
        return identity

    async def load(self) -> int:
        """Install every stored team bot. Returns how many came up."""
        installed = 0
        for registration in await self._store.list_bot_registrations():
            try:
                identity, client = await self._validate(registration.telegram_bot_token)
            except InvalidToken as e:
                await self._error_sink.record(e)
                continue
            await self._activate(identity, client)
            installed += 1
        return installed

    async def register_bot(self, team_id: str, token: str) -> BotIdentity:
        """Validate a submitted token, persist it for the team, and install it.

        Raises InvalidToken for malformed or rejected tokens. Re-submitting a
        known bot refreshes its stored token.
        """
        token = token.strip()
        if not is_bot_token(token):
            raise InvalidToken("Malformed Telegram bot token")

        identity, client = await self._validate(token)
        await self._store.upsert_bot_registration(
            team_id=team_id,
            bot_token=token,
            bot_username=identity.username,
            bot_id=identity.id,
        )
        await self._activate(identity, client)
        logger.info(f"Stored Telegram bot @{identity.username} for team {team_id}")
        return identity
