"""
Message Router: relays messages between Slack channels and Telegram chats.

Slack -> Telegram:
- Only person-authored channel messages are relayed
- Every mapped chat gets "<b>{name}</b>: {text}" as HTML

Telegram -> Slack:
- Text matching an outstanding pairing code is consumed, not relayed
- "Bot added to group" gets a static instruction reply
- Everything else goes to every mapped channel:
  - single mode: a top-level post under the sender's name and avatar
  - multiple mode: a reply in the chat's own thread, whose anchor is
    the first message relayed from that chat

A failing destination is recorded and skipped; the others still get the
message.
"""

import html
import logging

from ..core.exceptions import (
    BridgeError,
    InvalidCode,
    MappingWriteError,
    PersistenceError,
    PlatformError,
)
from ..integrations.telegram import TelegramBotClient
from ..models import ConnectionType, Mapping
from ..schemas.events import SlackEventKind, SlackInboundEvent, TelegramInboundMessage
from .bot_registry import BotRegistry
from .error_sink import ErrorSink
from .pairing import PairingEngine
from .store import BridgeStore
from .workspaces import WorkspaceDirectory

logger = logging.getLogger(__name__)

BOT_ADDED_TEXT = (
    "Hello! Please submit the code provided in Slack to connect this group "
    "with your Slack channel."
)
CODE_FAILURE_TEXT = "An error occurred while processing your code."
MAPPING_FAILURE_TEXT = "An error occurred while creating the mapping."
PHOTO_PLACEHOLDER = "sent a photo"
MESSAGE_PLACEHOLDER = "sent a message"


def escape_html(text: str) -> str:
    """Escape &, < and > for Telegram's HTML parse mode."""
    return html.escape(text, quote=False)


class MessageRouter:
    """Routes inbound platform messages to their mapped counterparts."""

    def __init__(
        self,
        store: BridgeStore,
        pairing: PairingEngine,
        registry: BotRegistry,
        workspaces: WorkspaceDirectory,
        error_sink: ErrorSink,
    ):
        self._store = store
        self._pairing = pairing
        self._registry = registry
        self._workspaces = workspaces
        self._error_sink = error_sink

    # =========================================================================
    # SLACK -> TELEGRAM
    # =========================================================================

    async def route_from_slack(self, event: SlackInboundEvent) -> int:
        """Relay a Slack channel message. Returns the number of chats reached."""
        if event.kind != SlackEventKind.MESSAGE or not event.channel_id:
            return 0

        try:
            mappings = await self._store.list_mappings_for_channel(event.channel_id, event.team_id)
        except PersistenceError as e:
            await self._error_sink.record(e)
            return 0

        if not mappings:
            return 0

        display_name = await self._slack_display_name(event)
        text = f"<b>{escape_html(display_name)}</b>: {escape_html(event.text)}"

        delivered = 0
        for mapping in mappings:
            try:
                bot = self._registry.require(mapping.telegram_bot_id)
                await bot.send_message(mapping.telegram_chat_id, text, parse_mode="HTML")
            except BridgeError as e:
                await self._error_sink.record(e)
                continue
            delivered += 1
            logger.info(f"Message sent to Telegram chat {mapping.telegram_chat_id}")
        return delivered

    async def _slack_display_name(self, event: SlackInboundEvent) -> str:
        if event.user_id:
            try:
                slack = await self._workspaces.client_for(event.team_id)
                return await slack.get_user_display_name(event.user_id)
            except BridgeError as e:
                await self._error_sink.record(e)
                return "Unknown User"
        if event.username:
            return event.username

        await self._error_sink.record("No user ID or username found in the event")
        return "Unknown User"

    # =========================================================================
    # TELEGRAM -> SLACK
    # =========================================================================

    async def route_from_telegram(self, message: TelegramInboundMessage, bot_id: str) -> int:
        """Handle a message received by `bot_id`. Returns channels reached."""
        bot = self._registry.get(bot_id)
        if bot is None:
            await self._error_sink.record(f"Telegram bot with ID {bot_id} not found.")
            return 0

        if message.bot_was_added(bot_id):
            await self._reply(bot, message.chat_id, BOT_ADDED_TEXT)
            return 0

        if message.text:
            try:
                await self._pairing.redeem_code(
                    message.text.strip(), bot_id, message.chat_id, message.chat_title
                )
                return 0
            except InvalidCode:
                pass  # not a code, relay as a normal message
            except MappingWriteError as e:
                await self._error_sink.record(e)
                await self._reply(bot, message.chat_id, MAPPING_FAILURE_TEXT)
                return 0
            except PersistenceError as e:
                await self._error_sink.record(e)
                await self._reply(bot, message.chat_id, CODE_FAILURE_TEXT)
                return 0

        return await self._forward_to_slack(message, bot_id, bot)

    async def _reply(self, bot: TelegramBotClient, chat_id: str, text: str) -> None:
        try:
            await bot.send_message(chat_id, text)
        except PlatformError as e:
            await self._error_sink.record(e)

    async def _forward_to_slack(
        self,
        message: TelegramInboundMessage,
        bot_id: str,
        bot: TelegramBotClient,
    ) -> int:
        try:
            mappings = await self._store.list_mappings_for_chat(message.chat_id, bot_id)
        except PersistenceError as e:
            await self._error_sink.record(e)
            return 0

        if not mappings:
            return 0

        if message.text:
            text = message.text
        elif message.has_photo:
            text = PHOTO_PLACEHOLDER
        else:
            text = MESSAGE_PLACEHOLDER

        sender = message.sender
        sender_name = (sender.first_name if sender else None) or "Unknown"
        if sender and sender.username:
            username = f"{sender_name} @{sender.username}"
        else:
            username = sender_name
        icon_url = await self._profile_photo_url(bot, sender.id) if sender else None

        delivered = 0
        for mapping in mappings:
            try:
                await self._post_to_channel(mapping, message.chat_id, text, username, icon_url)
            except BridgeError as e:
                await self._error_sink.record(e)
                continue
            delivered += 1
            logger.info(f"Message sent to Slack channel {mapping.slack_channel_id}")
        return delivered

    async def _profile_photo_url(self, bot: TelegramBotClient, user_id: str) -> str | None:
        """Best-effort avatar lookup; no avatar on failure."""
        try:
            return await bot.get_user_profile_photo_url(user_id)
        except PlatformError as e:
            logger.warning(f"Could not fetch profile photo for Telegram user {user_id}: {e}")
            return None

    async def _post_to_channel(
        self,
        mapping: Mapping,
        telegram_chat_id: str,
        text: str,
        username: str,
        icon_url: str | None,
    ) -> None:
        slack = await self._workspaces.client_for(mapping.slack_workspace_id)
        connection_type = await self._store.get_connection_type(
            mapping.slack_channel_id, mapping.slack_workspace_id
        )

        if connection_type == ConnectionType.SINGLE:
            await slack.post_message(
                mapping.slack_channel_id, text, username=username, icon_url=icon_url
            )
            return

        anchor = await self._store.get_thread_anchor(mapping.slack_channel_id, telegram_chat_id)
        if anchor:
            await slack.post_message(
                mapping.slack_channel_id,
                text,
                thread_ts=anchor,
                username=username,
                icon_url=icon_url,
            )
            return

        ts = await slack.post_message(
            mapping.slack_channel_id, text, username=username, icon_url=icon_url
        )
        winner = await self._store.claim_thread_anchor(mapping.slack_channel_id, telegram_chat_id, ts)
        if winner == ts:
            return

        # Another message anchored the thread first: move this one under it
        logger.info(
            f"Thread for chat {telegram_chat_id} in {mapping.slack_channel_id} "
            f"was anchored concurrently at {winner}"
        )
        await slack.post_message(
            mapping.slack_channel_id,
            text,
            thread_ts=winner,
            username=username,
            icon_url=icon_url,
        )
        try:
            await slack.delete_message(mapping.slack_channel_id, ts)
        except PlatformError as e:
            await self._error_sink.record(e)
