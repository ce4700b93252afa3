"""
Setup Workflow: everything a workspace does before messages can flow.

Handles:
- The app joining a channel (posts the "choose connection" prompt)
- Prompt buttons (connect a bot, create a custom bot, pick a mode)
- Custom bot token submissions, from the modal or by direct message
- Announcing a completed pairing on both sides
"""

import logging

from ..core.exceptions import InvalidToken, PersistenceError, PlatformError
from ..integrations.slack import SlackBlocks, SlackClient, SlackModals
from ..integrations.slack.blocks import (
    BOT_TOKEN_BLOCK,
    CONNECT_CUSTOM_BOT,
    CONNECT_DEFAULT_BOT,
    CONNECT_NEW_BOT_TO_CHANNEL,
    CONNECTION_TYPE_MULTIPLE,
    CONNECTION_TYPE_SINGLE,
    CREATE_NEW_CUSTOM_BOT,
)
from ..models import ConnectionType
from ..schemas.events import SlackInboundEvent
from .bot_registry import BotRegistry, is_bot_token
from .error_sink import ErrorSink
from .pairing import PairingEngine, Paired
from .store import BridgeStore
from .workspaces import WorkspaceDirectory

logger = logging.getLogger(__name__)

INVALID_TOKEN_TEXT = "Invalid Telegram bot token. Please ensure you entered the correct token."
SAVE_TOKEN_FAILED_TEXT = "An error occurred while saving your bot token. Please try again."
TOKEN_HELP_TEXT = "Please provide a valid Telegram bot token to proceed."
NO_DEFAULT_BOT_TEXT = "The default Telegram bot is not available right now. Please create a custom bot."
NO_CUSTOM_BOT_TEXT = "This workspace has no custom Telegram bot yet. Please create one first."
INVITE_APP_TEXT = "Invite the app to the Slack channel you want to connect, then pick your bot from the prompt."

CONNECTION_TYPE_ACTIONS = {
    CONNECTION_TYPE_SINGLE: ConnectionType.SINGLE,
    CONNECTION_TYPE_MULTIPLE: ConnectionType.MULTIPLE,
}


class SetupWorkflow:
    """Slack-side onboarding: prompts, bot registration, pairing notices."""

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
    # CHANNEL PROMPT
    # =========================================================================

    async def handle_member_joined(self, event: SlackInboundEvent) -> bool:
        """Post the prompt when the joining member is our own bot user."""
        team = await self._workspaces.get_team(event.team_id)
        if not event.channel_id or event.user_id != team.bot_user_id:
            return False

        await self.post_connection_options(event.channel_id, event.team_id)
        return True

    async def post_connection_options(self, channel_id: str, team_id: str) -> str:
        slack = await self._workspaces.client_for(team_id)
        custom_bot = await self._store.get_current_custom_bot(team_id)
        connection_type = await self._store.get_connection_type(channel_id, team_id)

        blocks = SlackBlocks.connection_options(
            default_bot_username=self._registry.default_bot.username if self._registry.default_bot else None,
            custom_bot_username=custom_bot.telegram_bot_username if custom_bot else None,
            connection_type=connection_type,
        )
        ts = await slack.post_message(channel_id, "Please choose an option:", blocks=blocks)
        await self._store.upsert_sentinel(channel_id, ts)
        logger.info(f"Stored message_ts for channel {channel_id}")
        return ts

    async def _replace_connection_options(self, slack: SlackClient, channel_id: str, team_id: str) -> None:
        message_ts = await self._store.pop_sentinel(channel_id)
        if message_ts is None:
            return
        try:
            await slack.delete_message(channel_id, message_ts)
        except PlatformError as e:
            await self._error_sink.record(e)
        await self.post_connection_options(channel_id, team_id)

    # =========================================================================
    # BUTTONS
    # =========================================================================

    async def handle_action(
        self,
        action_id: str,
        team_id: str,
        user_id: str,
        channel_id: str | None,
        trigger_id: str | None = None,
    ) -> None:
        slack = await self._workspaces.client_for(team_id)

        if action_id == CONNECT_DEFAULT_BOT and channel_id:
            bot = self._registry.default_bot
            if bot is None:
                await slack.post_message(channel_id, NO_DEFAULT_BOT_TEXT)
                return
            await self._pairing.request_pairing(channel_id, user_id, team_id, bot.username, bot.id)

        elif action_id == CONNECT_CUSTOM_BOT and channel_id:
            custom_bot = await self._store.get_current_custom_bot(team_id)
            if custom_bot is None:
                await slack.post_message(channel_id, NO_CUSTOM_BOT_TEXT)
                return
            await self._pairing.request_pairing(
                channel_id,
                user_id,
                team_id,
                custom_bot.telegram_bot_username,
                custom_bot.telegram_bot_id,
            )

        elif action_id == CREATE_NEW_CUSTOM_BOT and trigger_id:
            await slack.open_modal(trigger_id, SlackModals.create_bot(channel_id or ""))

        elif action_id in CONNECTION_TYPE_ACTIONS and channel_id:
            connection_type = CONNECTION_TYPE_ACTIONS[action_id]
            await self._store.set_connection_type(channel_id, team_id, connection_type)
            await slack.post_message(
                channel_id,
                f"Connection mode set to *{connection_type.value}* for this channel.",
            )

        elif action_id == CONNECT_NEW_BOT_TO_CHANNEL:
            await slack.post_message(user_id, INVITE_APP_TEXT)

        else:
            logger.debug(f"Ignoring Slack action {action_id}")

    # =========================================================================
    # BOT TOKENS
    # =========================================================================

    @staticmethod
    def validate_token_submission(token: str) -> dict | None:
        """Modal response for a malformed token, or None when it looks valid."""
        if is_bot_token(token):
            return None
        return {
            "response_action": "errors",
            "errors": {
                BOT_TOKEN_BLOCK: "Invalid Telegram bot token format. Please try again.",
            },
        }

    async def _register(self, slack: SlackClient, team_id: str, user_id: str, token: str):
        try:
            return await self._registry.register_bot(team_id, token)
        except InvalidToken as e:
            await self._error_sink.record(e)
            await slack.post_message(user_id, INVALID_TOKEN_TEXT)
        except PersistenceError as e:
            await self._error_sink.record(e)
            await slack.post_message(user_id, SAVE_TOKEN_FAILED_TEXT)
        return None

    async def complete_token_submission(
        self,
        team_id: str,
        user_id: str,
        channel_id: str | None,
        token: str,
    ) -> None:
        """Register a token submitted through the modal opened in `channel_id`."""
        slack = await self._workspaces.client_for(team_id)
        identity = await self._register(slack, team_id, user_id, token)
        if identity is None:
            return

        if channel_id:
            await self._replace_connection_options(slack, channel_id, team_id)

    async def handle_direct_message(self, event: SlackInboundEvent) -> None:
        """A direct message to the app is either a bot token or needs help."""
        slack = await self._workspaces.client_for(event.team_id)
        user_id = event.user_id
        if not user_id:
            return

        text = event.text.strip()
        if not is_bot_token(text):
            await slack.post_message(user_id, TOKEN_HELP_TEXT)
            return

        identity = await self._register(slack, event.team_id, user_id, text)
        if identity is None:
            return

        await slack.post_message(
            user_id,
            f"Successfully set up your Telegram bot @{identity.username}. Now you can "
            "connect your Slack channels to Telegram groups using this bot.",
        )
        await slack.post_message(
            user_id,
            "Connect to a Slack channel?",
            blocks=SlackBlocks.connect_new_bot_prompt(),
        )

    # =========================================================================
    # PAIRING NOTICES
    # =========================================================================

    async def announce_pairing(self, paired: Paired) -> None:
        """Tell both sides about a new mapping and retire the channel prompt."""
        title = paired.telegram_chat_title or paired.telegram_chat_id

        bot = self._registry.get(paired.telegram_bot_id)
        if bot is not None:
            try:
                await bot.send_message(
                    paired.telegram_chat_id,
                    f"Successfully connected this Telegram group ({title}) with Slack channel. 🚀",
                )
            except PlatformError as e:
                await self._error_sink.record(e)

        slack = await self._workspaces.client_for(paired.slack_workspace_id)
        message_ts = await self._store.pop_sentinel(paired.slack_channel_id)
        if message_ts:
            try:
                await slack.delete_message(paired.slack_channel_id, message_ts)
            except PlatformError as e:
                await self._error_sink.record(e)

        await slack.post_message(
            paired.slack_channel_id,
            f"Successfully connected this Slack Channel with Telegram group ({title})",
        )
        logger.info(f"Notified Slack channel {paired.slack_channel_id} about successful connection.")
