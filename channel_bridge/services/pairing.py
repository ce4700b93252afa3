"""
Pairing Engine: links a Slack channel to a Telegram chat via one-time codes.

Flow:
1. A Slack user asks to connect a channel through a given bot
2. A random code is stored as a PendingCode and posted to the channel
3. Someone sends that code to the bot from a Telegram chat
4. The code is consumed and the mapping is written per the channel's mode
5. Listeners are told about the new pairing

Codes are single-use: a code is burned as soon as a redemption claims
it, even when writing the mapping afterwards fails. Unredeemed codes
are swept once they are older than the configured max age.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from ..core.exceptions import InvalidCode, MappingWriteError, PersistenceError
from ..models import ConnectionType
from .error_sink import ErrorSink
from .store import BridgeStore
from .workspaces import WorkspaceDirectory

logger = logging.getLogger(__name__)

DEFAULT_CODE_MAX_AGE = timedelta(hours=1)

CODE_ERROR_TEXT = "An error occurred while generating the code. Please try again."


# =============================================================================
# EVENTS
# =============================================================================


@dataclass(frozen=True)
class Paired:
    """A code was redeemed and the mapping is in place."""
    telegram_chat_id: str
    telegram_chat_title: str | None
    telegram_bot_id: str
    slack_channel_id: str
    slack_workspace_id: str
    slack_user_id: str
    connection_type: ConnectionType


PairedListener = Callable[[Paired], Awaitable[None]]


def pairing_instructions(bot_username: str, code: str) -> str:
    return (
        "To connect this Slack channel with a Telegram group, please:\n\n"
        f"1. Add @{bot_username} to your Telegram group.\n"
        "2. Send the following code to the Telegram group:\n\n"
        f"`{code}`"
    )


# =============================================================================
# PAIRING ENGINE
# =============================================================================


class PairingEngine:
    """Issues, redeems and expires pairing codes."""

    def __init__(
        self,
        store: BridgeStore,
        workspaces: WorkspaceDirectory,
        error_sink: ErrorSink,
        code_max_age: timedelta = DEFAULT_CODE_MAX_AGE,
    ):
        self._store = store
        self._workspaces = workspaces
        self._error_sink = error_sink
        self.code_max_age = code_max_age
        self._listeners: list[PairedListener] = []

    def on_paired(self, listener: PairedListener) -> None:
        self._listeners.append(listener)

    # =========================================================================
    # REQUEST
    # =========================================================================

    async def request_pairing(
        self,
        channel_id: str,
        requesting_user_id: str,
        team_id: str,
        bot_username: str,
        bot_id: str,
    ) -> str:
        """
        Issue a code for (channel, bot) and post setup instructions.

        Raises:
            TeamNotFound: the workspace has no stored credentials
            PersistenceError: the code could not be stored (the channel is
                told to try again)
        """
        slack = await self._workspaces.client_for(team_id)
        code = str(uuid4())

        try:
            await self._store.create_pending_code(
                code=code,
                slack_channel_id=channel_id,
                slack_user_id=requesting_user_id,
                slack_workspace_id=team_id,
                telegram_bot_id=bot_id,
            )
        except PersistenceError as e:
            await self._error_sink.record(e)
            await slack.post_message(channel_id, CODE_ERROR_TEXT)
            raise

        await slack.post_message(channel_id, pairing_instructions(bot_username, code))
        logger.info(f"Generated code {code} for Slack team {team_id}, channel {channel_id}")
        return code

    # =========================================================================
    # REDEEM
    # =========================================================================

    async def redeem_code(
        self,
        code: str,
        bot_id: str,
        telegram_chat_id: str,
        telegram_chat_title: str | None = None,
    ) -> Paired:
        """
        Redeem a code sent to `bot_id` from `telegram_chat_id`.

        Single mode drops the channel's existing mappings before writing the
        new one; multiple mode adds the chat next to them.

        Raises:
            InvalidCode: no outstanding code matches, or another chat
                redeemed it first
            PersistenceError: the code could not be looked up or claimed
            MappingWriteError: the mapping could not be written; the code
                is burned regardless
        """
        pending = await self._store.get_pending_code(code, bot_id)
        if pending is None:
            raise InvalidCode(code)

        # Burn the code before writing: racing chats serialize on this delete
        if not await self._store.claim_pending_code(code, bot_id):
            raise InvalidCode(code)

        connection_type = await self._store.get_connection_type(
            pending.slack_channel_id, pending.slack_workspace_id
        )
        write_mapping = (
            self._store.replace_channel_mapping
            if connection_type == ConnectionType.SINGLE
            else self._store.upsert_mapping
        )
        try:
            await write_mapping(
                telegram_chat_id=telegram_chat_id,
                slack_channel_id=pending.slack_channel_id,
                slack_workspace_id=pending.slack_workspace_id,
                telegram_bot_id=bot_id,
            )
        except PersistenceError as e:
            raise MappingWriteError(f"Mapping for code {code} could not be stored") from e

        logger.info(
            f"Mapped Telegram chat {telegram_chat_id} to Slack channel "
            f"{pending.slack_channel_id} ({connection_type.value})"
        )

        paired = Paired(
            telegram_chat_id=telegram_chat_id,
            telegram_chat_title=telegram_chat_title,
            telegram_bot_id=bot_id,
            slack_channel_id=pending.slack_channel_id,
            slack_workspace_id=pending.slack_workspace_id,
            slack_user_id=pending.slack_user_id,
            connection_type=connection_type,
        )
        await self._emit(paired)
        return paired

    async def _emit(self, paired: Paired) -> None:
        for listener in self._listeners:
            try:
                await listener(paired)
            except Exception as e:
                # The mapping is committed; a failed notification must not undo it
                await self._error_sink.record(e)

    # =========================================================================
    # EXPIRY
    # =========================================================================

    async def expire_stale_codes(
        self,
        max_age: timedelta | None = None,
        now: datetime | None = None,
    ) -> int:
        """Delete every pending code created before now - max_age."""
        cutoff = (now or datetime.now(timezone.utc)) - (max_age or self.code_max_age)
        removed = await self._store.delete_pending_codes_older_than(cutoff)
        logger.info(f"Expired {removed} pairing codes older than {cutoff.isoformat()}")
        return removed
