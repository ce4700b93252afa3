"""
Bridge Store: every read and write against the bridge tables.

Each public method runs in its own transaction. Conflict resolution is
pushed down to the database (INSERT ... ON CONFLICT) so that concurrent
writers never need a check-then-insert:
- single mode replaces a channel's mapping (delete, then upsert)
- multiple mode upserts on (telegram_chat_id, workspace, bot)
- thread anchors are insert-or-fetch: the first committed anchor wins
- pairing codes are claimed by an atomic delete: one winner per code

Any SQLAlchemy failure surfaces as PersistenceError.
"""

import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from ..core.database import build_session_factory
from ..core.exceptions import PersistenceError
from ..models import (
    ChannelMessage,
    ChannelSetting,
    ConnectionType,
    ErrorLog,
    Mapping,
    PendingCode,
    SlackTeam,
    SlackThread,
    TeamBot,
)

logger = logging.getLogger(__name__)


class BridgeStore:
    """Persistent store for teams, bots, mappings, codes and threads."""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._session_factory = build_session_factory(engine)
        self._dialect = engine.dialect.name

    def _insert(self, model):
        """Dialect-specific INSERT supporting ON CONFLICT."""
        if self._dialect == "postgresql":
            return postgresql.insert(model)
        if self._dialect == "sqlite":
            return sqlite.insert(model)
        raise PersistenceError(f"Unsupported database dialect: {self._dialect}")

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            logger.error(f"Database error during {operation}: {e}")
            raise PersistenceError(f"{operation} failed") from e

    # =========================================================================
    # TEAMS
    # =========================================================================

    async def upsert_team(
        self,
        team_id: str,
        team_name: str | None,
        access_token: str,
        bot_user_id: str,
    ) -> None:
        stmt = self._insert(SlackTeam).values(
            team_id=team_id,
            team_name=team_name,
            access_token=access_token,
            bot_user_id=bot_user_id,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[SlackTeam.team_id],
            set_={
                "access_token": stmt.excluded.access_token,
                "bot_user_id": stmt.excluded.bot_user_id,
            },
        )
        async with self._transaction("upsert_team") as session:
            await session.execute(stmt)

    async def get_team(self, team_id: str) -> SlackTeam | None:
        async with self._transaction("get_team") as session:
            return await session.get(SlackTeam, team_id)

    # =========================================================================
    # BOT REGISTRATIONS
    # =========================================================================

    async def upsert_bot_registration(
        self,
        team_id: str,
        bot_token: str,
        bot_username: str,
        bot_id: str,
    ) -> None:
        """Insert a team's bot, or refresh the stored token on re-submission."""
        stmt = self._insert(TeamBot).values(
            team_id=team_id,
            telegram_bot_token=bot_token,
            telegram_bot_username=bot_username,
            telegram_bot_id=bot_id,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[TeamBot.team_id, TeamBot.telegram_bot_id],
            set_={"telegram_bot_token": stmt.excluded.telegram_bot_token},
        )
        async with self._transaction("upsert_bot_registration") as session:
            await session.execute(stmt)

    async def list_bot_registrations(self) -> Sequence[TeamBot]:
        async with self._transaction("list_bot_registrations") as session:
            result = await session.execute(select(TeamBot).order_by(TeamBot.id))
            return result.scalars().all()

    async def get_current_custom_bot(self, team_id: str) -> TeamBot | None:
        """The most recently registered bot of a team."""
        async with self._transaction("get_current_custom_bot") as session:
            result = await session.execute(
                select(TeamBot)
                .where(TeamBot.team_id == team_id)
                .order_by(TeamBot.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    # =========================================================================
    # PENDING CODES
    # =========================================================================

    async def create_pending_code(
        self,
        code: str,
        slack_channel_id: str,
        slack_user_id: str,
        slack_workspace_id: str,
        telegram_bot_id: str,
        created_at: datetime | None = None,
    ) -> PendingCode:
        pending = PendingCode(
            code=code,
            slack_channel_id=slack_channel_id,
            slack_user_id=slack_user_id,
            slack_workspace_id=slack_workspace_id,
            telegram_bot_id=telegram_bot_id,
        )
        if created_at is not None:
            pending.created_at = created_at
        async with self._transaction("create_pending_code") as session:
            session.add(pending)
        return pending

    async def get_pending_code(self, code: str, telegram_bot_id: str) -> PendingCode | None:
        async with self._transaction("get_pending_code") as session:
            result = await session.execute(
                select(PendingCode).where(
                    PendingCode.code == code,
                    PendingCode.telegram_bot_id == telegram_bot_id,
                )
            )
            return result.scalar_one_or_none()

    async def claim_pending_code(self, code: str, telegram_bot_id: str) -> bool:
        """Consume a code. Only the first of several racing callers gets True."""
        async with self._transaction("claim_pending_code") as session:
            result = await session.execute(
                delete(PendingCode).where(
                    PendingCode.code == code,
                    PendingCode.telegram_bot_id == telegram_bot_id,
                )
            )
            return result.rowcount == 1

    async def delete_pending_codes_older_than(self, cutoff: datetime) -> int:
        async with self._transaction("delete_pending_codes_older_than") as session:
            result = await session.execute(
                delete(PendingCode).where(PendingCode.created_at < cutoff)
            )
            return result.rowcount

    # =========================================================================
    # CHANNEL SETTINGS
    # =========================================================================

    async def get_connection_type(
        self,
        slack_channel_id: str,
        slack_workspace_id: str,
    ) -> ConnectionType:
        async with self._transaction("get_connection_type") as session:
            result = await session.execute(
                select(ChannelSetting.connection_type).where(
                    ChannelSetting.slack_channel_id == slack_channel_id,
                    ChannelSetting.slack_workspace_id == slack_workspace_id,
                )
            )
            connection_type = result.scalar_one_or_none()
        return ConnectionType(connection_type) if connection_type else ConnectionType.default()

    async def set_connection_type(
        self,
        slack_channel_id: str,
        slack_workspace_id: str,
        connection_type: ConnectionType,
    ) -> None:
        stmt = self._insert(ChannelSetting).values(
            slack_channel_id=slack_channel_id,
            slack_workspace_id=slack_workspace_id,
            connection_type=connection_type,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ChannelSetting.slack_channel_id, ChannelSetting.slack_workspace_id],
            set_={"connection_type": stmt.excluded.connection_type},
        )
        async with self._transaction("set_connection_type") as session:
            await session.execute(stmt)

    # =========================================================================
    # MAPPINGS
    # =========================================================================

    def _mapping_upsert(
        self,
        telegram_chat_id: str,
        slack_channel_id: str,
        slack_workspace_id: str,
        telegram_bot_id: str,
    ):
        stmt = self._insert(Mapping).values(
            telegram_chat_id=telegram_chat_id,
            slack_channel_id=slack_channel_id,
            slack_workspace_id=slack_workspace_id,
            telegram_bot_id=telegram_bot_id,
        )
        return stmt.on_conflict_do_update(
            index_elements=[
                Mapping.telegram_chat_id,
                Mapping.slack_workspace_id,
                Mapping.telegram_bot_id,
            ],
            set_={"slack_channel_id": stmt.excluded.slack_channel_id},
        )

    async def replace_channel_mapping(
        self,
        telegram_chat_id: str,
        slack_channel_id: str,
        slack_workspace_id: str,
        telegram_bot_id: str,
    ) -> None:
        """Single mode: the channel ends up with exactly this one mapping."""
        async with self._transaction("replace_channel_mapping") as session:
            await session.execute(
                delete(Mapping).where(
                    Mapping.slack_channel_id == slack_channel_id,
                    Mapping.slack_workspace_id == slack_workspace_id,
                )
            )
            await session.execute(
                self._mapping_upsert(
                    telegram_chat_id, slack_channel_id, slack_workspace_id, telegram_bot_id
                )
            )

    async def upsert_mapping(
        self,
        telegram_chat_id: str,
        slack_channel_id: str,
        slack_workspace_id: str,
        telegram_bot_id: str,
    ) -> None:
        """Multiple mode: add the chat alongside the channel's other chats."""
        async with self._transaction("upsert_mapping") as session:
            await session.execute(
                self._mapping_upsert(
                    telegram_chat_id, slack_channel_id, slack_workspace_id, telegram_bot_id
                )
            )

    async def list_mappings_for_channel(
        self,
        slack_channel_id: str,
        slack_workspace_id: str,
    ) -> Sequence[Mapping]:
        async with self._transaction("list_mappings_for_channel") as session:
            result = await session.execute(
                select(Mapping)
                .where(
                    Mapping.slack_channel_id == slack_channel_id,
                    Mapping.slack_workspace_id == slack_workspace_id,
                )
                .order_by(Mapping.id)
            )
            return result.scalars().all()

    async def list_mappings_for_chat(
        self,
        telegram_chat_id: str,
        telegram_bot_id: str,
    ) -> Sequence[Mapping]:
        async with self._transaction("list_mappings_for_chat") as session:
            result = await session.execute(
                select(Mapping)
                .where(
                    Mapping.telegram_chat_id == telegram_chat_id,
                    Mapping.telegram_bot_id == telegram_bot_id,
                )
                .order_by(Mapping.id)
            )
            return result.scalars().all()

    # =========================================================================
    # THREAD ANCHORS
    # =========================================================================

    async def get_thread_anchor(self, slack_channel_id: str, telegram_chat_id: str) -> str | None:
        async with self._transaction("get_thread_anchor") as session:
            result = await session.execute(
                select(SlackThread.thread_ts).where(
                    SlackThread.slack_channel_id == slack_channel_id,
                    SlackThread.telegram_chat_id == telegram_chat_id,
                )
            )
            return result.scalar_one_or_none()

    async def claim_thread_anchor(
        self,
        slack_channel_id: str,
        telegram_chat_id: str,
        thread_ts: str,
    ) -> str:
        """Store thread_ts unless an anchor exists; return the anchor that won."""
        stmt = (
            self._insert(SlackThread)
            .values(
                slack_channel_id=slack_channel_id,
                telegram_chat_id=telegram_chat_id,
                thread_ts=thread_ts,
            )
            .on_conflict_do_nothing(
                index_elements=[SlackThread.slack_channel_id, SlackThread.telegram_chat_id],
            )
        )
        async with self._transaction("claim_thread_anchor") as session:
            await session.execute(stmt)
            result = await session.execute(
                select(SlackThread.thread_ts).where(
                    SlackThread.slack_channel_id == slack_channel_id,
                    SlackThread.telegram_chat_id == telegram_chat_id,
                )
            )
            return result.scalar_one()

    # =========================================================================
    # SENTINEL MESSAGES
    # =========================================================================

    async def upsert_sentinel(self, channel_id: str, message_ts: str) -> None:
        stmt = self._insert(ChannelMessage).values(channel_id=channel_id, message_ts=message_ts)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ChannelMessage.channel_id],
            set_={"message_ts": stmt.excluded.message_ts},
        )
        async with self._transaction("upsert_sentinel") as session:
            await session.execute(stmt)

    async def pop_sentinel(self, channel_id: str) -> str | None:
        """Remove the channel's prompt record and return its message ts."""
        async with self._transaction("pop_sentinel") as session:
            result = await session.execute(
                select(ChannelMessage).where(ChannelMessage.channel_id == channel_id)
            )
            sentinel = result.scalar_one_or_none()
            if sentinel is None:
                return None
            await session.delete(sentinel)
            return sentinel.message_ts

    # =========================================================================
    # ERRORS
    # =========================================================================

    async def insert_error(self, error_message: str, stack_trace: str | None) -> None:
        async with self._transaction("insert_error") as session:
            session.add(ErrorLog(error_message=error_message, stack_trace=stack_trace))
