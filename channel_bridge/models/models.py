"""SQLAlchemy ORM Models for Channel Bridge.

No foreign keys: the store enforces integrity between tables, and the
unique constraints below carry the mapping and thread invariants that
the upserts resolve conflicts against.
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    DateTime,
    Enum,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, IntIdMixin, TimestampMixin, utcnow


# =============================================================================
# ENUMS
# =============================================================================


class ConnectionType(str, PyEnum):
    """Per-channel connection mode.

    SINGLE keeps a channel linked to exactly one Telegram chat. MULTIPLE lets
    several chats fan into the channel, each grouped under its own thread.
    """
    SINGLE = "single"
    MULTIPLE = "multiple"

    @classmethod
    def default(cls) -> "ConnectionType":
        return cls.SINGLE


# =============================================================================
# SLACK WORKSPACES & TELEGRAM BOTS
# =============================================================================


class SlackTeam(Base, TimestampMixin):
    """Slack workspace credentials, written by the OAuth install."""

    __tablename__ = "slack_teams"

    team_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    team_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    access_token: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Slack OAuth bot access token"
    )
    bot_user_id: Mapped[str] = mapped_column(String(50), nullable=False)


class TeamBot(Base, IntIdMixin):
    """A custom Telegram bot registered by a Slack workspace."""

    __tablename__ = "team_bots"
    __table_args__ = (
        UniqueConstraint("team_id", "telegram_bot_id"),
    )

    team_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    telegram_bot_token: Mapped[str] = mapped_column(Text, nullable=False)
    telegram_bot_username: Mapped[str] = mapped_column(String(255), nullable=False)
    telegram_bot_id: Mapped[str] = mapped_column(String(50), nullable=False)


# =============================================================================
# MAPPINGS & PAIRING
# =============================================================================


class Mapping(Base, IntIdMixin):
    """Durable link between one Slack channel and one Telegram chat."""

    __tablename__ = "mappings"
    __table_args__ = (
        UniqueConstraint("telegram_chat_id", "slack_workspace_id", "telegram_bot_id"),
        Index("ix_mappings_channel", "slack_channel_id", "slack_workspace_id"),
    )

    telegram_chat_id: Mapped[str] = mapped_column(String(50), nullable=False)
    slack_channel_id: Mapped[str] = mapped_column(String(50), nullable=False)
    slack_workspace_id: Mapped[str] = mapped_column(String(50), nullable=False)
    telegram_bot_id: Mapped[str] = mapped_column(String(50), nullable=False)


class PendingCode(Base):
    """One-time pairing code waiting to be sent from a Telegram chat."""

    __tablename__ = "pending_codes"

    code: Mapped[str] = mapped_column(String(64), primary_key=True)
    slack_channel_id: Mapped[str] = mapped_column(String(50), nullable=False)
    slack_user_id: Mapped[str] = mapped_column(String(50), nullable=False)
    slack_workspace_id: Mapped[str] = mapped_column(String(50), nullable=False)
    telegram_bot_id: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )


class ChannelSetting(Base, IntIdMixin):
    """Connection mode of a Slack channel. Absent means single."""

    __tablename__ = "channel_settings"
    __table_args__ = (
        UniqueConstraint("slack_channel_id", "slack_workspace_id"),
    )

    slack_channel_id: Mapped[str] = mapped_column(String(50), nullable=False)
    slack_workspace_id: Mapped[str] = mapped_column(String(50), nullable=False)
    connection_type: Mapped[ConnectionType] = mapped_column(
        Enum(
            ConnectionType,
            name="connection_type",
            values_callable=lambda x: [e.value for e in x],
            native_enum=False,
        ),
        default=ConnectionType.SINGLE,
        nullable=False,
    )


class SlackThread(Base, IntIdMixin):
    """Thread anchor grouping one Telegram chat's messages in a channel."""

    __tablename__ = "slack_threads"
    __table_args__ = (
        UniqueConstraint("slack_channel_id", "telegram_chat_id"),
    )

    slack_channel_id: Mapped[str] = mapped_column(String(50), nullable=False)
    telegram_chat_id: Mapped[str] = mapped_column(String(50), nullable=False)
    thread_ts: Mapped[str] = mapped_column(String(32), nullable=False)


class ChannelMessage(Base, IntIdMixin):
    """The "choose connection" prompt posted when the bot joins a channel."""

    __tablename__ = "channel_messages"

    channel_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    message_ts: Mapped[str] = mapped_column(String(32), nullable=False)


# =============================================================================
# ERROR LOG
# =============================================================================


class ErrorLog(Base, IntIdMixin):
    """Durable operator error log."""

    __tablename__ = "errors"

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    stack_trace: Mapped[str | None] = mapped_column(Text, nullable=True)
