"""SQLAlchemy ORM Models for Channel Bridge."""

from .base import Base, IntIdMixin, TimestampMixin, utcnow
from .models import (
    # Enums
    ConnectionType,
    # Slack & Telegram credentials
    SlackTeam,
    TeamBot,
    # Mappings & pairing
    ChannelMessage,
    ChannelSetting,
    Mapping,
    PendingCode,
    SlackThread,
    # Errors
    ErrorLog,
)

__all__ = [
    # Base
    "Base",
    "IntIdMixin",
    "TimestampMixin",
    "utcnow",
    # Enums
    "ConnectionType",
    # Slack & Telegram credentials
    "SlackTeam",
    "TeamBot",
    # Mappings & pairing
    "Mapping",
    "PendingCode",
    "ChannelSetting",
    "SlackThread",
    "ChannelMessage",
    # Errors
    "ErrorLog",
]
