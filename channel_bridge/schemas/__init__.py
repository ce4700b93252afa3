"""Pydantic schemas for inbound platform payloads."""

from .events import (
    SlackEventKind,
    SlackInboundEvent,
    TelegramInboundMessage,
    TelegramSender,
)

__all__ = [
    "SlackEventKind",
    "SlackInboundEvent",
    "TelegramInboundMessage",
    "TelegramSender",
]
