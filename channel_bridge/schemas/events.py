"""Inbound platform payloads, decoded once at the HTTP boundary.

Slack Events API and Telegram updates are loosely shaped JSON; the core
only ever sees the two models below.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# Slack subtypes that are still a person talking in the channel
FORWARDABLE_SUBTYPES = {None, "thread_broadcast", "file_share", "me_message"}


class SlackEventKind(str, Enum):
    """What a Slack event means to the bridge."""

    MESSAGE = "message"
    DIRECT_MESSAGE = "direct_message"
    MEMBER_JOINED = "member_joined"
    IGNORED = "ignored"


class SlackInboundEvent(BaseModel):
    """A Slack event, classified."""

    kind: SlackEventKind
    team_id: str
    channel_id: str | None = None
    user_id: str | None = None
    username: str | None = None
    text: str = ""
    ts: str | None = None

    @classmethod
    def from_payload(cls, event: dict[str, Any], team_id: str) -> "SlackInboundEvent":
        subtype = event.get("subtype")

        if event.get("type") != "message":
            kind = SlackEventKind.IGNORED
        elif subtype == "channel_join":
            kind = SlackEventKind.MEMBER_JOINED
        elif event.get("bot_id") or subtype not in FORWARDABLE_SUBTYPES:
            # Bot echoes (including our own posts), deletions, edits
            kind = SlackEventKind.IGNORED
        elif event.get("channel_type") == "im":
            kind = SlackEventKind.DIRECT_MESSAGE
        else:
            kind = SlackEventKind.MESSAGE

        return cls(
            kind=kind,
            team_id=event.get("team") or team_id,
            channel_id=event.get("channel"),
            user_id=event.get("user"),
            username=event.get("username"),
            text=event.get("text") or "",
            ts=event.get("ts"),
        )


class TelegramSender(BaseModel):
    id: str
    first_name: str | None = None
    username: str | None = None


class TelegramInboundMessage(BaseModel):
    """A Telegram message delivered to one of our bots."""

    chat_id: str
    chat_title: str | None = None
    sender: TelegramSender | None = None
    text: str | None = None
    has_photo: bool = False
    new_chat_member_ids: list[str] = Field(default_factory=list)

    @classmethod
    def from_update(cls, update: dict[str, Any]) -> "TelegramInboundMessage | None":
        """Decode a webhook update; None when it carries no message."""
        message = update.get("message")
        if not message:
            return None

        chat = message.get("chat") or {}
        sender = message.get("from")
        return cls(
            chat_id=str(chat.get("id")),
            chat_title=chat.get("title"),
            sender=TelegramSender(
                id=str(sender["id"]),
                first_name=sender.get("first_name"),
                username=sender.get("username"),
            ) if sender else None,
            text=message.get("text"),
            has_photo=bool(message.get("photo")),
            new_chat_member_ids=[
                str(member["id"]) for member in message.get("new_chat_members") or []
            ],
        )

    def bot_was_added(self, bot_id: str) -> bool:
        return bot_id in self.new_chat_member_ids
