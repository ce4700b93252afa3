"""Block Kit builders for the setup workflow."""

import json

from ...models import ConnectionType

# Action IDs
CONNECT_DEFAULT_BOT = "connect_default_bot"
CONNECT_CUSTOM_BOT = "connect_custom_bot"
CREATE_NEW_CUSTOM_BOT = "create_new_custom_bot"
CONNECTION_TYPE_SINGLE = "connection_type_single"
CONNECTION_TYPE_MULTIPLE = "connection_type_multiple"
CONNECT_NEW_BOT_TO_CHANNEL = "connect_new_bot_to_channel"
DO_NOT_CONNECT = "do_not_connect"

# Modal callback
BOT_TOKEN_SUBMISSION = "bot_token_submission"
BOT_TOKEN_BLOCK = "bot_token_input"
BOT_TOKEN_ACTION = "bot_token"


def _button(text: str, action_id: str, style: str | None = None) -> dict:
    button = {
        "type": "button",
        "text": {"type": "plain_text", "text": text, "emoji": True},
        "value": action_id,
        "action_id": action_id,
    }
    if style:
        button["style"] = style
    return button


class SlackBlocks:
    """Factory for creating Slack Block Kit structures."""

    @staticmethod
    def connection_options(
        default_bot_username: str | None,
        custom_bot_username: str | None,
        connection_type: ConnectionType = ConnectionType.SINGLE,
    ) -> list[dict]:
        """The "choose connection" prompt posted when the app joins a channel."""
        bot_buttons = []
        if default_bot_username:
            bot_buttons.append(_button(f"Connect @{default_bot_username}", CONNECT_DEFAULT_BOT, "primary"))
        if custom_bot_username:
            bot_buttons.append(_button(f"Connect @{custom_bot_username}", CONNECT_CUSTOM_BOT))
        bot_buttons.append(_button("Create New Custom Bot", CREATE_NEW_CUSTOM_BOT))

        mode_label = "one Telegram group" if connection_type == ConnectionType.SINGLE else "several Telegram groups"
        return [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": "Please choose an option to connect this Slack channel with Telegram:",
                },
            },
            {"type": "actions", "elements": bot_buttons},
            {"type": "divider"},
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"*Connection mode:* this channel currently relays with {mode_label}.",
                },
            },
            {
                "type": "actions",
                "elements": [
                    _button("Single group", CONNECTION_TYPE_SINGLE),
                    _button("Multiple groups (one thread each)", CONNECTION_TYPE_MULTIPLE),
                ],
            },
        ]

    @staticmethod
    def connect_new_bot_prompt() -> list[dict]:
        return [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": "Would you like to connect your new Telegram bot to a Slack channel now?",
                },
            },
            {
                "type": "actions",
                "elements": [
                    _button("Yes", CONNECT_NEW_BOT_TO_CHANNEL),
                    _button("No", DO_NOT_CONNECT),
                ],
            },
        ]


class SlackModals:
    """Factory for creating Slack modal views."""

    @staticmethod
    def create_bot(channel_id: str) -> dict:
        return {
            "type": "modal",
            "callback_id": BOT_TOKEN_SUBMISSION,
            "private_metadata": json.dumps({"channel_id": channel_id}),
            "title": {"type": "plain_text", "text": "Create New Custom Bot"},
            "close": {"type": "plain_text", "text": "Cancel"},
            "submit": {"type": "plain_text", "text": "Submit"},
            "blocks": [
                {
                    "type": "section",
                    "text": {
                        "type": "mrkdwn",
                        "text": (
                            "To create a new Telegram bot, please follow these steps:\n\n"
                            "1. Open Telegram and start a conversation with *@BotFather*.\n"
                            "2. Send the command `/newbot` and follow the instructions to create a new bot.\n"
                            "3. Once you have created the bot, you will receive a bot token.\n"
                            "4. Paste the bot token below and click *Submit*."
                        ),
                    },
                },
                {
                    "type": "input",
                    "block_id": BOT_TOKEN_BLOCK,
                    "element": {
                        "type": "plain_text_input",
                        "action_id": BOT_TOKEN_ACTION,
                        "placeholder": {
                            "type": "plain_text",
                            "text": "Enter your Telegram bot token here",
                        },
                    },
                    "label": {"type": "plain_text", "text": "Telegram Bot Token"},
                },
            ],
        }
