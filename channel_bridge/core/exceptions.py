"""Error taxonomy for the bridge.

User-facing handlers only ever show generic texts for these; the full
detail goes to the error sink.
"""


class BridgeError(Exception):
    """Base exception for bridge operations."""
    pass


class InvalidToken(BridgeError):
    """Telegram bot token is malformed or was rejected by Telegram."""
    pass


class InvalidCode(BridgeError):
    """No outstanding pairing code matches the submitted text."""
    pass


class TeamNotFound(BridgeError):
    """No Slack credentials are stored for the workspace."""

    def __init__(self, team_id: str):
        super().__init__(f"Team not found: {team_id}")
        self.team_id = team_id


class PersistenceError(BridgeError):
    """A storage operation failed."""
    pass


class RoutingError(BridgeError):
    """A mapping names a bot that has no live client."""

    def __init__(self, bot_id: str):
        super().__init__(f"Telegram bot with ID {bot_id} not found.")
        self.bot_id = bot_id


class PlatformError(BridgeError):
    """A Slack or Telegram API call failed."""

    def __init__(self, platform: str, method: str, error: str):
        super().__init__(f"{platform} API error on {method}: {error}")
        self.platform = platform
        self.method = method
        self.error = error


class MappingWriteError(PersistenceError):
    """A redeemed code's mapping could not be stored. The code is already spent."""
    pass
