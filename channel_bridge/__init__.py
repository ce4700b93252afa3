"""Channel Bridge: Slack <-> Telegram message relay."""

__version__ = "1.0.0"
