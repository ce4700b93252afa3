"""Platform integrations: Slack and Telegram."""
