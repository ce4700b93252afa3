"""HTTP routes for Channel Bridge."""

from fastapi import APIRouter

from .slack import router as slack_router
from .telegram import router as telegram_router

api_router = APIRouter()

# Slack: /bot/slack/*, Telegram webhooks: /bot/{bot_id}
api_router.include_router(slack_router)
api_router.include_router(telegram_router)

__all__ = ["api_router"]
