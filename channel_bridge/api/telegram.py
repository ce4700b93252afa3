"""Telegram webhook endpoint, one path per registered bot."""

import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, status

from ..core.dependencies import BridgeServices, ServicesDep
from ..schemas.events import TelegramInboundMessage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bot", tags=["telegram"])


async def dispatch_telegram_message(
    services: BridgeServices,
    message: TelegramInboundMessage,
    bot_id: str,
) -> None:
    try:
        await services.router.route_from_telegram(message, bot_id)
    except Exception as e:
        await services.error_sink.record(e)


@router.post("/{bot_id}")
async def handle_telegram_update(
    bot_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    services: ServicesDep,
):
    if bot_id not in services.registry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown bot")

    try:
        update = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid update")

    identity = services.registry.identity(bot_id)
    logger.info(f"Received update for bot @{identity.username if identity else bot_id}")

    message = TelegramInboundMessage.from_update(update)
    if message is not None:
        background_tasks.add_task(dispatch_telegram_message, services, message, bot_id)

    return {"ok": True}
