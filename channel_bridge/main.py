"""Channel Bridge: Main FastAPI Application.

Relays messages between Slack channels and Telegram chats, linked through
one-time pairing codes.
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .api import api_router
from .core import close_db, engine, get_settings, init_db
from .core.dependencies import build_services
from .core.exceptions import InvalidToken

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    await init_db()

    http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    services = build_services(engine, settings, http_client)
    app.state.services = services

    if settings.telegram_bot_token:
        try:
            await services.registry.install_default(settings.telegram_bot_token)
        except InvalidToken as e:
            await services.error_sink.record(e)
    else:
        logger.warning("TELEGRAM_BOT_TOKEN not set; no default bot available")

    installed = await services.registry.load()
    logger.info(f"Loaded {installed} custom Telegram bots")

    services.scheduler.start()
    yield
    # Shutdown
    await services.scheduler.stop()
    await http_client.aclose()
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Relays messages between Slack channels and Telegram chats.",
    lifespan=lifespan,
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions without leaking details."""
    services = getattr(request.app.state, "services", None)
    if services is not None:
        await services.error_sink.record(exc)
    else:
        logger.exception("Unhandled exception")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal_error", "message": "Internal Server Error"},
    )


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "channel_bridge.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
