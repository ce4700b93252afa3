"""Service wiring and FastAPI dependencies."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Annotated

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from ..jobs.cleanup import CleanupScheduler
from ..services.bot_registry import BotRegistry
from ..services.error_sink import ErrorSink
from ..services.pairing import PairingEngine
from ..services.router import MessageRouter
from ..services.setup import SetupWorkflow
from ..services.store import BridgeStore
from ..services.workspaces import WorkspaceDirectory
from .config import Settings

logger = logging.getLogger(__name__)


@dataclass
class BridgeServices:
    """Every long-lived component, built once per process."""
    store: BridgeStore
    error_sink: ErrorSink
    workspaces: WorkspaceDirectory
    registry: BotRegistry
    pairing: PairingEngine
    router: MessageRouter
    setup: SetupWorkflow
    scheduler: CleanupScheduler
    http_client: httpx.AsyncClient


def build_services(
    engine: AsyncEngine,
    settings: Settings,
    http_client: httpx.AsyncClient,
) -> BridgeServices:
    store = BridgeStore(engine)
    error_sink = ErrorSink(store)
    workspaces = WorkspaceDirectory(store, http_client)
    registry = BotRegistry(store, error_sink, http_client, public_url=settings.public_url)
    pairing = PairingEngine(
        store,
        workspaces,
        error_sink,
        code_max_age=timedelta(minutes=settings.pairing_code_max_age_minutes),
    )
    router = MessageRouter(store, pairing, registry, workspaces, error_sink)
    setup = SetupWorkflow(store, pairing, registry, workspaces, error_sink)
    pairing.on_paired(setup.announce_pairing)
    scheduler = CleanupScheduler(pairing, error_sink, interval_seconds=settings.cleanup_interval_seconds)

    return BridgeServices(
        store=store,
        error_sink=error_sink,
        workspaces=workspaces,
        registry=registry,
        pairing=pairing,
        router=router,
        setup=setup,
        scheduler=scheduler,
        http_client=http_client,
    )


def get_services(request: Request) -> BridgeServices:
    return request.app.state.services


ServicesDep = Annotated[BridgeServices, Depends(get_services)]
