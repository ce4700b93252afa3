"""Business logic services for Channel Bridge."""

from .bot_registry import BotRegistry
from .error_sink import ErrorSink
from .pairing import Paired, PairingEngine
from .router import MessageRouter
from .setup import SetupWorkflow
from .store import BridgeStore
from .workspaces import WorkspaceDirectory

__all__ = [
    "BotRegistry",
    "BridgeStore",
    "ErrorSink",
    "MessageRouter",
    "Paired",
    "PairingEngine",
    "SetupWorkflow",
    "WorkspaceDirectory",
]
