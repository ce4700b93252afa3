"""Core application utilities."""

from .config import Settings, get_settings
from .database import (
    build_engine,
    build_session_factory,
    close_db,
    engine,
    init_db,
)
from .exceptions import (
    BridgeError,
    InvalidCode,
    InvalidToken,
    MappingWriteError,
    PersistenceError,
    PlatformError,
    RoutingError,
    TeamNotFound,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "engine",
    "build_engine",
    "build_session_factory",
    "init_db",
    "close_db",
    # Exceptions
    "BridgeError",
    "InvalidCode",
    "InvalidToken",
    "MappingWriteError",
    "PersistenceError",
    "PlatformError",
    "RoutingError",
    "TeamNotFound",
]
