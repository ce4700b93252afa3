"""Error Sink: durable operator error log."""

import logging
import traceback

from .store import BridgeStore

logger = logging.getLogger(__name__)


class ErrorSink:
    """Appends errors to the `errors` table. Never raises."""

    def __init__(self, store: BridgeStore):
        self._store = store

    async def record(self, error: BaseException | str) -> None:
        message = f"Error: {error}"
        stack_trace = None
        if isinstance(error, BaseException):
            stack_trace = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )

        logger.error(message)

        try:
            await self._store.insert_error(message, stack_trace)
        except Exception as e:
            logger.error(f"Failed to store error in database: {e}")
