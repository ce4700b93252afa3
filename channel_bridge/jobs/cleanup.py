"""
Cleanup Job: hourly eviction of unredeemed pairing codes.

Runs in-process as an asyncio task started by the app lifespan, or once
from cron via the CLI entry point:

    python -m channel_bridge.jobs.cleanup --database-url sqlite:///channel_mappings.db
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from ..core.database import build_engine
from ..services.error_sink import ErrorSink
from ..services.pairing import DEFAULT_CODE_MAX_AGE, PairingEngine
from ..services.store import BridgeStore
from ..services.workspaces import WorkspaceDirectory

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60 * 60


class CleanupScheduler:
    """Calls PairingEngine.expire_stale_codes on a fixed period.

    The period does not depend on traffic. A failed sweep is recorded and
    the next one runs on schedule.
    """

    def __init__(
        self,
        pairing: PairingEngine,
        error_sink: ErrorSink,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ):
        self._pairing = pairing
        self._error_sink = error_sink
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="pairing-code-cleanup")
        logger.info(f"Cleanup scheduler started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Cleanup scheduler stopped")

    async def run_once(self) -> int:
        try:
            return await self._pairing.expire_stale_codes()
        except Exception as e:
            await self._error_sink.record(e)
            return 0

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()


async def run_cleanup_job(
    database_url: str,
    max_age: timedelta = DEFAULT_CODE_MAX_AGE,
) -> dict[str, Any]:
    """
    One-shot sweep against `database_url` (an async SQLAlchemy URL).

    Returns:
        Job result summary
    """
    start_time = datetime.now(timezone.utc)
    logger.info(f"Starting cleanup job at {start_time.isoformat()}")

    engine = build_engine(database_url)
    store = BridgeStore(engine)
    error_sink = ErrorSink(store)

    results: dict[str, Any] = {
        "started_at": start_time.isoformat(),
        "completed_at": None,
        "expired_count": 0,
    }

    try:
        async with httpx.AsyncClient() as http_client:
            pairing = PairingEngine(
                store,
                WorkspaceDirectory(store, http_client),
                error_sink,
                code_max_age=max_age,
            )
            results["expired_count"] = await pairing.expire_stale_codes(now=start_time)
    except Exception as e:
        await error_sink.record(e)
        raise
    finally:
        await engine.dispose()

    end_time = datetime.now(timezone.utc)
    results["completed_at"] = end_time.isoformat()
    results["duration_seconds"] = (end_time - start_time).total_seconds()

    logger.info(
        f"Cleanup job completed in {results['duration_seconds']:.2f}s: "
        f"{results['expired_count']} codes expired"
    )
    return results


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for the cleanup job."""
    import argparse

    from ..core.config import Settings

    settings = Settings()

    parser = argparse.ArgumentParser(description="Delete stale pairing codes")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (defaults to DATABASE_URL)",
    )
    parser.add_argument(
        "--max-age-minutes",
        type=int,
        default=settings.pairing_code_max_age_minutes,
        help="Codes older than this are deleted",
    )
    args = parser.parse_args()

    if args.database_url:
        settings = Settings(database_url=args.database_url)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        results = asyncio.run(run_cleanup_job(
            database_url=settings.database_url_async,
            max_age=timedelta(minutes=args.max_age_minutes),
        ))
        print(f"Job completed: {results}")
    except Exception as e:
        print(f"Job failed: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
