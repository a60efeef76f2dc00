"""
Periodic sweep of finished tracking sessions.

Deletes completed sessions older than the retention window. Meant to be
run on a schedule (e.g. hourly cron):

    python -m qmuter.app.tasks.purge_stale
"""

import asyncio
import logging

from qmuter.app.core.config import settings
from qmuter.app.core.observability import configure_logging
from qmuter.app.db.session import AsyncSessionLocal, engine, init_models
from qmuter.app.services.live_tracking_service import live_tracking_service

logger = logging.getLogger("qmuter.tasks.purge")


async def purge_stale_sessions() -> int:
    """Run one purge against the configured database."""
    async with AsyncSessionLocal() as db:
        purged = await live_tracking_service.purge_stale(db)
    logger.info(
        "Purge finished: %d sessions older than %dh removed",
        purged, settings.stale_session_retention_hours
    )
    return purged


async def main() -> int:
    await init_models()
    try:
        return await purge_stale_sessions()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    configure_logging(settings.log_level)
    asyncio.run(main())
