"""Background sync for the on-device store: ``python -m liftsync.sync_agent``."""
import asyncio
import logging

from liftsync.config import settings
from liftsync.database import LocalSessionLocal, init_local_store, local_engine
from liftsync.services.sync_service import SyncOrchestrator
from liftsync.services.transport import HttpSyncTransport

logger = logging.getLogger(__name__)


def build_orchestrator() -> SyncOrchestrator:
    return SyncOrchestrator(LocalSessionLocal, HttpSyncTransport(settings.SYNC_API_URL))


async def run_agent(once: bool = False) -> None:
    await init_local_store()
    orchestrator = build_orchestrator()
    try:
        if once or not settings.SYNC_AUTO_ENABLED:
            report = await orchestrator.run()
            logger.info("One-shot sync: pushed=%s failed=%s", report.pushed, report.failed)
            return
        logger.info("Sync agent started (interval=%ss, api=%s)", settings.SYNC_INTERVAL_SECONDS, settings.SYNC_API_URL)
        await orchestrator.run_periodically(settings.SYNC_INTERVAL_SECONDS)
    finally:
        await local_engine.dispose()
        logger.info("Sync agent stopped")


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    try:
        asyncio.run(run_agent())
    except KeyboardInterrupt:
        pass
