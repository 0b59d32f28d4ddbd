import asyncio
import signal
from typing import Optional

from .backup import restore_database
from .config import settings
from .cron import CronManager
from .logger import logger
from .storage import LocalStorage, Storage


def create_storage() -> Optional[Storage]:
    """Build the backup storage from settings, or None when backups are disabled."""
    if settings.storage is None:
        return None
    return LocalStorage(settings.storage.root, base_url=settings.storage.base_url)


async def run(stop_event: Optional[asyncio.Event] = None) -> None:
    """
    Run the scheduler until ``stop_event`` is set (or SIGINT/SIGTERM arrives).
    """
    if stop_event is None:
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

    db_path = settings.database_path
    storage = create_storage()

    if storage is not None:
        await restore_database(db_path, settings.sync.blob_name, storage)
    else:
        logger.info("Backup storage not configured, running with local SQLite only")

    manager = CronManager(database_path=db_path)
    logger.info("Starting cron manager...")
    await manager.start()
    await manager.start_background_sync(
        db_path,
        settings.sync.save_interval_seconds,
        settings.sync.backup_interval_seconds,
        settings.sync.blob_name,
        storage,
    )
    logger.info("Startup complete.")

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down cron manager...")
        await manager.stop()
        logger.info("Shutdown complete.")


def main() -> None:
    asyncio.run(run())
