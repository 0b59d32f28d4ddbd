"""
Background loop that periodically saves the registry and backs up the database.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..logger import log_exception, logger

SyncAction = Callable[[], Awaitable[Any]]


class SyncState(str, Enum):
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class BackgroundSync:
    """
    One asyncio task interleaving a save tick and an optional backup tick.

    Cancellation is cooperative: the stop event is checked at every tick
    boundary and a tick in progress always runs to completion. A stopped loop
    never restarts; create a new instance instead.
    """

    def __init__(
        self,
        save: SyncAction,
        save_interval: float,
        backup: Optional[SyncAction] = None,
        backup_interval: Optional[float] = None,
    ):
        if save_interval <= 0:
            raise ValueError("save_interval must be positive")
        if backup is not None and (backup_interval is None or backup_interval <= 0):
            raise ValueError("backup_interval must be positive when backup is enabled")

        self.save_interval = save_interval
        self.backup_interval = backup_interval if backup is not None else None
        self._save = save
        self._backup = backup
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.state = SyncState.STOPPED

    @property
    def backup_enabled(self) -> bool:
        return self._backup is not None

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("background sync loop can only be started once")
        self.state = SyncState.RUNNING
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"Background sync started: save every {self.save_interval}s, "
            f"backup {'every ' + str(self.backup_interval) + 's' if self.backup_enabled else 'disabled'}"
        )

    async def stop(self) -> None:
        """Signal the loop to stop and wait until it has fully exited."""
        if self._task is None:
            self.state = SyncState.STOPPED
            return
        if self.state == SyncState.RUNNING:
            self.state = SyncState.STOPPING
        self._stop_event.set()
        await self._task

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_save = loop.time() + self.save_interval
        next_backup = (
            loop.time() + self.backup_interval if self.backup_interval is not None else None
        )

        try:
            while not self._stop_event.is_set():
                deadline = next_save if next_backup is None else min(next_save, next_backup)
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=max(0.0, deadline - loop.time())
                    )
                except TimeoutError:
                    pass
                else:
                    break

                now = loop.time()
                if now >= next_save:
                    await self._tick("save", self._save)
                    next_save = now + self.save_interval

                if self._stop_event.is_set():
                    break

                if next_backup is not None and now >= next_backup:
                    assert self._backup is not None
                    await self._tick("backup", self._backup)
                    next_backup = now + self.backup_interval
        finally:
            self.state = SyncState.STOPPED
            logger.info("Background sync stopped")

    @log_exception("Background sync {label} tick failed")
    async def _tick(self, label: str, action: SyncAction) -> None:
        await action()
