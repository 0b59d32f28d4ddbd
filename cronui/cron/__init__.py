"""
Cron job scheduling core.

Keeps an in-memory, lock-guarded registry of jobs, schedules them with
APScheduler, dispatches fired jobs to type-specific executors and persists the
registry to a local SQLite file.
"""

from .executors import (
    BackupJobExecutor,
    CustomJobExecutor,
    EmailJobExecutor,
    ExecutorRegistry,
    JobExecutor,
    SyncJobExecutor,
    executor_registry,
)
from .manager import CronManager, describe_schedule
from .persistence import load_all, save_all
from .sync import BackgroundSync, SyncState
from .types import Job, JobType, LoadResult

__all__ = [
    "CronManager",
    "describe_schedule",
    "Job",
    "JobType",
    "LoadResult",
    "JobExecutor",
    "ExecutorRegistry",
    "executor_registry",
    "EmailJobExecutor",
    "SyncJobExecutor",
    "BackupJobExecutor",
    "CustomJobExecutor",
    "BackgroundSync",
    "SyncState",
    "load_all",
    "save_all",
]
