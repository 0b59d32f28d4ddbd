"""
Cron Manager - Core cron job management and scheduling functionality.
"""

import asyncio
import copy
import time
import uuid
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Dict, List, Optional

import aiorwlock
from aiofiles import os as aioos
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from cron_descriptor import ExpressionDescriptor, Options

from ..backup import backup_database
from ..config import settings
from ..errors import JobNotFoundError, JobValidationError, PersistenceError, ScheduleError
from ..logger import logger
from ..storage import Storage
from .executors import ExecutorRegistry, executor_registry
from .persistence import load_all, save_all
from .sync import BackgroundSync
from .types import Job

# Upper bound on UUID draws before falling back to a timestamp-based ID
_MAX_ID_ATTEMPTS = 100

# Cron weekday numbering: 0 (and 7) is Sunday
_CRON_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _weekday_number(token: str) -> int:
    token = token.strip().lower()
    if token.isdigit():
        value = int(token)
        if value > 7:
            raise ValueError(f"day-of-week value {value} is higher than 7")
        return value
    if token in _CRON_WEEKDAYS:
        return _CRON_WEEKDAYS.index(token)
    raise ValueError(f"invalid day-of-week value: {token!r}")


def _translate_day_of_week(field: str) -> str:
    """
    Rewrite a cron day-of-week field as APScheduler weekday names.

    APScheduler numbers weekdays from Monday, cron from Sunday, so numbers,
    ranges, lists and steps are expanded into explicit names. ``?`` means any day.
    """
    if field in ("*", "?"):
        return "*"

    days = set()
    for item in field.split(","):
        base, _, step_text = item.partition("/")
        step = int(step_text) if step_text else 1
        if step < 1:
            raise ValueError(f"invalid day-of-week step: {item!r}")
        if base in ("*", "?"):
            first, last = 0, 6
        elif "-" in base:
            start, end = base.split("-", 1)
            first, last = _weekday_number(start), _weekday_number(end)
        else:
            first = _weekday_number(base)
            last = 6 if step_text else first
        if first > last:
            raise ValueError(f"invalid day-of-week range: {base!r}")
        days.update(day % 7 for day in range(first, last + 1, step))

    return ",".join(_CRON_WEEKDAYS[day] for day in sorted(days))


def describe_schedule(expression: str) -> str:
    """
    Build a human-readable English description of a six-field cron expression.

    Raises:
        ScheduleError: If the expression cannot be described
    """
    options = Options()
    options.locale_code = "en_US"
    options.use_24hour_time_format = True
    try:
        return ExpressionDescriptor(expression, options).get_description()
    except Exception as e:
        raise ScheduleError(f"cannot describe cron expression '{expression}': {e}") from e


class CronManager:
    """
    Core cron job management class.

    Owns the in-memory job registry (guarded by a reader/writer lock), registers
    triggers with APScheduler and dispatches fired jobs to their executors.
    Persistence and backup run from a single background loop.
    """

    def __init__(
        self,
        executors: Optional[ExecutorRegistry] = None,
        database_path: Optional[Path] = None,
        timezone_name: Optional[str] = None,
    ):
        self.scheduler = AsyncIOScheduler(timezone=timezone_name or settings.timezone)
        self.executors = executors or executor_registry
        self.database_path = Path(database_path or settings.database_path)
        self._jobs: Dict[str, Job] = {}
        self._lock = aiorwlock.RWLock()
        self._sync: Optional[BackgroundSync] = None
        self._sync_lock = asyncio.Lock()
        self._started = False

    async def start(self) -> None:
        """
        Load persisted jobs (if the database file exists) and start the scheduler.
        """
        if self._started:
            return

        if await aioos.path.exists(self.database_path):
            try:
                result = await load_all(self, self.database_path)
            except PersistenceError as e:
                logger.warning(f"Failed to load jobs from database {self.database_path}: {e}")
            else:
                logger.info(f"Loaded {result.loaded} jobs from {self.database_path}")
                if result.error is not None:
                    logger.warning(f"Partial job load: {result.error}")

        self.scheduler.start()
        self._started = True

    async def stop(self) -> None:
        """
        Stop the scheduler, join the background loop and save all jobs one last time.
        """
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self._started = False

        await self.stop_background_sync()

        try:
            await save_all(self, self.database_path)
        except PersistenceError as e:
            logger.warning(f"Failed to save jobs to database {self.database_path}: {e}")

    async def start_background_sync(
        self,
        db_path: Path,
        save_interval: float,
        backup_interval: float,
        blob_name: Optional[str] = None,
        storage: Optional[Storage] = None,
    ) -> BackgroundSync:
        """
        Start the loop that periodically saves jobs and backs up the database.

        Any loop already running is stopped and fully drained first. The backup
        tick only exists when both ``storage`` and ``blob_name`` are provided.

        Returns:
            The running BackgroundSync
        """
        async with self._sync_lock:
            await self._stop_sync_locked()

            backup = None
            if storage is not None and blob_name:
                backup = partial(backup_database, db_path, blob_name, storage)

            self._sync = BackgroundSync(
                save=partial(save_all, self, db_path),
                save_interval=save_interval,
                backup=backup,
                backup_interval=backup_interval,
            )
            self._sync.start()
            return self._sync

    async def stop_background_sync(self) -> None:
        async with self._sync_lock:
            await self._stop_sync_locked()

    async def _stop_sync_locked(self) -> None:
        if self._sync is not None:
            await self._sync.stop()
            self._sync = None

    @property
    def background_sync(self) -> Optional[BackgroundSync]:
        return self._sync

    def describe_schedule(self, expression: str) -> str:
        return describe_schedule(expression)

    async def add_job(self, job: Job) -> Job:
        """
        Validate, schedule and insert a job.

        A job with an empty ID gets a generated one. Re-adding an existing ID
        replaces the stored job and its trigger. Disabled jobs are stored but
        not scheduled.

        Returns:
            A copy of the stored job

        Raises:
            JobValidationError: If the type is unknown or the config is incomplete
            ScheduleError: If the cron expression cannot be parsed
        """
        job = job.model_copy(deep=True)
        self.executors.validate(job.type, job.config)
        trigger = self._parse_schedule(job.schedule)
        job.schedule_desc = self._describe_or_raw(job.schedule)

        if not job.id:
            job.id = await self.generate_unique_id()

        async with self._lock.writer_lock:
            self._insert_locked(job, trigger)
            return job.model_copy(deep=True)

    async def remove_job(self, job_id: str) -> None:
        """
        Unregister a job's trigger and evict it from the registry.

        Raises:
            JobNotFoundError: If no job has this ID
        """
        async with self._lock.writer_lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            self._unregister(job)
            del self._jobs[job_id]

    async def update_job(self, job_id: str, new_def: Job) -> Job:
        """
        Replace the definition of an existing job, keeping its ID.

        The new definition is fully validated before the existing job is touched,
        and the remove and re-add happen under one write lock so readers always
        see either the old or the new job. ``last_run`` carries over from the
        existing job unless the new definition sets one.

        Raises:
            JobValidationError: If the new definition is invalid
            ScheduleError: If the new cron expression cannot be parsed
            JobNotFoundError: If no job has this ID
        """
        job = new_def.model_copy(deep=True)
        job.id = job_id
        self.executors.validate(job.type, job.config)
        if not job.schedule.strip():
            raise JobValidationError("schedule cannot be empty")
        trigger = self._parse_schedule(job.schedule)
        job.schedule_desc = self._describe_or_raw(job.schedule)

        async with self._lock.writer_lock:
            original = self._jobs.get(job_id)
            if original is None:
                raise JobNotFoundError(job_id)
            if job.last_run is None:
                job.last_run = original.last_run

            self._unregister(original)
            del self._jobs[job_id]
            try:
                self._insert_locked(job, trigger)
            except Exception:
                logger.exception(f"Failed to re-add job {job_id}, restoring original")
                self._insert_locked(original, self._parse_schedule(original.schedule))
                raise
            return job.model_copy(deep=True)

    async def get_job(self, job_id: str) -> Job:
        """
        Raises:
            JobNotFoundError: If no job has this ID
        """
        async with self._lock.reader_lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return job.model_copy(deep=True)

    async def list_jobs(self) -> List[Job]:
        """
        Get all jobs, most recently run first.

        Jobs that never ran come after every job that did; ties are ordered by name.
        """
        jobs = await self.snapshot()
        jobs.sort(
            key=lambda j: (
                j.last_run is None,
                -j.last_run.timestamp() if j.last_run is not None else 0.0,
                j.name,
            )
        )
        return jobs

    async def snapshot(self) -> List[Job]:
        """Copy every job under the read lock, in no particular order."""
        async with self._lock.reader_lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]

    async def generate_unique_id(self) -> str:
        """
        Draw a random UUID that no live job uses.

        Falls back to a timestamp-based ID after repeated collisions.
        """
        async with self._lock.reader_lock:
            for _ in range(_MAX_ID_ATTEMPTS):
                candidate = str(uuid.uuid4())
                if candidate not in self._jobs:
                    return candidate

        return f"job_{time.time_ns()}"

    def _parse_schedule(self, expression: str) -> BaseTrigger:
        """
        Build a trigger from a six-field cron expression.

        Fields: second minute hour day month day_of_week

        As in cron, when both day fields are restricted the job fires on days
        matching either of them, which needs one CronTrigger per day field.
        """
        fields = expression.strip().split()
        if len(fields) != 6:
            raise ScheduleError(
                f"cron expression must have exactly 6 fields "
                f"(second minute hour day month day_of_week), got {len(fields)}: '{expression}'"
            )
        second, minute, hour, day, month, day_of_week = fields

        try:
            common = dict(
                second=second,
                minute=minute,
                hour=hour,
                month=month,
                timezone=self.scheduler.timezone,
            )
            weekdays = _translate_day_of_week(day_of_week)
            days = "*" if day == "?" else day

            if day.startswith(("*", "?")) or day_of_week.startswith(("*", "?")):
                return CronTrigger(day=days, day_of_week=weekdays, **common)
            return OrTrigger(
                [
                    CronTrigger(day=days, **common),
                    CronTrigger(day_of_week=weekdays, **common),
                ]
            )
        except ValueError as e:
            raise ScheduleError(f"invalid cron expression '{expression}': {e}") from e

    def _describe_or_raw(self, expression: str) -> str:
        try:
            return describe_schedule(expression)
        except ScheduleError as e:
            logger.warning(f"Could not generate schedule description: {e}")
            return expression

    def _insert_locked(self, job: Job, trigger: BaseTrigger) -> None:
        """Register ``job`` if enabled and store it. Caller holds the write lock."""
        handle = None
        next_run = None
        if job.enabled:
            scheduled = self.scheduler.add_job(
                self._execute_job,
                trigger=trigger,
                args=[job.id],
                name=job.name or job.id,
            )
            handle = scheduled.id
            next_run = trigger.get_next_fire_time(None, datetime.now(timezone.utc))

        existing = self._jobs.get(job.id)
        if existing is not None:
            self._unregister(existing)

        job.scheduler_handle = handle
        job.next_run = next_run.astimezone(timezone.utc) if next_run else None
        self._jobs[job.id] = job

    def _unregister(self, job: Job) -> None:
        if job.scheduler_handle and self.scheduler.get_job(job.scheduler_handle):
            self.scheduler.remove_job(job.scheduler_handle)
        job.scheduler_handle = None
        job.next_run = None

    def _scheduled_next_run(self, handle: str) -> Optional[datetime]:
        scheduled = self.scheduler.get_job(handle)
        if scheduled is None:
            return None
        next_run = getattr(scheduled, "next_run_time", None)
        if next_run is None and scheduled.pending:
            # Jobs added before the scheduler starts have no next_run_time yet
            next_run = scheduled.trigger.get_next_fire_time(None, datetime.now(timezone.utc))
        return next_run.astimezone(timezone.utc) if next_run else None

    async def _execute_job(self, job_id: str) -> None:
        """
        Trigger callback: run one job outside the lock, then record the run.
        """
        async with self._lock.reader_lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            name = job.name
            job_type = job.type
            enabled = job.enabled
            config = copy.deepcopy(job.config)

        if not enabled:
            return

        executor = self.executors.get_executor(job_type)
        logger.info(f"Executing job {name} (type={job_type}, id={job_id})")

        if executor is None:
            logger.error(f"Job execution failed: {name} (id={job_id}): no executor for type {job_type}")
        else:
            try:
                await executor.execute(config)
            except asyncio.CancelledError:
                logger.warning(f"Job execution cancelled: {name} (id={job_id})")
                raise
            except Exception as e:
                logger.error(f"Job execution failed: {name} (id={job_id}): {e}", exc_info=True)
            else:
                logger.info(f"Job executed successfully: {name} (id={job_id})")

        async with self._lock.writer_lock:
            job = self._jobs.get(job_id)
            if job is None:
                # Removed while running
                return
            job.last_run = datetime.now(timezone.utc)
            if job.scheduler_handle is not None:
                job.next_run = self._scheduled_next_run(job.scheduler_handle)
                if job.next_run is None:
                    job.scheduler_handle = None
