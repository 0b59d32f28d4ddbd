"""
Local SQLite persistence of the job registry.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from ..db.database import open_database
from ..errors import JobValidationError, PersistenceError, ScheduleError
from ..logger import logger
from ..models import JobRow
from .types import Job, LoadResult

if TYPE_CHECKING:
    from .manager import CronManager

_UPSERT_COLUMNS = (
    "name",
    "type",
    "schedule",
    "schedule_desc",
    "enabled",
    "config",
    "last_run",
    "next_run",
)


def _to_epoch(value: Optional[datetime]) -> Optional[int]:
    return int(value.timestamp()) if value is not None else None


def _from_epoch(value: Optional[int]) -> Optional[datetime]:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value is not None else None


def job_to_row(job: Job) -> Dict[str, Any]:
    return {
        "id": job.id,
        "name": job.name,
        "type": job.type,
        "schedule": job.schedule,
        "schedule_desc": job.schedule_desc,
        "enabled": 1 if job.enabled else 0,
        "config": json.dumps(job.config, ensure_ascii=False),
        "last_run": _to_epoch(job.last_run),
        "next_run": _to_epoch(job.next_run),
    }


def row_to_job(row: JobRow) -> Job:
    """
    Decode a stored row into a Job.

    Raises:
        ValueError: If the row has no ID or its config is not a JSON object
    """
    if not row.id:
        raise ValueError("row has no id")

    config: Any = {}
    if row.config:
        config = json.loads(row.config)
        if not isinstance(config, dict):
            raise ValueError(f"config is not an object: {row.config!r}")

    return Job(
        id=row.id,
        name=row.name or "",
        type=row.type or "",
        schedule=row.schedule or "",
        schedule_desc=row.schedule_desc or "",
        enabled=bool(row.enabled),
        config=config,
        last_run=_from_epoch(row.last_run),
        next_run=_from_epoch(row.next_run),
    )


async def save_all(manager: "CronManager", path: Path) -> int:
    """
    Upsert every in-memory job into the SQLite file at ``path``.

    Job values are snapshotted under the registry's read lock; the database
    write happens after the lock is released, in a single transaction.
    Rows of jobs no longer in memory are left untouched.

    Returns:
        Number of rows written

    Raises:
        PersistenceError: If the database cannot be opened or written
    """
    rows = [job_to_row(job) for job in await manager.snapshot()]

    stmt = sqlite_insert(JobRow.__table__)
    stmt = stmt.on_conflict_do_update(
        index_elements=[JobRow.__table__.c.id],
        set_={column: stmt.excluded[column] for column in _UPSERT_COLUMNS},
    )

    try:
        async with open_database(path) as session_maker:
            async with session_maker() as session:
                if rows:
                    await session.execute(stmt, rows)
                await session.commit()
    except (SQLAlchemyError, OSError) as e:
        raise PersistenceError(f"failed to save jobs to {path}: {e}") from e

    logger.debug(f"Saved {len(rows)} jobs to {path}")
    return len(rows)


async def load_all(manager: "CronManager", path: Path) -> LoadResult:
    """
    Admit every stored job into ``manager`` through its normal add path.

    Rows that cannot be decoded or are rejected by validation (for example a
    schedule that no longer parses) are logged and skipped; the rest load
    normally. Enabled jobs are re-registered with the scheduler, which rebuilds
    their handle and next run time.

    Returns:
        LoadResult with the admitted count and a summarizing error if rows failed

    Raises:
        PersistenceError: If the database cannot be opened or read at all
    """
    try:
        async with open_database(path) as session_maker:
            async with session_maker() as session:
                result = await session.execute(select(JobRow))
                rows = result.scalars().all()
    except (SQLAlchemyError, OSError) as e:
        raise PersistenceError(f"failed to read jobs from {path}: {e}") from e

    failures: List[str] = []
    loaded = 0

    for row in rows:
        try:
            job = row_to_job(row)
        except ValueError as e:
            failures.append(f"failed to decode job {row.id}: {e}")
            logger.warning(failures[-1])
            continue

        try:
            await manager.add_job(job)
        except (JobValidationError, ScheduleError) as e:
            failures.append(f"failed to add job {job.id}: {e}")
            logger.warning(failures[-1])
            continue

        loaded += 1

    if failures:
        logger.warning(f"Some jobs failed to load: loaded={loaded} errors={len(failures)}")
        return LoadResult(
            loaded=loaded,
            failed=len(failures),
            error=PersistenceError(
                f"loaded {loaded} jobs with {len(failures)} errors: {failures[0]}"
            ),
        )

    return LoadResult(loaded=loaded, failed=0)
