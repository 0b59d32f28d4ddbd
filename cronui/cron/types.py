"""
Type definitions for the cron job management system.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:
    from ..errors import PersistenceError


class JobType(str, Enum):
    EMAIL = "email"
    SYNC = "sync"
    BACKUP = "backup"
    CUSTOM = "custom"


class Job(BaseModel):
    """
    In-memory representation of a cron job.

    ``type`` is kept as a plain string so that rows with an unknown type can still
    be decoded and then rejected by the manager with a JobValidationError.
    ``scheduler_handle`` is the APScheduler job id of the registered trigger; it is
    excluded from serialization and rebuilt whenever the job is added.
    """

    id: str = ""
    name: str = ""
    type: str
    schedule: str
    schedule_desc: str = ""
    enabled: bool = True
    config: Dict[str, Any] = Field(default_factory=dict)
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    scheduler_handle: Optional[str] = Field(default=None, exclude=True)

    @field_validator("type", mode="before")
    @classmethod
    def _job_type_value(cls, v):
        return v.value if isinstance(v, JobType) else v


@dataclass(frozen=True)
class LoadResult:
    """
    Outcome of loading jobs from the local store.

    A partial load is a successful outcome: ``error`` summarizes the rows that
    were skipped and is None when every row was admitted.
    """

    loaded: int
    failed: int
    error: Optional["PersistenceError"] = None
