"""
Exception hierarchy shared by the scheduler, persistence and backup layers.
"""


class CronUIError(Exception):
    """Base class for all errors raised by cronui."""


class JobValidationError(CronUIError, ValueError):
    """Unknown job type, missing required config key or empty schedule."""


class ScheduleError(CronUIError, ValueError):
    """A cron expression could not be parsed."""


class JobNotFoundError(CronUIError, KeyError):
    """No job with the given ID exists in the registry."""

    def __init__(self, job_id: str):
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"job not found: {self.job_id}"


class StorageError(CronUIError):
    """Remote object store operation failed."""


class StorageFileNotFoundError(StorageError):
    """The requested remote object does not exist."""


class PersistenceError(CronUIError):
    """Local job store could not be read, written or decoded."""
