"""
Job executors and the type-indexed registry used to dispatch them.
"""

from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Type

from ..errors import JobValidationError
from ..logger import logger
from .types import JobType


class JobExecutor:
    """
    Base class for type-specific job executors.

    Subclasses declare ``required_keys`` once; the same tuple drives validation
    and the fields logged on execution. The integration itself (mail delivery,
    file transfer, process spawning) lives outside this package, so ``execute``
    only dispatches and reports.
    """

    required_keys: ClassVar[Tuple[str, ...]] = ()

    def validate(self, config: Mapping[str, Any]) -> None:
        """
        Check that every required key is present in ``config``.

        Raises:
            JobValidationError: If a required key is missing
        """
        for key in self.required_keys:
            if key not in config:
                raise JobValidationError(f"'{key}' field is required")

    def describe(self, config: Mapping[str, Any]) -> Dict[str, Any]:
        """Fields of ``config`` that are safe to include in log lines."""
        return {key: config.get(key) for key in self.required_keys}

    async def execute(self, config: Mapping[str, Any]) -> None:
        raise NotImplementedError


class ExecutorRegistry:
    """
    Registry mapping job types to their executor instances.
    """

    def __init__(self):
        # job type -> executor
        self._executors: Dict[str, JobExecutor] = {}

    def register(self, job_type: JobType | str):
        """
        Class decorator registering an executor for a job type.

        Example:
            ```python
            @executor_registry.register(JobType.CUSTOM)
            class CustomJobExecutor(JobExecutor):
                required_keys = ("command",)
            ```
        """

        def decorator(cls: Type[JobExecutor]) -> Type[JobExecutor]:
            self._executors[_type_key(job_type)] = cls()
            return cls

        return decorator

    def add(self, job_type: JobType | str, executor: JobExecutor) -> None:
        """Register an already constructed executor instance."""
        self._executors[_type_key(job_type)] = executor

    def get_executor(self, job_type: str) -> Optional[JobExecutor]:
        return self._executors.get(_type_key(job_type))

    def get_all_executors(self) -> Dict[str, JobExecutor]:
        return self._executors.copy()

    def is_registered(self, job_type: str) -> bool:
        return _type_key(job_type) in self._executors

    def validate(self, job_type: str, config: Mapping[str, Any]) -> JobExecutor:
        """
        Resolve the executor for ``job_type`` and validate ``config`` against it.

        Returns:
            The executor that will run the job

        Raises:
            JobValidationError: If the type is unknown or the config is incomplete
        """
        executor = self.get_executor(job_type)
        if executor is None:
            raise JobValidationError(f"unknown job type: {job_type}")
        try:
            executor.validate(config)
        except JobValidationError as e:
            raise JobValidationError(
                f"job configuration validation failed: {e}"
            ) from e
        return executor


def _type_key(job_type: JobType | str) -> str:
    return job_type.value if isinstance(job_type, JobType) else str(job_type)


# Global executor registry instance
executor_registry = ExecutorRegistry()


@executor_registry.register(JobType.EMAIL)
class EmailJobExecutor(JobExecutor):
    # "body" is optional and never logged
    required_keys = ("to", "subject")

    async def execute(self, config: Mapping[str, Any]) -> None:
        logger.info(f"Sending email {self.describe(config)}")


@executor_registry.register(JobType.SYNC)
class SyncJobExecutor(JobExecutor):
    required_keys = ("source", "destination")

    async def execute(self, config: Mapping[str, Any]) -> None:
        logger.info(f"Syncing data {self.describe(config)}")


@executor_registry.register(JobType.BACKUP)
class BackupJobExecutor(JobExecutor):
    required_keys = ("path", "destination")

    async def execute(self, config: Mapping[str, Any]) -> None:
        logger.info(f"Backing up {self.describe(config)}")


@executor_registry.register(JobType.CUSTOM)
class CustomJobExecutor(JobExecutor):
    required_keys = ("command",)

    async def execute(self, config: Mapping[str, Any]) -> None:
        logger.info(f"Executing custom command {self.describe(config)}")
