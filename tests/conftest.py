"""
Shared fixtures for the cron scheduling tests.

Executors are replaced by recording doubles so tests can observe dispatch
without touching the production registry.
"""

import asyncio
from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Mapping, Optional, Tuple

import pytest

from cronui.cron import CronManager, ExecutorRegistry, Job, JobExecutor, JobType, executor_registry
from cronui.errors import StorageError, StorageFileNotFoundError
from cronui.storage import FileInfo

# A complete config for every job type
VALID_CONFIGS: Dict[str, Dict[str, Any]] = {
    "email": {"to": "ops@example.com", "subject": "Nightly report", "body": "secret"},
    "sync": {"source": "/srv/data", "destination": "/mnt/mirror"},
    "backup": {"path": "/var/lib/app", "destination": "/backups/app"},
    "custom": {"command": "echo hello"},
}

# Fires once a year, so next_run is stable for the duration of a test
YEARLY = "0 0 0 1 1 *"
EVERY_SECOND = "* * * * * *"


class RecordingExecutor(JobExecutor):
    """Executor double that records each call and can block or fail on demand."""

    def __init__(self, required_keys: Tuple[str, ...]):
        self.required_keys = required_keys
        self.calls: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()

    async def execute(self, config: Mapping[str, Any]) -> None:
        self.calls.append(dict(config))
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error


class MemoryStorage:
    """In-memory storage backend that counts uploads and can be made to fail."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.uploads: List[str] = []
        self.fail_uploads = False
        self.fail_download_after: Optional[int] = None

    async def list_files(self) -> List[FileInfo]:
        return [FileInfo(name=name, url=f"memory://{name}") for name in sorted(self.objects)]

    async def download_file(self, name: str) -> AsyncIterator[bytes]:
        if name not in self.objects:
            raise StorageFileNotFoundError(f"object not found: {name}")
        data = self.objects[name]
        for index, start in enumerate(range(0, len(data), 4)):
            if self.fail_download_after is not None and index >= self.fail_download_after:
                raise StorageError("connection reset")
            yield data[start : start + 4]

    async def upload_file(self, name: str, data: AsyncIterable[bytes]) -> FileInfo:
        if self.fail_uploads:
            raise StorageError("upload rejected")
        chunks = [chunk async for chunk in data]
        self.objects[name] = b"".join(chunks)
        self.uploads.append(name)
        return FileInfo(name=name, url=f"memory://{name}")

    async def delete_file(self, name: str) -> None:
        if self.objects.pop(name, None) is None:
            raise StorageFileNotFoundError(f"object not found: {name}")

    async def rename_file(self, old_name: str, new_name: str) -> None:
        if old_name not in self.objects:
            raise StorageFileNotFoundError(f"object not found: {old_name}")
        self.objects[new_name] = self.objects.pop(old_name)


@pytest.fixture
def recording_executors() -> Dict[str, RecordingExecutor]:
    return {
        job_type.value: RecordingExecutor(executor_registry.get_executor(job_type.value).required_keys)
        for job_type in JobType
    }


@pytest.fixture
def test_registry(recording_executors) -> ExecutorRegistry:
    registry = ExecutorRegistry()
    for job_type, executor in recording_executors.items():
        registry.add(job_type, executor)
    return registry


@pytest.fixture
async def cron_manager(tmp_path, test_registry):
    """Fresh manager backed by a temporary database; the scheduler is not started."""
    manager = CronManager(executors=test_registry, database_path=tmp_path / "cron_jobs.db")
    yield manager
    if manager.scheduler.running:
        manager.scheduler.shutdown(wait=False)
    await manager.stop_background_sync()


@pytest.fixture
async def running_manager(cron_manager):
    """Manager with a started scheduler."""
    await cron_manager.start()
    yield cron_manager


@pytest.fixture
def make_job():
    def factory(job_type: str = "email", **overrides) -> Job:
        fields: Dict[str, Any] = {
            "name": f"{job_type} job",
            "type": job_type,
            "schedule": YEARLY,
            "enabled": True,
            "config": dict(VALID_CONFIGS[job_type]),
        }
        fields.update(overrides)
        return Job(**fields)

    return factory


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def valid_configs() -> Dict[str, Dict[str, Any]]:
    return {job_type: dict(config) for job_type, config in VALID_CONFIGS.items()}
