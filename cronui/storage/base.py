"""
Storage capability consumed by the backup layer.
"""

from typing import AsyncIterable, AsyncIterator, List, Protocol, runtime_checkable

from pydantic import BaseModel


class FileInfo(BaseModel):
    """A stored object and the URL it can be fetched from"""

    name: str
    url: str


@runtime_checkable
class Storage(Protocol):
    """
    Generic object store.

    Implementations raise StorageError on failure and StorageFileNotFoundError
    when the named object does not exist.
    """

    async def list_files(self) -> List[FileInfo]: ...

    def download_file(self, name: str) -> AsyncIterator[bytes]: ...

    async def upload_file(self, name: str, data: AsyncIterable[bytes]) -> FileInfo: ...

    async def delete_file(self, name: str) -> None: ...

    async def rename_file(self, old_name: str, new_name: str) -> None: ...
