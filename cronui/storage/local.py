"""
Directory-backed implementation of the storage capability.
"""

import os
import uuid
from pathlib import Path
from typing import AsyncIterable, AsyncIterator, List, Optional

import aiofiles
from aiofiles import os as aioos
from asyncer import asyncify

from ..errors import StorageError, StorageFileNotFoundError
from .base import FileInfo

_CHUNK_SIZE = 1024 * 1024


@asyncify
def _walk_files(root: Path) -> List[str]:
    """List every file under root as a POSIX path relative to root."""
    names = []
    for dirpath, _, filenames in os.walk(root):
        for filename in filenames:
            if filename.startswith(".") and filename.endswith(".part"):
                continue
            names.append((Path(dirpath) / filename).relative_to(root).as_posix())
    return sorted(names)


class LocalStorage:
    """
    Stores objects as files under a root directory.

    Object names may contain ``/`` and map to subdirectories. Uploads are
    written to a hidden part file and moved into place, so readers never see a
    partially written object.
    """

    def __init__(self, root: Path, base_url: Optional[str] = None):
        self.root = Path(root)
        self.base_url = base_url

    def _resolve(self, name: str) -> Path:
        root = self.root.resolve()
        path = (root / name.lstrip("/")).resolve()
        if path == root or root not in path.parents:
            raise StorageError(f"invalid object name: {name!r}")
        return path

    def _file_info(self, name: str) -> FileInfo:
        if self.base_url:
            url = f"{self.base_url.rstrip('/')}/{name}"
        else:
            url = self._resolve(name).as_uri()
        return FileInfo(name=name, url=url)

    async def list_files(self) -> List[FileInfo]:
        if not await aioos.path.isdir(self.root):
            return []
        try:
            names = await _walk_files(self.root.resolve())
        except OSError as e:
            raise StorageError(f"list files in {self.root}: {e}") from e
        return [self._file_info(name) for name in names]

    async def download_file(self, name: str) -> AsyncIterator[bytes]:
        path = self._resolve(name)
        if not await aioos.path.isfile(path):
            raise StorageFileNotFoundError(f"object not found: {name}")
        try:
            async with aiofiles.open(path, "rb") as f:
                while chunk := await f.read(_CHUNK_SIZE):
                    yield chunk
        except OSError as e:
            raise StorageError(f"download {name}: {e}") from e

    async def upload_file(self, name: str, data: AsyncIterable[bytes]) -> FileInfo:
        path = self._resolve(name)
        part_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.part")
        replaced = False
        try:
            await aioos.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(part_path, "wb") as f:
                async for chunk in data:
                    await f.write(chunk)
            await aioos.replace(part_path, path)
            replaced = True
        except OSError as e:
            raise StorageError(f"upload {name}: {e}") from e
        finally:
            # Also covers failing sources and cancellation
            if not replaced and await aioos.path.exists(part_path):
                await aioos.remove(part_path)
        return self._file_info(name)

    async def delete_file(self, name: str) -> None:
        path = self._resolve(name)
        try:
            await aioos.remove(path)
        except FileNotFoundError as e:
            raise StorageFileNotFoundError(f"object not found: {name}") from e
        except OSError as e:
            raise StorageError(f"delete {name}: {e}") from e

    async def rename_file(self, old_name: str, new_name: str) -> None:
        old_path = self._resolve(old_name)
        new_path = self._resolve(new_name)
        if not await aioos.path.isfile(old_path):
            raise StorageFileNotFoundError(f"object not found: {old_name}")
        try:
            await aioos.makedirs(new_path.parent, exist_ok=True)
            await aioos.replace(old_path, new_path)
        except OSError as e:
            raise StorageError(f"rename {old_name} to {new_name}: {e}") from e
