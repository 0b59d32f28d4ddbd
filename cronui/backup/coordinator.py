"""
Checksum-gated backup and crash-safe restore of the SQLite job database.

The digest of the last successfully uploaded content is kept in a sidecar
marker file next to the database so unchanged files are never re-uploaded.
"""

import hashlib
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles
from aiofiles import os as aioos

from ..errors import PersistenceError, StorageError, StorageFileNotFoundError
from ..logger import logger
from ..storage import Storage

CHECKSUM_FILE = ".last_checksum"

_CHUNK_SIZE = 1024 * 1024


def checksum_path(db_path: Path) -> Path:
    """Path of the checksum marker that belongs to ``db_path``."""
    return Path(db_path).parent / CHECKSUM_FILE


async def file_checksum(path: Path) -> str:
    """Hex sha256 digest of a file's content."""
    digest = hashlib.sha256()
    async with aiofiles.open(path, "rb") as f:
        while chunk := await f.read(_CHUNK_SIZE):
            digest.update(chunk)
    return digest.hexdigest()


async def read_checksum_marker(db_path: Path) -> Optional[str]:
    try:
        async with aiofiles.open(checksum_path(db_path), "r", encoding="utf-8") as f:
            return (await f.read()).strip() or None
    except FileNotFoundError:
        return None


async def write_checksum_marker(db_path: Path, checksum: str) -> None:
    marker = checksum_path(db_path)
    try:
        async with aiofiles.open(marker, "w", encoding="utf-8") as f:
            await f.write(checksum)
    except OSError as e:
        # Worst case the next backup uploads unchanged content again
        logger.warning(f"Failed to write checksum marker {marker}: {e}")


async def _read_chunks(path: Path, digest) -> AsyncIterator[bytes]:
    async with aiofiles.open(path, "rb") as f:
        while chunk := await f.read(_CHUNK_SIZE):
            digest.update(chunk)
            yield chunk


async def backup_database(db_path: Path, blob_name: str, storage: Storage) -> bool:
    """
    Upload the database file if its content changed since the last backup.

    Returns:
        True if the file was uploaded, False if the upload was skipped

    Raises:
        PersistenceError: If the local file cannot be read
        StorageError: If the upload fails (the marker is left unchanged)
    """
    db_path = Path(db_path)
    try:
        current = await file_checksum(db_path)
    except OSError as e:
        raise PersistenceError(f"cannot read database {db_path}: {e}") from e

    if current == await read_checksum_marker(db_path):
        logger.debug(f"Backup skipped (no change detected): {db_path} checksum={current}")
        return False

    logger.info(f"Uploading database backup: {db_path} -> {blob_name}")
    digest = hashlib.sha256()
    await storage.upload_file(blob_name, _read_chunks(db_path, digest))

    uploaded = digest.hexdigest()
    await write_checksum_marker(db_path, uploaded)
    logger.info(f"Backup successful: {db_path} -> {blob_name} checksum={uploaded}")
    return True


async def _discard(path: Path) -> None:
    try:
        await aioos.remove(path)
    except FileNotFoundError:
        pass


async def restore_database(db_path: Path, blob_name: str, storage: Storage) -> bool:
    """
    Replace the local database with the remote backup, if there is one.

    The object is streamed into a temporary file beside the database while its
    digest is computed; only a complete download is renamed over ``db_path``.
    A missing object or a failed download leaves the local file untouched and
    is reported as "starting fresh" rather than raised.

    Returns:
        True if the database was restored
    """
    db_path = Path(db_path)
    temp_path = db_path.with_name(db_path.name + ".tmp")
    logger.info(f"Restoring database from backup: {blob_name} -> {db_path}")

    digest = hashlib.sha256()
    try:
        await aioos.makedirs(db_path.parent, exist_ok=True)
        async with aiofiles.open(temp_path, "wb") as out:
            async for chunk in storage.download_file(blob_name):
                digest.update(chunk)
                await out.write(chunk)
        await aioos.replace(temp_path, db_path)
    except StorageFileNotFoundError:
        logger.info(f"No existing backup found at {blob_name}, starting fresh")
        await _discard(temp_path)
        return False
    except (StorageError, OSError) as e:
        logger.warning(f"Restore from {blob_name} failed, starting fresh: {e}")
        await _discard(temp_path)
        return False
    except Exception as e:
        # Storage providers may raise their own transport errors
        logger.warning(
            f"Restore from {blob_name} failed, starting fresh: {type(e).__name__}: {e}",
            exc_info=True,
        )
        await _discard(temp_path)
        return False

    checksum = digest.hexdigest()
    await write_checksum_marker(db_path, checksum)
    logger.info(f"Restore completed: {db_path} checksum={checksum}")
    return True
