"""Backup and restore of the job database to a storage backend"""

from .coordinator import (
    CHECKSUM_FILE,
    backup_database,
    checksum_path,
    file_checksum,
    read_checksum_marker,
    restore_database,
)

__all__ = [
    "CHECKSUM_FILE",
    "backup_database",
    "checksum_path",
    "file_checksum",
    "read_checksum_marker",
    "restore_database",
]
