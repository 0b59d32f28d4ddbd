"""Storage capability and a local-directory implementation"""

from .base import FileInfo, Storage
from .local import LocalStorage

__all__ = [
    "FileInfo",
    "Storage",
    "LocalStorage",
]
