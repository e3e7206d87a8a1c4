"""
Part store implementations.
"""

from ...core.interfaces.upload import IPartStore
from ..config.models import UploadConfig
from .filesystem import FilesystemPartStore
from .memory import MemoryPartStore


def create_part_store(config: UploadConfig) -> IPartStore:
    """Build the part store selected by ``upload.storage_backend``."""
    if config.storage_backend == "memory":
        return MemoryPartStore()
    if config.storage_backend == "filesystem":
        return FilesystemPartStore(config.storage_directory, config.video_extension)
    raise ValueError(f"Unknown storage backend: {config.storage_backend}")


__all__ = [
    "create_part_store",
    "FilesystemPartStore",
    "MemoryPartStore",
]
