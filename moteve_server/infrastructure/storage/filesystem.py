"""
Filesystem part store.

Each part lives in its own file, ``<root>/<sequence_id>_<part><ext>``.
Writes go to a temporary file that replaces the target only once it is
complete, so a failed upload never leaves a truncated part behind.
"""

import logging
import os
import re
import uuid
from pathlib import Path
from typing import List

import aiofiles
import aiofiles.os

from ...core.exceptions import InvalidArgument, NotFound, StorageError
from ...core.interfaces.upload import IPartStore

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


class FilesystemPartStore(IPartStore):
    """Stores parts as individual files below a root directory."""

    def __init__(self, root_directory: str, extension: str = ".3gp") -> None:
        self._root = Path(root_directory)
        self._extension = extension

    @property
    def root(self) -> Path:
        return self._root

    def part_path(self, sequence_id: str, part_number: int) -> Path:
        """Path of the file holding one part."""
        if not _SAFE_ID.match(sequence_id):
            raise InvalidArgument(f"Invalid sequence id: {sequence_id!r}")
        return self._root / f"{sequence_id}_{part_number}{self._extension}"

    async def put(self, sequence_id: str, part_number: int, data: bytes) -> None:
        target = self.part_path(sequence_id, part_number)
        temp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")

        try:
            await aiofiles.os.makedirs(self._root, exist_ok=True)
            async with aiofiles.open(temp_path, 'wb') as f:
                await f.write(data)
            await aiofiles.os.replace(temp_path, target)
        except OSError as e:
            await self._discard(temp_path)
            raise StorageError(
                f"Failed to write part {part_number} of sequence {sequence_id}: {e}")

        logger.info(f"Bytes written: {len(data)}. Part file: {target}")

    async def get(self, sequence_id: str, part_number: int) -> bytes:
        path = self.part_path(sequence_id, part_number)

        try:
            async with aiofiles.open(path, 'rb') as f:
                return await f.read()
        except FileNotFoundError:
            raise NotFound(f"Part {part_number} of sequence {sequence_id} not found")
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}")

    async def delete(self, sequence_id: str, part_number: int) -> bool:
        path = self.part_path(sequence_id, part_number)

        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False

        return True

    async def delete_sequence(self, sequence_id: str) -> int:
        removed = 0
        for path in self._sequence_files(sequence_id):
            try:
                await aiofiles.os.remove(path)
                removed += 1
            except FileNotFoundError:
                continue

        return removed

    def _sequence_files(self, sequence_id: str) -> List[Path]:
        if not _SAFE_ID.match(sequence_id) or not self._root.exists():
            return []

        prefix = f"{sequence_id}_"
        files = []
        for name in os.listdir(self._root):
            if not (name.startswith(prefix) and name.endswith(self._extension)):
                continue
            if name[len(prefix):-len(self._extension) or None].isdigit():
                files.append(self._root / name)
        return files

    async def _discard(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove temp file {path}: {e}")
