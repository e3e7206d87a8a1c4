"""
In-memory part store, used by tests and single-process development setups.
"""

import asyncio
from typing import Dict, Tuple

from ...core.exceptions import NotFound
from ...core.interfaces.upload import IPartStore

PartKey = Tuple[str, int]


class MemoryPartStore(IPartStore):
    """Keeps part bytes in a dict keyed by ``(sequence_id, part_number)``."""

    def __init__(self) -> None:
        self._parts: Dict[PartKey, bytes] = {}
        self._lock = asyncio.Lock()

    async def put(self, sequence_id: str, part_number: int, data: bytes) -> None:
        async with self._lock:
            self._parts[(sequence_id, part_number)] = bytes(data)

    async def get(self, sequence_id: str, part_number: int) -> bytes:
        async with self._lock:
            try:
                return self._parts[(sequence_id, part_number)]
            except KeyError:
                raise NotFound(f"Part {part_number} of sequence {sequence_id} not found")

    async def delete(self, sequence_id: str, part_number: int) -> bool:
        async with self._lock:
            return self._parts.pop((sequence_id, part_number), None) is not None

    async def delete_sequence(self, sequence_id: str) -> int:
        async with self._lock:
            keys = [key for key in self._parts if key[0] == sequence_id]
            for key in keys:
                del self._parts[key]
            return len(keys)

    def __len__(self) -> int:
        return len(self._parts)
