"""
Sequence finalizer.

Listens for ``sequence.closed`` and concatenates the received parts, in
part-number order, into ``<output_directory>/<sequence_id><ext>``.
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiofiles
import aiofiles.os

from ....core.domain.events import Event, SequenceEvents
from ....core.exceptions import MoteveError
from ....core.interfaces.lifecycle import IComponent
from ....core.interfaces.messaging import IEventBus
from ....core.interfaces.upload import IPartStore

logger = logging.getLogger(__name__)


def missing_part_ranges(parts: List[int]) -> List[Tuple[int, int]]:
    """Inclusive ranges of part numbers absent from the sorted ``parts``."""
    gaps: List[Tuple[int, int]] = []
    previous = 0
    for part_number in parts:
        if part_number - previous > 1:
            gaps.append((previous + 1, part_number - 1))
        previous = part_number
    return gaps


class SequenceFinalizer(IComponent):
    """Assembles closed sequences into single video files."""

    def __init__(
        self,
        part_store: IPartStore,
        event_bus: IEventBus,
        output_directory: str,
        extension: str = ".3gp",
        keep_parts: bool = False,
        drain_timeout: float = 10.0
    ):
        self._store = part_store
        self._event_bus = event_bus
        self._output_dir = Path(output_directory)
        self._extension = extension
        self._keep_parts = keep_parts
        self._drain_timeout = drain_timeout
        self._subscription_id: Optional[str] = None

        self._stats = {
            "finalized": 0,
            "failed": 0,
            "bytes_written": 0,
        }

    @property
    def name(self) -> str:
        return "SequenceFinalizer"

    async def start(self) -> None:
        if self._subscription_id is not None:
            return

        await aiofiles.os.makedirs(self._output_dir, exist_ok=True)
        self._subscription_id = await self._event_bus.subscribe(
            SequenceEvents.CLOSED, self.handle_closed)
        logger.info(f"Sequence finalizer writing to {self._output_dir}")

    async def stop(self) -> None:
        if self._subscription_id is None:
            return

        # Finish sequences closed before shutdown
        try:
            await asyncio.wait_for(self._event_bus.join(), timeout=self._drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Pending events not drained within {self._drain_timeout}s")

        await self._event_bus.unsubscribe(self._subscription_id)
        self._subscription_id = None

    async def check_health(self) -> Dict[str, Any]:
        return {
            "healthy": True,
            "status": "running" if self._subscription_id else "stopped",
            "details": {
                "output_directory": str(self._output_dir),
                "keep_parts": self._keep_parts,
                "statistics": dict(self._stats),
            }
        }

    def output_path(self, sequence_id: str) -> Path:
        return self._output_dir / f"{sequence_id}{self._extension}"

    async def handle_closed(self, event: Event) -> None:
        """Event handler for ``sequence.closed``."""
        data = event.data or {}
        sequence_id = data["sequence_id"]
        parts: List[int] = sorted(data.get("parts", []))

        try:
            path, size = await self.finalize(sequence_id, parts)
        except (MoteveError, OSError) as e:
            self._stats["failed"] += 1
            logger.error(f"Failed to finalize sequence {sequence_id}: {e}")
            await self._event_bus.publish(SequenceEvents.FINALIZE_FAILED, {
                "sequence_id": sequence_id,
                "error": str(e),
            })
            return

        await self._event_bus.publish(SequenceEvents.FINALIZED, {
            "sequence_id": sequence_id,
            "owner_email": data.get("owner_email"),
            "path": str(path),
            "size": size,
        })

    async def finalize(self, sequence_id: str, parts: List[int]) -> Tuple[Path, int]:
        """
        Concatenate the given parts into the output file.

        Returns:
            (output path, bytes written)
        """
        target = self.output_path(sequence_id)
        temp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
        parts = sorted(parts)
        gaps = missing_part_ranges(parts)
        if gaps:
            missing = ", ".join(str(lo) if lo == hi else f"{lo}-{hi}" for lo, hi in gaps)
            logger.warning(f"Sequence {sequence_id} is missing parts {missing}")

        written = 0
        await aiofiles.os.makedirs(self._output_dir, exist_ok=True)
        try:
            async with aiofiles.open(temp_path, 'wb') as out:
                for part_number in parts:
                    chunk = await self._store.get(sequence_id, part_number)
                    await out.write(chunk)
                    written += len(chunk)
            await aiofiles.os.replace(temp_path, target)
        finally:
            if await aiofiles.os.path.exists(temp_path):
                await aiofiles.os.remove(temp_path)

        if not self._keep_parts:
            await self._store.delete_sequence(sequence_id)

        self._stats["finalized"] += 1
        self._stats["bytes_written"] += written
        logger.info(f"Finalized sequence {sequence_id}: {target} ({written} B)")

        return target, written
