"""
Upload session manager.

Drives the MCA chunked upload protocol: a client opens a sequence, sends
numbered parts, and closes the sequence. Parts are persisted through an
injected part store; closing publishes ``sequence.closed`` so the
finalizer can assemble the video.

Mutations of one sequence are serialized by a per-sequence lock held
across the whole check/write/record step, so a part can never land after
close and concurrent parts never lose updates to ``received_parts``.
Sequences do not share locks with each other.
"""

import asyncio
import dataclasses
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from ....core.domain.events import SequenceEvents
from ....core.domain.sequences import Ack, SequenceState, UploadSequence
from ....core.exceptions import (
    InvalidArgument, InvalidState, NotFound, StorageError, Unauthorized
)
from ....core.interfaces.messaging import IEventBus
from ....core.interfaces.upload import IPartStore, IUploadSessionManager
from ....core.interfaces.users import IUserService

logger = logging.getLogger(__name__)


class UploadSessionManager(IUploadSessionManager):
    """In-process registry of upload sequences."""

    def __init__(
        self,
        part_store: IPartStore,
        user_service: IUserService,
        event_bus: Optional[IEventBus] = None,
        idle_timeout: float = 3600.0,
        reap_interval: float = 60.0,
        max_part_size: int = 0,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize upload session manager.

        Args:
            part_store: Store receiving part data
            user_service: Resolves device tokens to users
            event_bus: Event bus for lifecycle events (optional)
            idle_timeout: Seconds an open sequence may go without a part
                before the reaper expires it
            reap_interval: Seconds between reaper runs
            max_part_size: Largest accepted part in bytes, 0 for no limit
            clock: Time source, replaceable in tests
        """
        self._store = part_store
        self._user_service = user_service
        self._event_bus = event_bus
        self._idle_timeout = idle_timeout
        self._reap_interval = reap_interval
        self._max_part_size = max_part_size
        self._clock = clock

        self._sequences: Dict[str, UploadSequence] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._reaper_task: Optional[asyncio.Task[None]] = None
        self._running = False

        self._stats = {
            "sequences_opened": 0,
            "sequences_closed": 0,
            "sequences_expired": 0,
            "parts_accepted": 0,
            "parts_failed": 0,
            "bytes_accepted": 0,
        }

    @property
    def name(self) -> str:
        return "UploadSessionManager"

    async def start(self) -> None:
        """Start the idle-sequence reaper."""
        if self._running:
            return

        self._running = True
        self._reaper_task = asyncio.create_task(self._reap_loop())
        logger.info("Upload session manager started")

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False

        if self._reaper_task and not self._reaper_task.done():
            self._reaper_task.cancel()
            try:
                await self._reaper_task
            except asyncio.CancelledError:
                pass
        self._reaper_task = None

        logger.info("Upload session manager stopped")

    async def check_health(self) -> Dict[str, Any]:
        open_count = sum(1 for s in self._sequences.values() if s.is_open)

        return {
            "healthy": self._running,
            "status": "running" if self._running else "stopped",
            "details": {
                "sequences_total": len(self._sequences),
                "sequences_open": open_count,
                "idle_timeout": self._idle_timeout,
                "statistics": dict(self._stats),
            }
        }

    async def open(self, token: str) -> str:
        """Open a new sequence owned by ``token``."""
        user = await self._user_service.resolve_user(token) if token else None
        if user is None:
            raise Unauthorized("Invalid Moteve-Token")

        sequence_id = uuid.uuid4().hex
        while sequence_id in self._sequences:
            sequence_id = uuid.uuid4().hex

        now = self._clock()
        self._sequences[sequence_id] = UploadSequence(
            sequence_id=sequence_id,
            owner_token=token,
            owner_email=user.email,
            created_at=now,
            updated_at=now,
        )
        self._locks[sequence_id] = asyncio.Lock()
        self._stats["sequences_opened"] += 1

        logger.info(f"Opened sequence {sequence_id} for user {user.email}")

        await self._publish(SequenceEvents.OPENED, {
            "sequence_id": sequence_id,
            "owner_email": user.email,
        })

        return sequence_id

    async def accept_part(self, sequence_id: str, part_number: int,
                          token: str, data: bytes) -> Ack:
        """Persist one part, overwriting any earlier data for the same number."""
        sequence = self._require(sequence_id)

        async with self._locks[sequence_id]:
            self._check_open(sequence)
            self._check_owner(sequence, token)

            if part_number < 1:
                raise InvalidArgument(
                    f"Part number must be a positive integer, got {part_number}")

            if self._max_part_size and len(data) > self._max_part_size:
                raise InvalidArgument(
                    f"Part {part_number} exceeds the {self._max_part_size} byte limit")

            try:
                await self._store.put(sequence_id, part_number, data)
            except StorageError:
                self._stats["parts_failed"] += 1
                logger.error(f"Failed to store part {part_number} of sequence {sequence_id}")
                raise
            except OSError as e:
                self._stats["parts_failed"] += 1
                logger.error(f"Failed to store part {part_number} of sequence {sequence_id}: {e}")
                raise StorageError(f"Failed to store part {part_number}: {e}") from e

            sequence.received_parts.add(part_number)
            sequence.part_sizes[part_number] = len(data)
            sequence.touch(self._clock())

        self._stats["parts_accepted"] += 1
        self._stats["bytes_accepted"] += len(data)

        logger.debug(f"Accepted part {part_number} ({len(data)} B) of sequence {sequence_id}")

        await self._publish(SequenceEvents.PART_ACCEPTED, {
            "sequence_id": sequence_id,
            "part_number": part_number,
            "size": len(data),
        })

        return Ack(sequence_id=sequence_id, message="OK", part_number=part_number)

    async def close(self, sequence_id: str, token: str) -> Ack:
        """Close an open sequence and hand it over for finalization."""
        sequence = self._require(sequence_id)

        async with self._locks[sequence_id]:
            self._check_open(sequence)
            self._check_owner(sequence, token)

            now = self._clock()
            sequence.state = SequenceState.CLOSED
            sequence.closed_at = now
            sequence.touch(now)
            parts = sequence.sorted_parts()

        self._stats["sequences_closed"] += 1
        logger.info(f"Closed sequence {sequence_id} with {len(parts)} parts")

        await self._publish(SequenceEvents.CLOSED, {
            "sequence_id": sequence_id,
            "owner_email": sequence.owner_email,
            "parts": parts,
            "bytes_received": sequence.bytes_received,
        })

        return Ack(sequence_id=sequence_id, message=f"{sequence_id} closed")

    def get_sequence(self, sequence_id: str) -> Optional[UploadSequence]:
        sequence = self._sequences.get(sequence_id)
        if sequence is None:
            return None
        return self._snapshot(sequence)

    def list_sequences(self, state: Optional[SequenceState] = None) -> List[UploadSequence]:
        return [
            self._snapshot(sequence) for sequence in self._sequences.values()
            if state is None or sequence.state is state
        ]

    async def expire_idle_sequences(self, now: Optional[float] = None) -> int:
        """Expire open sequences idle for longer than the timeout and drop their parts."""
        now = self._clock() if now is None else now
        expired = 0

        for sequence_id, sequence in list(self._sequences.items()):
            if not self._is_idle(sequence, now):
                continue

            async with self._locks[sequence_id]:
                # A part may have arrived while waiting for the lock
                if not self._is_idle(sequence, now):
                    continue
                sequence.state = SequenceState.EXPIRED
                sequence.closed_at = now

            removed = await self._store.delete_sequence(sequence_id)
            expired += 1
            self._stats["sequences_expired"] += 1

            logger.warning(
                f"Expired idle sequence {sequence_id}, removed {removed} stored parts")

            await self._publish(SequenceEvents.EXPIRED, {
                "sequence_id": sequence_id,
                "owner_email": sequence.owner_email,
            })

        return expired

    def forget_terminal_sequences(self, older_than: float, now: Optional[float] = None) -> int:
        """Drop closed/expired sequences that ended more than ``older_than`` seconds ago."""
        now = self._clock() if now is None else now
        stale = [
            sequence_id for sequence_id, sequence in self._sequences.items()
            if sequence.state.is_terminal
            and sequence.closed_at is not None
            and now - sequence.closed_at > older_than
        ]

        for sequence_id in stale:
            self._drop(sequence_id)

        return len(stale)

    def forget_sequence(self, sequence_id: str) -> bool:
        """
        Drop a closed or expired sequence from the registry.

        Returns False for unknown ids. Open sequences cannot be forgotten.
        """
        sequence = self._sequences.get(sequence_id)
        if sequence is None:
            return False
        if not sequence.state.is_terminal:
            raise InvalidState(f"Sequence {sequence_id} is still open")

        self._drop(sequence_id)
        logger.debug(f"Forgot sequence {sequence_id}")
        return True

    def get_statistics(self) -> Dict[str, Any]:
        states = {state.value: 0 for state in SequenceState}
        for sequence in self._sequences.values():
            states[sequence.state.value] += 1

        return {**self._stats, "sequences_by_state": states}

    def _require(self, sequence_id: str) -> UploadSequence:
        sequence = self._sequences.get(sequence_id)
        if sequence is None:
            raise NotFound(f"Unknown sequence {sequence_id}")
        return sequence

    def _check_open(self, sequence: UploadSequence) -> None:
        if not sequence.is_open:
            raise InvalidState(
                f"Sequence {sequence.sequence_id} is {sequence.state.value}")

    def _check_owner(self, sequence: UploadSequence, token: str) -> None:
        if not token or token != sequence.owner_token:
            raise Unauthorized(
                f"Moteve-Token does not own sequence {sequence.sequence_id}")

    def _drop(self, sequence_id: str) -> None:
        del self._sequences[sequence_id]
        del self._locks[sequence_id]

    def _is_idle(self, sequence: UploadSequence, now: float) -> bool:
        return sequence.is_open and now - sequence.updated_at > self._idle_timeout

    def _snapshot(self, sequence: UploadSequence) -> UploadSequence:
        return dataclasses.replace(
            sequence,
            received_parts=set(sequence.received_parts),
            part_sizes=dict(sequence.part_sizes),
        )

    async def _publish(self, event_name: str, data: Dict[str, Any]) -> None:
        if self._event_bus is None:
            return

        try:
            await self._event_bus.publish(event_name, data)
        except RuntimeError as e:
            logger.error(f"Failed to publish {event_name}: {e}")

    async def _reap_loop(self) -> None:
        """Periodically expire idle sequences and forget old terminal ones."""
        while self._running:
            await asyncio.sleep(self._reap_interval)
            try:
                await self.expire_idle_sequences()
                self.forget_terminal_sequences(self._idle_timeout)
            except Exception as e:
                logger.error(f"Sequence reaper error: {e}")
