"""
Tests for the upload session manager.

This module covers the sequence protocol: opening, accepting parts,
closing, ownership checks, storage failures and idle expiry.
"""

import asyncio
import pytest
from typing import Tuple
from unittest.mock import AsyncMock, Mock

from moteve_server.core.domain.events import SequenceEvents
from moteve_server.core.domain.sequences import SequenceState
from moteve_server.core.exceptions import (
    InvalidArgument, InvalidState, NotFound, StorageError, Unauthorized
)
from moteve_server.core.interfaces.messaging import IEventBus
from moteve_server.core.interfaces.upload import IPartStore, IUploadSessionManager
from moteve_server.infrastructure.services.upload.manager import UploadSessionManager
from moteve_server.infrastructure.services.users.directory import UserDirectory
from moteve_server.infrastructure.storage.memory import MemoryPartStore


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
async def directory_and_tokens() -> Tuple[UserDirectory, str, str]:
    """A directory with two users, each with one registered device."""
    directory = UserDirectory()
    alice = directory.add_user("alice@example.com", "secret", groups=["family"])
    bob = directory.add_user("bob@example.com", "hunter2")
    alice_token = await directory.issue_token(alice, "phone")
    bob_token = await directory.issue_token(bob, "tablet")
    return directory, alice_token, bob_token


@pytest.fixture
def store() -> MemoryPartStore:
    return MemoryPartStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_event_bus() -> Mock:
    """Create a mock event bus."""
    bus = Mock(spec=IEventBus)
    bus.publish = AsyncMock(return_value="event-id")
    return bus


@pytest.fixture
def manager(directory_and_tokens: Tuple[UserDirectory, str, str], store: MemoryPartStore,
            mock_event_bus: Mock, clock: FakeClock) -> UploadSessionManager:
    directory, _, _ = directory_and_tokens
    return UploadSessionManager(
        part_store=store,
        user_service=directory,
        event_bus=mock_event_bus,
        idle_timeout=10.0,
        reap_interval=0.05,
        clock=clock
    )


@pytest.fixture
def alice_token(directory_and_tokens: Tuple[UserDirectory, str, str]) -> str:
    return directory_and_tokens[1]


@pytest.fixture
def bob_token(directory_and_tokens: Tuple[UserDirectory, str, str]) -> str:
    return directory_and_tokens[2]


class TestOpen:
    """Opening sequences."""

    async def test_manager_implements_interface(self, manager: UploadSessionManager) -> None:
        assert isinstance(manager, IUploadSessionManager)
        assert manager.name == "UploadSessionManager"

    async def test_open_with_valid_token(self, manager: UploadSessionManager, alice_token: str) -> None:
        sequence_id = await manager.open(alice_token)

        sequence = manager.get_sequence(sequence_id)
        assert sequence is not None
        assert sequence.state is SequenceState.OPEN
        assert sequence.received_parts == set()
        assert sequence.owner_email == "alice@example.com"
        assert sequence.owner_token == alice_token

    async def test_open_with_invalid_token(self, manager: UploadSessionManager) -> None:
        with pytest.raises(Unauthorized):
            await manager.open("not-a-token")

        with pytest.raises(Unauthorized):
            await manager.open("")

        assert manager.list_sequences() == []

    async def test_concurrent_opens_get_distinct_ids(self, manager: UploadSessionManager,
                                                     alice_token: str) -> None:
        ids = await asyncio.gather(*(manager.open(alice_token) for _ in range(50)))

        assert len(set(ids)) == 50
        assert len(manager.list_sequences(SequenceState.OPEN)) == 50

    async def test_open_publishes_event(self, manager: UploadSessionManager,
                                        mock_event_bus: Mock, alice_token: str) -> None:
        sequence_id = await manager.open(alice_token)

        mock_event_bus.publish.assert_awaited_with(SequenceEvents.OPENED, {
            "sequence_id": sequence_id,
            "owner_email": "alice@example.com",
        })


class TestAcceptPart:
    """Accepting parts."""

    async def test_happy_path(self, manager: UploadSessionManager, store: MemoryPartStore,
                              alice_token: str) -> None:
        """Open, upload three parts, close."""
        sequence_id = await manager.open(alice_token)

        for part_number, data in enumerate([b"aa", b"bbb", b"c"], start=1):
            ack = await manager.accept_part(sequence_id, part_number, alice_token, data)
            assert ack.message == "OK"
            assert ack.part_number == part_number
            assert ack.sequence_id == sequence_id

        ack = await manager.close(sequence_id, alice_token)
        assert ack.message == f"{sequence_id} closed"

        sequence = manager.get_sequence(sequence_id)
        assert sequence is not None
        assert sequence.state is SequenceState.CLOSED
        assert sequence.received_parts == {1, 2, 3}
        assert sequence.bytes_received == 6
        assert await store.get(sequence_id, 2) == b"bbb"

    async def test_same_part_overwrites(self, manager: UploadSessionManager, store: MemoryPartStore,
                                        alice_token: str) -> None:
        sequence_id = await manager.open(alice_token)

        await manager.accept_part(sequence_id, 1, alice_token, b"first attempt")
        await manager.accept_part(sequence_id, 1, alice_token, b"retry")

        sequence = manager.get_sequence(sequence_id)
        assert sequence is not None
        assert sequence.received_parts == {1}
        assert sequence.bytes_received == len(b"retry")
        assert await store.get(sequence_id, 1) == b"retry"

    async def test_unknown_sequence(self, manager: UploadSessionManager, alice_token: str) -> None:
        with pytest.raises(NotFound):
            await manager.accept_part("does-not-exist", 1, alice_token, b"data")

    async def test_foreign_token_is_rejected(self, manager: UploadSessionManager,
                                             store: MemoryPartStore,
                                             alice_token: str, bob_token: str) -> None:
        sequence_id = await manager.open(alice_token)

        with pytest.raises(Unauthorized):
            await manager.accept_part(sequence_id, 1, bob_token, b"intruder")

        sequence = manager.get_sequence(sequence_id)
        assert sequence is not None
        assert sequence.received_parts == set()
        assert len(store) == 0

    async def test_part_after_close(self, manager: UploadSessionManager,
                                    alice_token: str, bob_token: str) -> None:
        sequence_id = await manager.open(alice_token)
        await manager.accept_part(sequence_id, 1, alice_token, b"data")
        await manager.close(sequence_id, alice_token)

        with pytest.raises(InvalidState):
            await manager.accept_part(sequence_id, 2, alice_token, b"late")

        # The state check comes before the ownership check
        with pytest.raises(InvalidState):
            await manager.accept_part(sequence_id, 2, bob_token, b"late")

        sequence = manager.get_sequence(sequence_id)
        assert sequence is not None
        assert sequence.received_parts == {1}

    @pytest.mark.parametrize("part_number", [0, -1])
    async def test_non_positive_part_number(self, manager: UploadSessionManager,
                                            alice_token: str, part_number: int) -> None:
        sequence_id = await manager.open(alice_token)

        with pytest.raises(InvalidArgument):
            await manager.accept_part(sequence_id, part_number, alice_token, b"data")

    async def test_part_size_limit(self, directory_and_tokens: Tuple[UserDirectory, str, str],
                                   store: MemoryPartStore) -> None:
        directory, alice_token, _ = directory_and_tokens
        manager = UploadSessionManager(store, directory, max_part_size=4)
        sequence_id = await manager.open(alice_token)

        await manager.accept_part(sequence_id, 1, alice_token, b"1234")
        with pytest.raises(InvalidArgument):
            await manager.accept_part(sequence_id, 2, alice_token, b"12345")

        sequence = manager.get_sequence(sequence_id)
        assert sequence is not None
        assert sequence.received_parts == {1}

    async def test_concurrent_distinct_parts(self, manager: UploadSessionManager,
                                             store: MemoryPartStore, alice_token: str) -> None:
        sequence_id = await manager.open(alice_token)
        count = 40

        acks = await asyncio.gather(*(
            manager.accept_part(sequence_id, n, alice_token, f"part-{n}".encode())
            for n in range(1, count + 1)
        ))

        assert all(ack.message == "OK" for ack in acks)
        sequence = manager.get_sequence(sequence_id)
        assert sequence is not None
        assert sequence.received_parts == set(range(1, count + 1))
        assert await store.get(sequence_id, 17) == b"part-17"

    async def test_part_and_close_race(self, manager: UploadSessionManager, alice_token: str) -> None:
        """A part racing a close is either recorded before it or rejected."""
        sequence_id = await manager.open(alice_token)

        results = await asyncio.gather(
            manager.accept_part(sequence_id, 1, alice_token, b"data"),
            manager.close(sequence_id, alice_token),
            return_exceptions=True
        )

        sequence = manager.get_sequence(sequence_id)
        assert sequence is not None
        assert sequence.state is SequenceState.CLOSED
        if isinstance(results[0], InvalidState):
            assert sequence.received_parts == set()
        else:
            assert sequence.received_parts == {1}


class TestStorageFailure:
    """Store failures must not corrupt sequence state."""

    @pytest.fixture
    def failing_store(self) -> Mock:
        store = Mock(spec=IPartStore)
        store.put = AsyncMock(side_effect=StorageError("disk full"))
        store.delete_sequence = AsyncMock(return_value=0)
        return store

    async def test_storage_error_leaves_parts_unchanged(
        self, directory_and_tokens: Tuple[UserDirectory, str, str], failing_store: Mock
    ) -> None:
        directory, alice_token, _ = directory_and_tokens
        manager = UploadSessionManager(failing_store, directory)
        sequence_id = await manager.open(alice_token)

        with pytest.raises(StorageError):
            await manager.accept_part(sequence_id, 1, alice_token, b"data")

        sequence = manager.get_sequence(sequence_id)
        assert sequence is not None
        assert sequence.received_parts == set()
        assert sequence.is_open
        assert manager.get_statistics()["parts_failed"] == 1

    async def test_os_error_is_wrapped(self, directory_and_tokens: Tuple[UserDirectory, str, str],
                                       failing_store: Mock) -> None:
        directory, alice_token, _ = directory_and_tokens
        failing_store.put.side_effect = OSError("I/O error")
        manager = UploadSessionManager(failing_store, directory)
        sequence_id = await manager.open(alice_token)

        with pytest.raises(StorageError):
            await manager.accept_part(sequence_id, 1, alice_token, b"data")

        sequence = manager.get_sequence(sequence_id)
        assert sequence is not None
        assert sequence.received_parts == set()

    async def test_failure_does_not_affect_other_sequences(
        self, directory_and_tokens: Tuple[UserDirectory, str, str]
    ) -> None:
        directory, alice_token, _ = directory_and_tokens
        store = MemoryPartStore()
        manager = UploadSessionManager(store, directory)
        broken = await manager.open(alice_token)
        healthy = await manager.open(alice_token)

        original_put = store.put

        async def put(sequence_id: str, part_number: int, data: bytes) -> None:
            if sequence_id == broken:
                raise StorageError("broken")
            await original_put(sequence_id, part_number, data)

        store.put = put  # type: ignore[method-assign]

        with pytest.raises(StorageError):
            await manager.accept_part(broken, 1, alice_token, b"x")
        await manager.accept_part(healthy, 1, alice_token, b"y")

        sequence = manager.get_sequence(healthy)
        assert sequence is not None
        assert sequence.received_parts == {1}


class TestClose:
    """Closing sequences."""

    async def test_second_close_fails(self, manager: UploadSessionManager, alice_token: str) -> None:
        sequence_id = await manager.open(alice_token)
        await manager.close(sequence_id, alice_token)

        with pytest.raises(InvalidState):
            await manager.close(sequence_id, alice_token)

    async def test_close_unknown(self, manager: UploadSessionManager, alice_token: str) -> None:
        with pytest.raises(NotFound):
            await manager.close("missing", alice_token)

    async def test_close_with_foreign_token(self, manager: UploadSessionManager,
                                            alice_token: str, bob_token: str) -> None:
        sequence_id = await manager.open(alice_token)

        with pytest.raises(Unauthorized):
            await manager.close(sequence_id, bob_token)

        sequence = manager.get_sequence(sequence_id)
        assert sequence is not None
        assert sequence.is_open

    async def test_close_publishes_sorted_parts(self, manager: UploadSessionManager,
                                                mock_event_bus: Mock, alice_token: str) -> None:
        sequence_id = await manager.open(alice_token)
        for part_number in (3, 1, 2):
            await manager.accept_part(sequence_id, part_number, alice_token, b"xy")

        await manager.close(sequence_id, alice_token)

        mock_event_bus.publish.assert_awaited_with(SequenceEvents.CLOSED, {
            "sequence_id": sequence_id,
            "owner_email": "alice@example.com",
            "parts": [1, 2, 3],
            "bytes_received": 6,
        })

    async def test_publish_failure_does_not_fail_close(
        self, manager: UploadSessionManager, mock_event_bus: Mock, alice_token: str
    ) -> None:
        sequence_id = await manager.open(alice_token)
        mock_event_bus.publish.side_effect = RuntimeError("Event bus is not running")

        ack = await manager.close(sequence_id, alice_token)

        assert ack.message == f"{sequence_id} closed"


class TestExpiry:
    """Idle sequence expiry and registry cleanup."""

    async def test_idle_sequence_expires(self, manager: UploadSessionManager, store: MemoryPartStore,
                                         clock: FakeClock, alice_token: str) -> None:
        sequence_id = await manager.open(alice_token)
        await manager.accept_part(sequence_id, 1, alice_token, b"data")

        clock.advance(11)
        expired = await manager.expire_idle_sequences()

        assert expired == 1
        sequence = manager.get_sequence(sequence_id)
        assert sequence is not None
        assert sequence.state is SequenceState.EXPIRED
        assert len(store) == 0

        with pytest.raises(InvalidState):
            await manager.accept_part(sequence_id, 2, alice_token, b"late")

    async def test_active_sequence_is_kept(self, manager: UploadSessionManager,
                                           clock: FakeClock, alice_token: str) -> None:
        sequence_id = await manager.open(alice_token)
        clock.advance(8)
        await manager.accept_part(sequence_id, 1, alice_token, b"data")
        clock.advance(8)

        assert await manager.expire_idle_sequences() == 0
        sequence = manager.get_sequence(sequence_id)
        assert sequence is not None
        assert sequence.is_open

    async def test_closed_sequence_never_expires(self, manager: UploadSessionManager,
                                                 clock: FakeClock, alice_token: str) -> None:
        sequence_id = await manager.open(alice_token)
        await manager.close(sequence_id, alice_token)

        clock.advance(100)

        assert await manager.expire_idle_sequences() == 0
        sequence = manager.get_sequence(sequence_id)
        assert sequence is not None
        assert sequence.state is SequenceState.CLOSED

    async def test_expiry_publishes_event(self, manager: UploadSessionManager, mock_event_bus: Mock,
                                          clock: FakeClock, alice_token: str) -> None:
        sequence_id = await manager.open(alice_token)

        await manager.expire_idle_sequences(now=clock.now + 60)

        mock_event_bus.publish.assert_awaited_with(SequenceEvents.EXPIRED, {
            "sequence_id": sequence_id,
            "owner_email": "alice@example.com",
        })

    async def test_reaper_task_expires_sequences(
        self, directory_and_tokens: Tuple[UserDirectory, str, str], store: MemoryPartStore
    ) -> None:
        directory, alice_token, _ = directory_and_tokens
        manager = UploadSessionManager(store, directory, idle_timeout=0.01, reap_interval=0.02)
        sequence_id = await manager.open(alice_token)

        await manager.start()
        try:
            for _ in range(50):
                await asyncio.sleep(0.02)
                sequence = manager.get_sequence(sequence_id)
                if sequence is None or sequence.state is SequenceState.EXPIRED:
                    break
        finally:
            await manager.stop()

        assert manager.get_statistics()["sequences_expired"] == 1

    async def test_forget_sequence(self, manager: UploadSessionManager, alice_token: str) -> None:
        sequence_id = await manager.open(alice_token)

        with pytest.raises(InvalidState):
            manager.forget_sequence(sequence_id)

        await manager.close(sequence_id, alice_token)

        assert manager.forget_sequence(sequence_id) is True
        assert manager.get_sequence(sequence_id) is None
        assert manager.forget_sequence(sequence_id) is False

        with pytest.raises(NotFound):
            await manager.accept_part(sequence_id, 1, alice_token, b"data")

    async def test_forget_terminal_sequences(self, manager: UploadSessionManager,
                                             clock: FakeClock, alice_token: str) -> None:
        closed = await manager.open(alice_token)
        still_open = await manager.open(alice_token)
        await manager.close(closed, alice_token)

        assert manager.forget_terminal_sequences(older_than=5.0) == 0

        clock.advance(6)
        assert manager.forget_terminal_sequences(older_than=5.0) == 1
        assert manager.get_sequence(closed) is None
        assert manager.get_sequence(still_open) is not None


class TestQueries:
    """Snapshots, listings, statistics and lifecycle."""

    async def test_snapshot_is_detached(self, manager: UploadSessionManager, alice_token: str) -> None:
        sequence_id = await manager.open(alice_token)
        snapshot = manager.get_sequence(sequence_id)
        assert snapshot is not None

        snapshot.received_parts.add(99)

        current = manager.get_sequence(sequence_id)
        assert current is not None
        assert current.received_parts == set()

    async def test_list_sequences_by_state(self, manager: UploadSessionManager, alice_token: str) -> None:
        first = await manager.open(alice_token)
        second = await manager.open(alice_token)
        await manager.close(first, alice_token)

        assert [s.sequence_id for s in manager.list_sequences(SequenceState.OPEN)] == [second]
        assert [s.sequence_id for s in manager.list_sequences(SequenceState.CLOSED)] == [first]
        assert len(manager.list_sequences()) == 2

    async def test_statistics(self, manager: UploadSessionManager, alice_token: str) -> None:
        sequence_id = await manager.open(alice_token)
        await manager.accept_part(sequence_id, 1, alice_token, b"abc")
        await manager.close(sequence_id, alice_token)

        stats = manager.get_statistics()
        assert stats["sequences_opened"] == 1
        assert stats["sequences_closed"] == 1
        assert stats["parts_accepted"] == 1
        assert stats["bytes_accepted"] == 3
        assert stats["sequences_by_state"] == {"open": 0, "closed": 1, "expired": 0}

    async def test_lifecycle(self, manager: UploadSessionManager) -> None:
        health = await manager.check_health()
        assert health["healthy"] is False
        assert health["status"] == "stopped"

        await manager.start()
        health = await manager.check_health()
        assert health["healthy"] is True
        assert health["status"] == "running"

        await manager.stop()
        await manager.stop()
        assert (await manager.check_health())["status"] == "stopped"
