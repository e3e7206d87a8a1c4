"""
Upload service interfaces.

This module defines the contracts for the chunked upload protocol: the
session manager driving open/accept/close, and the part store holding
the raw bytes of each part.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..domain.sequences import Ack, SequenceState, UploadSequence
from .lifecycle import IComponent


class IPartStore(ABC):
    """
    Content store for uploaded parts, keyed by ``(sequence_id, part_number)``.

    ``put`` must either fully replace the stored part or leave the
    previous content untouched.
    """

    @abstractmethod
    async def put(self, sequence_id: str, part_number: int, data: bytes) -> None:
        """
        Store a part, overwriting any earlier data for the same key.

        Raises:
            StorageError: If the data could not be persisted
        """
        pass

    @abstractmethod
    async def get(self, sequence_id: str, part_number: int) -> bytes:
        """
        Read a stored part.

        Raises:
            NotFound: If no data is stored under the key
        """
        pass

    @abstractmethod
    async def delete(self, sequence_id: str, part_number: int) -> bool:
        """Delete a stored part. Returns False if it did not exist."""
        pass

    @abstractmethod
    async def delete_sequence(self, sequence_id: str) -> int:
        """Delete every part of a sequence and return how many were removed."""
        pass


class IUploadSessionManager(IComponent):
    """
    Interface for the upload session manager.

    Owns the lifecycle of in-progress chunked uploads: sequence
    allocation, per-part acceptance and close.
    """

    @abstractmethod
    async def open(self, token: str) -> str:
        """
        Open a new sequence owned by ``token``.

        Returns:
            The new sequence ID

        Raises:
            Unauthorized: If the token does not resolve to a user
        """
        pass

    @abstractmethod
    async def accept_part(self, sequence_id: str, part_number: int,
                          token: str, data: bytes) -> Ack:
        """
        Persist one part of an open sequence.

        Raises:
            NotFound: Unknown sequence
            Unauthorized: Token does not own the sequence
            InvalidState: Sequence is not open
            InvalidArgument: Part number below 1 or part too large
            StorageError: The store failed; received parts are unchanged
        """
        pass

    @abstractmethod
    async def close(self, sequence_id: str, token: str) -> Ack:
        """
        Close an open sequence and trigger finalization.

        Raises:
            NotFound: Unknown sequence
            Unauthorized: Token does not own the sequence
            InvalidState: Sequence already closed or expired
        """
        pass

    @abstractmethod
    def get_sequence(self, sequence_id: str) -> Optional[UploadSequence]:
        """Get a snapshot of a sequence, or None if unknown."""
        pass

    @abstractmethod
    def list_sequences(self, state: Optional[SequenceState] = None) -> List[UploadSequence]:
        """List sequences, optionally filtered by state."""
        pass

    @abstractmethod
    async def expire_idle_sequences(self, now: Optional[float] = None) -> int:
        """Expire open sequences idle past the timeout. Returns the count."""
        pass

    @abstractmethod
    def forget_sequence(self, sequence_id: str) -> bool:
        """Drop a closed or expired sequence. Returns False if unknown."""
        pass

    @abstractmethod
    def get_statistics(self) -> Dict[str, Any]:
        """Get upload counters."""
        pass
