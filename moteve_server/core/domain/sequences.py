"""
Upload sequence domain models.

A sequence is one logical video upload made of numbered parts. It is
created Open, accepts parts while Open, and ends Closed (or Expired when
the client abandons it). Terminal states are never left again.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set


class SequenceState(Enum):
    """Upload sequence state."""
    OPEN = "open"
    CLOSED = "closed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not SequenceState.OPEN


@dataclass
class UploadSequence:
    """State of one chunked upload."""
    sequence_id: str
    owner_token: str
    state: SequenceState = SequenceState.OPEN
    received_parts: Set[int] = field(default_factory=set)
    owner_email: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    closed_at: Optional[float] = None
    part_sizes: Dict[int, int] = field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return self.state is SequenceState.OPEN

    @property
    def bytes_received(self) -> int:
        return sum(self.part_sizes.values())

    def sorted_parts(self) -> List[int]:
        return sorted(self.received_parts)

    def touch(self, now: Optional[float] = None) -> None:
        self.updated_at = time.time() if now is None else now

    def to_dict(self) -> Dict[str, Any]:
        """Summary without the owner token."""
        return {
            "sequence_id": self.sequence_id,
            "state": self.state.value,
            "received_parts": self.sorted_parts(),
            "owner_email": self.owner_email,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "closed_at": self.closed_at,
            "bytes_received": self.bytes_received,
        }


@dataclass(frozen=True)
class Ack:
    """Acknowledgement returned by a successful part upload or close."""
    sequence_id: str
    message: str
    part_number: Optional[int] = None
