"""
Event domain models for the event-driven parts of the server.

Events decouple the upload manager from whatever happens after a
sequence closes (finalization, notifications).
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional


class EventPriority(IntEnum):
    """Event priority levels for processing order."""
    LOW = 1
    NORMAL = 2
    HIGH = 3
    CRITICAL = 4


@dataclass(frozen=True)
class Event:
    """Immutable event representing something that happened in the system."""

    name: str
    """Event name/type identifier."""

    data: Any = None
    """Event payload data."""

    priority: EventPriority = EventPriority.NORMAL
    """Event processing priority."""

    timestamp: float = field(default_factory=time.time)
    """Unix timestamp when event was created."""

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    """Unique event identifier."""

    source: Optional[str] = None
    """Component that generated the event."""

    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Event name cannot be empty")

        if not isinstance(self.priority, EventPriority):
            raise ValueError("Priority must be an EventPriority enum value")

    def __lt__(self, other: 'Event') -> bool:
        """
        Compare events for priority queue ordering.

        Higher priority events come first, then by timestamp (FIFO).
        """
        if not isinstance(other, Event):
            return NotImplemented

        if self.priority.value != other.priority.value:
            return self.priority.value > other.priority.value

        return self.timestamp < other.timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'data': self.data,
            'priority': self.priority.name,
            'timestamp': self.timestamp,
            'event_id': self.event_id,
            'source': self.source,
            'metadata': self.metadata
        }


class SequenceEvents:
    """Names of the events published over an upload sequence's lifetime."""

    OPENED = "sequence.opened"
    PART_ACCEPTED = "sequence.part_accepted"
    CLOSED = "sequence.closed"
    EXPIRED = "sequence.expired"
    FINALIZED = "sequence.finalized"
    FINALIZE_FAILED = "sequence.finalize_failed"
