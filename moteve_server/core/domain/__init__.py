"""
Domain models for sequences, users and events.
"""

from .events import Event, EventPriority, SequenceEvents
from .sequences import Ack, SequenceState, UploadSequence
from .users import Device, Group, User

__all__ = [
    "Event",
    "EventPriority",
    "SequenceEvents",
    "Ack",
    "SequenceState",
    "UploadSequence",
    "Device",
    "Group",
    "User",
]
