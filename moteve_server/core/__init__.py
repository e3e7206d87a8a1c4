"""
Core module containing the upload protocol, domain models and service interfaces.

Nothing in here depends on FastAPI or on a particular storage backend.
"""

from .interfaces.lifecycle import IStartable, IStoppable, IHealthCheckable, IComponent
from .interfaces.messaging import IEventBus
from .interfaces.upload import IPartStore, IUploadSessionManager
from .interfaces.users import IUserService, IGroupService
from .domain.events import Event, EventPriority, SequenceEvents
from .domain.sequences import Ack, SequenceState, UploadSequence

__all__ = [
    "IStartable",
    "IStoppable",
    "IHealthCheckable",
    "IComponent",
    "IEventBus",
    "IPartStore",
    "IUploadSessionManager",
    "IUserService",
    "IGroupService",
    "Event",
    "EventPriority",
    "SequenceEvents",
    "Ack",
    "SequenceState",
    "UploadSequence",
]
