"""
Moteve Server - video upload server for Moteve mobile clients.

Mobile clients register with user credentials to obtain a device token,
then upload captured video as ordered parts of an upload sequence. The
server stores each part durably and assembles closed sequences into a
single video file.
"""

__version__ = "0.1.0"

# Public API exports
from .core.interfaces.lifecycle import IStartable, IStoppable, IHealthCheckable, IComponent
from .core.interfaces.messaging import IEventBus
from .core.interfaces.upload import IPartStore, IUploadSessionManager
from .core.interfaces.users import IGroupService, IUserService
from .core.domain.sequences import Ack, SequenceState, UploadSequence
from .application.container import Container, IContainer

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
    "Ack",
    "SequenceState",
    "UploadSequence",
    "Container",
    "IContainer",
]
