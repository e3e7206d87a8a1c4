"""
Core interfaces defining the contracts between the HTTP layer, the upload
protocol and its collaborators.
"""

from .lifecycle import IStartable, IStoppable, IHealthCheckable, IComponent
from .messaging import IEventBus
from .upload import IPartStore, IUploadSessionManager
from .users import IUserService, IGroupService

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
]
