"""
Application layer: dependency injection and startup logic.
"""

from .container import Container, IContainer, ServiceLifetime
from .startup import ApplicationStartup

__all__ = [
    "Container",
    "IContainer",
    "ServiceLifetime",
    "ApplicationStartup",
]
