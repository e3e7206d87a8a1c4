"""
Configuration models and loading.
"""

from .loader import ConfigLoader
from .models import (
    AccountConfig,
    ApplicationConfig,
    LoggingConfig,
    SecurityConfig,
    ServerConfig,
    UploadConfig,
)

__all__ = [
    "ConfigLoader",
    "AccountConfig",
    "ApplicationConfig",
    "LoggingConfig",
    "SecurityConfig",
    "ServerConfig",
    "UploadConfig",
]
