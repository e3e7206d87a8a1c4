"""
Logging infrastructure for the server.
"""

from .setup import setup_logging, LoggingManager

__all__ = [
    "setup_logging",
    "LoggingManager",
]
