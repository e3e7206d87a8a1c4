"""
User directory services.
"""

from .directory import UserDirectory

__all__ = [
    "UserDirectory",
]
