"""
API router modules, one per group of endpoints.
"""

from . import health, mca

__all__ = [
    "health",
    "mca",
]
