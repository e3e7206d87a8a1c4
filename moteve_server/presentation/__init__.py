"""
Presentation layer containing the HTTP interface.

This layer handles the MCA upload protocol and the health endpoints.
"""

from .api.app import create_app

__all__ = [
    "create_app",
]
