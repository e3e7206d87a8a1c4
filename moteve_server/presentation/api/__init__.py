"""
HTTP API components for the presentation layer.

This module contains FastAPI application setup, middleware,
the MCA wire protocol and route definitions.
"""

from .app import create_app
from .dependencies import get_component, get_config, get_container

__all__ = [
    "create_app",
    "get_container",
    "get_config",
    "get_component",
]
