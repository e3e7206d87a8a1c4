"""
Upload services: the session manager driving the chunked upload protocol
and the finalizer that assembles closed sequences into video files.
"""

from .finalizer import SequenceFinalizer
from .manager import UploadSessionManager

__all__ = [
    "SequenceFinalizer",
    "UploadSessionManager",
]
