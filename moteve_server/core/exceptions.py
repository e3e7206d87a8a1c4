"""
Error kinds raised by the upload protocol and its collaborators.

Every error carries the wire code sent back to the MCA in the
``Moteve-Error`` header and the HTTP status used for the response.
"""

from typing import Any, Dict, Optional


class MoteveError(Exception):
    """Base class for all protocol-level errors."""

    code = "ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class MissingHeader(MoteveError):
    """A required Moteve-* request header is absent or empty."""

    code = "MISSING_HEADER"
    status_code = 400

    def __init__(self, header: str) -> None:
        super().__init__(f"Missing {header} parameter", {"header": header})
        self.header = header


class Unauthorized(MoteveError):
    """Bad credentials, unknown token, or a token that does not own the sequence."""

    code = "UNAUTHORIZED"
    status_code = 401


class NotFound(MoteveError):
    """Unknown sequence or part."""

    code = "NOT_FOUND"
    status_code = 404


class InvalidState(MoteveError):
    """Operation attempted on a sequence that is no longer open."""

    code = "INVALID_STATE"
    status_code = 409


class InvalidArgument(MoteveError):
    """Malformed part number or oversized part."""

    code = "INVALID_ARGUMENT"
    status_code = 400


class StorageError(MoteveError):
    """The part store failed to persist or read data."""

    code = "STORAGE_ERROR"
    status_code = 500
