"""Error taxonomy shared by the client core and the reference server."""
from __future__ import annotations

from typing import Optional


class PortalError(Exception):
    """Base class for every error raised by the portal core."""


class ValidationError(PortalError, ValueError):
    """Rejected locally before any request was sent."""


class RequestFailure(PortalError):
    """A valid request failed in transport or was rejected by the server.

    Args:
        message: Human readable reason
        status: HTTP status code, or None for transport errors
    """

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class GatingViolation(RequestFailure):
    """Server refused to resolve a view because tickets scoped to it are still open."""

    def __init__(self, message: str = "Open questions must be closed first", status: Optional[int] = 409) -> None:
        super().__init__(message, status=status)


class RecordNotFound(PortalError, LookupError):
    """Server-side lookup miss (ticket, comment, media or annotation)."""
