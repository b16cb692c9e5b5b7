"""
Fix Errors - Failure taxonomy for apply/undo operations
"""

from __future__ import annotations


class FixError(Exception):
    """Base error carrying the HTTP status the router should answer with"""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidRangeError(FixError):
    """Requested line range does not fit the file"""

    status_code = 400


class ConflictError(FixError):
    """Branch or target content changed since the edit context was captured"""

    status_code = 409


class NotFoundError(FixError):
    """Undo token unknown, expired or already consumed"""

    status_code = 404


class StoreUnavailableError(FixError):
    """Undo record store cannot be reached"""

    status_code = 503


class UpstreamError(FixError):
    """Remote repository or LLM provider failure"""

    status_code = 502
