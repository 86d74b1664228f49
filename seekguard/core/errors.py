from __future__ import annotations


class SeekGuardError(Exception):
    """Base class for failures raised while serving a video request."""

    status_code = 500


class AuthorizationFailure(SeekGuardError):
    status_code = 401


class NotFound(SeekGuardError):
    status_code = 404


class RangeNotSatisfiable(SeekGuardError):
    status_code = 416

    def __init__(self, size: int, detail: str = "range not satisfiable"):
        super().__init__(detail)
        self.size = size
        self.detail = detail


class StreamFailure(SeekGuardError):
    """I/O failure while the response body is being transferred."""


class ClientDisconnected(SeekGuardError):
    """The client went away before the response could be sent."""

    status_code = 499  # client closed request
