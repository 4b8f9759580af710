from __future__ import annotations

from typing import Optional


class AuthRequestError(Exception):
    """An auth endpoint answered with an error status."""

    def __init__(self, status: int, message: str, details: Optional[dict] = None):
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message
        self.details = details


class RefreshFailedError(Exception):
    """The session could not be renewed; the client is signed out."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
