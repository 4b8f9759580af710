"""
Errors raised by the service layer. Each carries the HTTP status and error
code the API error handlers put in the response envelope; messages are safe
to show to users.
"""
from __future__ import annotations


class AuthServiceError(Exception):
    status = 500
    code = "INTERNAL_ERROR"
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None, details: dict | None = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class AuthValidationError(AuthServiceError):
    status = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid input"


class Conflict(AuthServiceError):
    status = 400
    code = "CONFLICT"
    default_message = "Conflict"


class Unauthorized(AuthServiceError):
    status = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class NotFound(AuthServiceError):
    status = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class InternalError(AuthServiceError):
    pass
