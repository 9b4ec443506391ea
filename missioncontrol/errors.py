"""
Domain errors raised by the store and the trail linker.

The HTTP layer renders every subclass with its ``status_code``.
"""

from __future__ import annotations


class MissionControlError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(MissionControlError):
    status_code = 400
    default_message = "Invalid ping data"


class ConflictError(MissionControlError):
    # The original API reports a taken username as a plain bad request.
    status_code = 400
    default_message = "Username already exists"


class AuthenticationError(MissionControlError):
    status_code = 401
    default_message = "Access denied: Invalid credentials"


class ForbiddenError(MissionControlError):
    status_code = 403
    default_message = "Access denied"


class NotFoundError(MissionControlError):
    status_code = 404
    default_message = "Not found"


class StorageError(MissionControlError):
    status_code = 500
    default_message = "Storage failure"
