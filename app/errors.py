"""
Error taxonomy for paste operations.

Every error carries the HTTP status it is surfaced with, so the API layer
only has to translate ``to_payload()`` into a JSON body.
"""
from typing import Any, Dict, Optional


class PasteError(Exception):
    """Base class for all expected paste lifecycle failures."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message}


class ValidationError(PasteError):
    status_code = 400
    default_message = "Invalid request"


class AuthorizationError(PasteError):
    """Bad password on delete, missing identity (401) or non-owner (403)."""

    status_code = 401
    default_message = "Not authorized"


class PasswordRequired(PasteError):
    status_code = 401
    default_message = "Password required"

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, "passwordProtected": True}


class NotFound(PasteError):
    # 403 rather than 404 so callers cannot probe which ids exist.
    status_code = 403
    default_message = "Invalid link"


class Expired(PasteError):
    status_code = 410
    default_message = "Content has expired"


class ViewLimitExceeded(PasteError):
    status_code = 410
    default_message = "Maximum views reached"


class StorageError(PasteError):
    status_code = 502
    default_message = "Failed to fetch remote file"


class FileTooLarge(PasteError):
    status_code = 413
    default_message = "File too large"

    def __init__(self, max_size: int, message: Optional[str] = None):
        self.max_size = max_size
        super().__init__(message)

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, "maxSize": self.max_size}
