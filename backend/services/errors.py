"""
Error Types
===========
Every error a session operation can surface to the user derives from
XpressError. The API layer turns them into `{"detail", "hint"}` bodies
using `status_code`, so both operations report failures the same way.
"""

from typing import Optional


class XpressError(Exception):
    """Base class for user-facing errors."""

    status_code: int = 500

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class SessionNotFoundError(XpressError):
    status_code = 404


class MissingImageError(XpressError):
    """An operation was triggered before any image was loaded."""
    status_code = 400


class UnsupportedFileError(XpressError):
    status_code = 415


class InvalidSettingsError(XpressError):
    status_code = 422


class OperationInProgressError(XpressError):
    """The same operation kind is already running for this session."""
    status_code = 409


class OperationFailedError(XpressError):
    """The compression or background-removal call raised."""
    status_code = 502


# --- Collaborator errors (wrapped into OperationFailedError by the orchestrator) ---

class CompressionError(Exception):
    pass


class BackgroundRemovalError(Exception):
    pass
