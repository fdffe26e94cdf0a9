"""
Error taxonomy for lobby operations.

Every failure a lobby operation can report to its caller is one of these
exceptions. Each carries the HTTP status and machine-readable code the API
layer renders, so services raise and routes stay thin.
"""

from typing import Optional


class LobbyError(Exception):
    """Base class for all lobby operation failures."""
    status_code: int = 500
    code: str = "INTERNAL"
    default_message: str = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class LobbyNotFoundError(LobbyError):
    """Lobby is absent: never created, closed by the host, or expired."""
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Lobby not found"


class LobbyGoneError(LobbyError):
    """Lobby still exists but has been deactivated."""
    status_code = 410
    code = "GONE"
    default_message = "Lobby is no longer active"


class ForbiddenError(LobbyError):
    """Wrong host token or wrong lobby password."""
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Forbidden"


class ConflictError(LobbyError):
    """Duplicate player name or duplicate buzz."""
    status_code = 409
    code = "CONFLICT"
    default_message = "Conflict"


class InvalidStateError(LobbyError):
    """Action is not valid for the current game phase."""
    status_code = 400
    code = "INVALID_STATE"
    default_message = "Invalid state"


class InternalError(LobbyError):
    """Code generation exhausted, store unavailable, or write contention."""
    status_code = 500
    code = "INTERNAL"
    default_message = "Internal error"
