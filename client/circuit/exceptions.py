"""Error taxonomy shared by services and controllers."""

from typing import Any, Optional


class CircuitError(Exception):
    """Base class for all client errors."""


class ConfigurationError(CircuitError):
    """Backend URL or key missing from the environment."""


class ValidationError(CircuitError):
    """Input rejected before any network call.

    Surfaced inline next to the offending field and never logged.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class BackendError(CircuitError):
    """A request to the backend failed."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Any] = None,
        hint: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        self.hint = hint

    def __repr__(self):
        return f"<{type(self).__name__} {self.status_code} {self.code}: {self.message}>"


class NotFoundError(BackendError):
    """The backend reported that the requested row does not exist."""


class AuthError(BackendError):
    """Sign-up, sign-in or session request rejected by the auth service."""
