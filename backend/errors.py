"""
Errors raised by the remote data service and the stores built on it.
"""

from typing import Optional

# Error code the remote service uses when a single-row fetch matched nothing.
NO_ROWS = "PGRST116"


class RemoteError(Exception):
    """
    A remote call failed (network, validation, or missing row).

    Mirrors the generic error object the platform returns: a human-readable
    ``message`` plus an optional machine ``code``.
    """

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def is_no_rows(self) -> bool:
        return self.code == NO_ROWS

    def __str__(self) -> str:
        if self.code:
            return f"{self.message} (code={self.code})"
        return self.message


class AuthError(RemoteError):
    """Sign-in, sign-up or session failure reported by the auth service."""


class NotAuthenticatedError(Exception):
    """An operation that needs a signed-in user was called without one."""


class ListingValidationError(ValueError):
    """A listing form step or photo operation is invalid."""
