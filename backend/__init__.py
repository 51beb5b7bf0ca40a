"""
In-memory stand-in for the hosted backend-as-a-service platform.

Owns all durable state for the marketplace:
- Tables with a fluent async query builder
- Auth identities, the current session and auth-state events
- Object storage buckets
- Row-level change feed (realtime channels)
- Named server-side functions
"""

from backend.client import RemoteService, get_remote_service, reset_remote_service
from backend.errors import (
    NO_ROWS,
    AuthError,
    ListingValidationError,
    NotAuthenticatedError,
    RemoteError,
)
from backend.realtime import ChangeEvent, ChangeEventTypes, ChangeFeed, Channel

__all__ = [
    "RemoteService",
    "get_remote_service",
    "reset_remote_service",
    "NO_ROWS",
    "AuthError",
    "ListingValidationError",
    "NotAuthenticatedError",
    "RemoteError",
    "ChangeEvent",
    "ChangeEventTypes",
    "ChangeFeed",
    "Channel",
]
