"""
Authentication service for the in-memory remote data service.

Holds auth identities (separate from application profiles), one current
session, and the auth-state-change event stream.

Design decisions:
- Sign-up signs the new user in immediately (no email confirmation step)
- Passwords are stored salted and hashed, never in clear
- Listeners receive ``(event, session)`` asynchronously, as event-loop tasks
- Password-reset requests are recorded; unknown addresses are not an error
"""

import asyncio
import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from backend.errors import AuthError, NotAuthenticatedError
from backend.realtime import HandlerTasks

logger = logging.getLogger("remote_auth")

MIN_PASSWORD_LENGTH = 6
SESSION_TTL = timedelta(hours=1)


class AuthEvents:
    """Auth-state-change event names."""
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


class AuthUser(BaseModel):
    """The authentication identity. Application fields live on the profile."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    email: str
    user_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Session(BaseModel):
    access_token: str
    refresh_token: str
    expires_at: datetime
    user: AuthUser


class AuthResponse(BaseModel):
    user: AuthUser
    session: Optional[Session] = None


AuthListener = Callable[[str, Optional[Session]], Any]


class AuthSubscription:
    """Handle returned by ``on_auth_state_change``."""

    def __init__(self, client: "AuthClient", listener: AuthListener):
        self._client = client
        self._listener = listener

    def unsubscribe(self) -> None:
        self._client._remove_listener(self._listener)


def _hash_password(password: str, salt: str) -> str:
    return hashlib.sha256(f"{salt}:{password}".encode()).hexdigest()


class AuthClient:

    def __init__(self):
        self._users: dict[str, AuthUser] = {}        # keyed by lower-cased email
        self._passwords: dict[str, tuple[str, str]] = {}  # user id -> (salt, hash)
        self._session: Optional[Session] = None
        self._listeners: list[AuthListener] = []
        self._tasks = HandlerTasks("auth")
        self._failures: dict[str, list[str]] = {}
        self.password_reset_requests: list[str] = []

    # =========================================================================
    # Internals
    # =========================================================================

    def _new_session(self, user: AuthUser) -> Session:
        return Session(
            access_token=secrets.token_urlsafe(24),
            refresh_token=secrets.token_urlsafe(24),
            expires_at=datetime.utcnow() + SESSION_TTL,
            user=user,
        )

    def _emit(self, event: str) -> None:
        logger.info(f"Auth event: {event}")
        session = self._session.model_copy(deep=True) if self._session else None
        for listener in list(self._listeners):
            self._tasks.spawn(listener, event, session)

    def _remove_listener(self, listener: AuthListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def fail_next(self, operation: str, message: str = "Simulated auth failure") -> None:
        """Make the next call of ``operation`` (e.g. "sign_out") fail."""
        self._failures.setdefault(operation, []).append(message)

    def _check_failure(self, operation: str) -> None:
        pending = self._failures.get(operation)
        if pending:
            raise AuthError(pending.pop(0))

    # =========================================================================
    # Public API
    # =========================================================================

    async def sign_up(
        self,
        email: str,
        password: str,
        data: Optional[dict[str, Any]] = None,
    ) -> AuthResponse:
        """
        Create an auth identity and sign it in.

        Args:
            email: Login email (case-insensitive)
            password: At least MIN_PASSWORD_LENGTH characters
            data: Stored as ``user_metadata``

        Raises:
            AuthError: Email already registered or password too short
        """
        await asyncio.sleep(0)
        self._check_failure("sign_up")
        key = email.strip().lower()
        if key in self._users:
            raise AuthError("User already registered", code="user_already_exists")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(
                f"Password should be at least {MIN_PASSWORD_LENGTH} characters",
                code="weak_password",
            )

        user = AuthUser(email=email.strip(), user_metadata=dict(data or {}))
        salt = secrets.token_hex(8)
        self._users[key] = user
        self._passwords[user.id] = (salt, _hash_password(password, salt))
        self._session = self._new_session(user)
        logger.info(f"Signed up {user.email} ({user.id})")
        self._emit(AuthEvents.SIGNED_IN)
        return AuthResponse(user=user, session=self._session)

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        """
        Raises:
            AuthError: Unknown email or wrong password
        """
        await asyncio.sleep(0)
        self._check_failure("sign_in_with_password")
        user = self._users.get(email.strip().lower())
        if user is None:
            raise AuthError("Invalid login credentials", code="invalid_credentials")
        salt, expected = self._passwords[user.id]
        if _hash_password(password, salt) != expected:
            raise AuthError("Invalid login credentials", code="invalid_credentials")
        self._session = self._new_session(user)
        self._emit(AuthEvents.SIGNED_IN)
        return AuthResponse(user=user, session=self._session)

    async def sign_out(self) -> None:
        await asyncio.sleep(0)
        self._check_failure("sign_out")
        self._session = None
        self._emit(AuthEvents.SIGNED_OUT)

    async def get_session(self) -> Optional[Session]:
        await asyncio.sleep(0)
        self._check_failure("get_session")
        if self._session and self._session.expires_at <= datetime.utcnow():
            self._session = None
        return self._session.model_copy(deep=True) if self._session else None

    async def refresh_session(self) -> Session:
        await asyncio.sleep(0)
        if self._session is None:
            raise NotAuthenticatedError("No session to refresh")
        self._session = self._new_session(self._session.user)
        self._emit(AuthEvents.TOKEN_REFRESHED)
        return self._session

    async def update_user(
        self,
        password: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> AuthUser:
        """Change the signed-in user's password and/or metadata."""
        await asyncio.sleep(0)
        self._check_failure("update_user")
        if self._session is None:
            raise NotAuthenticatedError("update_user requires a signed-in user")
        user = self._users[self._session.user.email.lower()]
        if password is not None:
            if len(password) < MIN_PASSWORD_LENGTH:
                raise AuthError(
                    f"Password should be at least {MIN_PASSWORD_LENGTH} characters",
                    code="weak_password",
                )
            salt = secrets.token_hex(8)
            self._passwords[user.id] = (salt, _hash_password(password, salt))
        if data:
            user.user_metadata.update(data)
        self._session = self._session.model_copy(update={"user": user})
        self._emit(AuthEvents.USER_UPDATED)
        return user

    async def reset_password_for_email(self, email: str) -> None:
        await asyncio.sleep(0)
        self._check_failure("reset_password_for_email")
        self.password_reset_requests.append(email.strip().lower())
        logger.info(f"Password reset requested for {email}")

    def on_auth_state_change(self, listener: AuthListener) -> AuthSubscription:
        """Register ``listener(event, session)``; returns a handle to unsubscribe."""
        self._listeners.append(listener)
        return AuthSubscription(self, listener)

    def get_user_by_email(self, email: str) -> Optional[AuthUser]:
        return self._users.get(email.strip().lower())

    @property
    def pending_deliveries(self) -> int:
        return self._tasks.pending_count

    async def drain(self) -> None:
        """Wait for pending listener deliveries."""
        await self._tasks.drain()
