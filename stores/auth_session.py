"""
Auth session mirror.

Tracks who is signed in. The auth identity (id, email) comes from the remote
auth service; everything else comes from the user's profile row, merged on
top of the identity (profile fields win).

Design decisions:
- All changes to ``user`` go through ``_apply_user``, the single
  reconciliation point
- A user built only from local input (registration) or from an identity
  whose profile could not be read is *unconfirmed*. An unconfirmed user
  never replaces a user with the same id that is already set; a confirmed
  user (backed by a profile fetch) always does.
- Auth-state events arrive asynchronously and may interleave with login or
  register. The rule above makes the end state independent of the order.
- logout clears local state even when the remote sign-out fails
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from backend.auth import AuthClient, AuthEvents, AuthSubscription, Session
from backend.client import RemoteService, get_remote_service
from backend.errors import NotAuthenticatedError, RemoteError
from shared.config import TableNames, get_settings
from shared.models import DEFAULT_AVATAR, CompanyStatus, CurrentUser, UserRole

logger = logging.getLogger("auth_session")

# Events after which the profile is re-read
PROFILE_REFRESH_EVENTS = {
    AuthEvents.SIGNED_IN,
    AuthEvents.TOKEN_REFRESHED,
    AuthEvents.USER_UPDATED,
}


class RegistrationData(BaseModel):
    name: str
    email: str
    password: str
    company: Optional[str] = None
    role: Optional[UserRole] = Field(default=None)


class AuthSession:
    """
    Example:
        auth = AuthSession(service=service)
        await auth.initialize()

        await auth.login("alice@example.com", "secret123")
        auth.user.role        # from the profile row
        await auth.logout()
    """

    def __init__(
        self,
        service: Optional[RemoteService] = None,
        tables: Optional[TableNames] = None,
    ):
        self.service = service or get_remote_service()
        self.tables = tables or get_settings().tables

        self.user: Optional[CurrentUser] = None
        self.session: Optional[Session] = None
        self.is_loading = True
        self._subscription: Optional[AuthSubscription] = None

    @property
    def auth(self) -> AuthClient:
        return self.service.auth

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None and self.user is not None

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def _apply_user(self, user: Optional[CurrentUser]) -> bool:
        """
        Set or clear the current user.

        Returns:
            True if ``user`` was applied, False if it was ignored
        """
        if user is not None and not user.confirmed:
            if self.user is not None and self.user.id == user.id:
                logger.debug(f"Ignoring unconfirmed state for {user.id}; already have one")
                return False
        self.user = user
        return True

    async def _fetch_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        try:
            result = await (
                self.service.table(self.tables.profiles)
                .select("*")
                .eq("id", user_id)
                .single()
                .execute()
            )
        except RemoteError as e:
            logger.error(f"Error fetching profile {user_id}: {e}")
            return None
        return result.data

    async def _merge_profile(self, session: Session) -> Optional[CurrentUser]:
        profile = await self._fetch_profile(session.user.id)
        if self.session is None or self.session.user.id != session.user.id:
            logger.debug(f"Session changed while fetching profile {session.user.id}, dropping result")
            return self.user
        merged: dict[str, Any] = {"id": session.user.id, "email": session.user.email}
        merged.update(profile or {})
        merged["confirmed"] = profile is not None
        user = CurrentUser.model_validate(merged)
        self._apply_user(user)
        return self.user

    async def reconcile(self) -> Optional[CurrentUser]:
        """Re-read the profile for the current session and apply it."""
        if self.session is None:
            return None
        return await self._merge_profile(self.session)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        """Read the current session once, then follow auth-state changes."""
        self.is_loading = True
        try:
            self.session = await self.auth.get_session()
        except RemoteError as e:
            logger.error(f"Error getting session: {e}")
            self.session = None
        if self.session is not None:
            await self._merge_profile(self.session)
        self.is_loading = False

        if self._subscription is None:
            self._subscription = self.auth.on_auth_state_change(self._handle_auth_change)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def _handle_auth_change(self, event: str, session: Optional[Session]) -> None:
        logger.info(f"Auth state change: {event}")
        self.session = session
        if session is None:
            self._apply_user(None)
            return
        if event in PROFILE_REFRESH_EVENTS:
            await self._merge_profile(session)

    # =========================================================================
    # Operations
    # =========================================================================

    async def login(self, email: str, password: str) -> CurrentUser:
        """
        Sign in and load the profile before returning.

        Raises:
            AuthError: Invalid credentials or auth failure
        """
        try:
            response = await self.auth.sign_in_with_password(email, password)
        except RemoteError as e:
            logger.error(f"Login failed for {email}: {e}")
            raise
        self.session = response.session
        await self._merge_profile(response.session)
        return self.user

    async def _resolve_company(self, company_name: str) -> str:
        """Find a company by name, creating it (pending verification) if absent."""
        table = self.tables.companies
        try:
            result = await self.service.table(table).select("id").eq("name", company_name).single().execute()
            return result.data["id"]
        except RemoteError as e:
            if not e.is_no_rows:
                raise
        result = await self.service.table(table).insert({
            "name": company_name,
            "status": CompanyStatus.PENDING.value,
        }).execute()
        logger.info(f"Created company '{company_name}'")
        return result.data[0]["id"]

    async def register(self, data: RegistrationData) -> CurrentUser:
        """
        Create the auth identity and profile, then sign the user in locally.

        The local user is first set from ``data`` (unconfirmed) and then
        confirmed from the freshly inserted profile row.

        Raises:
            RemoteError: Company, sign-up or profile insert failed
        """
        role = data.role.value if data.role else UserRole.USER.value

        try:
            company_id = await self._resolve_company(data.company) if data.company else None
            response = await self.auth.sign_up(
                data.email,
                data.password,
                data={"name": data.name, "company": data.company, "role": role},
            )
            profile_row = {
                "id": response.user.id,
                "email": response.user.email,
                "name": data.name,
                "company_id": company_id,
                "role": role,
                "is_company_admin": role == UserRole.COMPANY_ADMIN.value,
                "avatar": DEFAULT_AVATAR,
                "is_suspended": False,
            }
            await self.service.table(self.tables.profiles).insert(profile_row).execute()
        except RemoteError as e:
            logger.error(f"Registration failed for {data.email}: {e}")
            raise

        self.session = response.session
        self._apply_user(CurrentUser.model_validate({**profile_row, "confirmed": False}))
        await self.reconcile()
        logger.info(f"Registered {data.email} as {role}")
        return self.user

    async def logout(self) -> None:
        try:
            await self.auth.sign_out()
        except RemoteError as e:
            logger.error(f"Error logging out: {e}")
        self.session = None
        self._apply_user(None)

    async def request_password_reset(self, email: str) -> None:
        """
        Raises:
            RemoteError: If the reset request fails
        """
        try:
            await self.auth.reset_password_for_email(email)
        except RemoteError as e:
            logger.error(f"Password reset request failed for {email}: {e}")
            raise

    async def update_password(self, new_password: str) -> None:
        if self.session is None:
            raise NotAuthenticatedError("Sign in to change your password")
        await self.auth.update_user(password=new_password)

    async def update_profile(self, patch: dict[str, Any]) -> CurrentUser:
        """
        Write profile fields, then re-read the profile.

        ``id`` and ``role`` cannot be changed here (role changes are admin
        actions).

        Raises:
            NotAuthenticatedError: Nobody is signed in
            RemoteError: If the update fails
        """
        if self.user is None or self.session is None:
            raise NotAuthenticatedError("Sign in to edit your profile")
        clean = {k: v for k, v in patch.items() if k not in ("id", "role", "is_company_admin")}
        try:
            await self.service.table(self.tables.profiles).update(clean).eq("id", self.user.id).execute()
        except RemoteError as e:
            logger.error(f"Profile update failed for {self.user.id}: {e}")
            raise
        await self.reconcile()
        return self.user
