"""
Admin operations: user management and company verification.

Each action is a profile/company update followed by a notification row for
the affected user. The notification insert is what the user's
NotificationStore observes.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from backend.client import RemoteService, get_remote_service
from backend.errors import RemoteError
from shared.config import TableNames, get_settings
from shared.models import Company, CompanyStatus, NotificationType, Profile, UserRole

logger = logging.getLogger("admin_service")


class UserAction(str, Enum):
    SUSPEND = "suspend"
    UNSUSPEND = "unsuspend"
    PROMOTE_ADMIN = "promote_admin"
    DEMOTE_USER = "demote_user"


USER_ACTION_UPDATES: dict[UserAction, dict[str, Any]] = {
    UserAction.SUSPEND: {"is_suspended": True},
    UserAction.UNSUSPEND: {"is_suspended": False},
    UserAction.PROMOTE_ADMIN: {"role": UserRole.ADMIN.value},
    UserAction.DEMOTE_USER: {"role": UserRole.USER.value},
}


class AdminService:

    def __init__(
        self,
        service: Optional[RemoteService] = None,
        tables: Optional[TableNames] = None,
    ):
        self.service = service or get_remote_service()
        self.tables = tables or get_settings().tables

    async def _notify(self, user_id: str, title: str, content: str, notification_type: NotificationType) -> None:
        await self.service.table(self.tables.notifications).insert({
            "user_id": user_id,
            "title": title,
            "content": content,
            "type": notification_type.value,
            "read": False,
        }).execute()

    # =========================================================================
    # Users
    # =========================================================================

    async def list_users(
        self,
        search: str = "",
        role: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[Profile]:
        """
        Profiles newest first, filtered locally.

        Args:
            search: Case-insensitive substring of name, email or company name
            role: Exact role, or None/"all" for any
            status: "active", "suspended", or None/"all" for any
        """
        profiles = (
            await self.service.table(self.tables.profiles).select("*").order("created_at", desc=True).execute()
        ).data
        companies = (await self.service.table(self.tables.companies).select("id, name").execute()).data
        company_names = {c["id"]: c.get("name") or "" for c in companies}

        needle = search.lower()
        users = []
        for row in profiles:
            if needle:
                haystacks = (row.get("name") or "", row.get("email") or "", company_names.get(row.get("company_id"), ""))
                if not any(needle in h.lower() for h in haystacks):
                    continue
            if role and role != "all" and row.get("role") != role:
                continue
            if status == "active" and row.get("is_suspended"):
                continue
            if status == "suspended" and not row.get("is_suspended"):
                continue
            users.append(Profile.model_validate(row))
        return users

    async def apply_user_action(self, user_id: str, action: str) -> Profile:
        """
        Suspend, unsuspend, promote or demote a user, then notify them.

        Raises:
            ValueError: Unknown action
            RemoteError: If the update fails or the user doesn't exist
        """
        action = UserAction(action)
        try:
            result = await (
                self.service.table(self.tables.profiles)
                .update(USER_ACTION_UPDATES[action])
                .eq("id", user_id)
                .single()
                .execute()
            )
        except RemoteError as e:
            logger.error(f"Error applying {action.value} to {user_id}: {e}")
            raise

        label = action.value.replace("_", " ")
        await self._notify(
            user_id,
            title=f"Account {label}",
            content=f"Your account has been {label} by an administrator.",
            notification_type=NotificationType.ACCOUNT_ACTION,
        )
        logger.info(f"Applied {action.value} to user {user_id}")
        return Profile.model_validate(result.data)

    async def promote_by_email(self, email: str) -> Profile:
        """
        Raises:
            RemoteError: No profile with that email (NO_ROWS), or update failed
        """
        try:
            result = await (
                self.service.table(self.tables.profiles)
                .update({"role": UserRole.ADMIN.value})
                .eq("email", email)
                .single()
                .execute()
            )
        except RemoteError as e:
            logger.error(f"Error promoting {email}: {e}")
            raise
        logger.info(f"User {email} promoted to admin")
        return Profile.model_validate(result.data)

    # =========================================================================
    # Companies
    # =========================================================================

    async def verify_company(
        self,
        company_id: str,
        status: str,
        notes: str = "",
        admin_id: Optional[str] = None,
    ) -> Company:
        """
        Record a verification decision and notify the company's first member.

        Raises:
            ValueError: Status is not verified/rejected
            RemoteError: If the company update fails
        """
        status = CompanyStatus(status)
        if status == CompanyStatus.PENDING:
            raise ValueError("Verification status must be verified or rejected")

        try:
            result = await (
                self.service.table(self.tables.companies)
                .update({
                    "status": status.value,
                    "verified_at": datetime.utcnow().isoformat(),
                    "verified_by": admin_id,
                    "verification_notes": notes,
                })
                .eq("id", company_id)
                .single()
                .execute()
            )
        except RemoteError as e:
            logger.error(f"Error verifying company {company_id}: {e}")
            raise

        members = (
            await self.service.table(self.tables.profiles)
            .select("id")
            .eq("company_id", company_id)
            .order("created_at")
            .limit(1)
            .execute()
        ).data
        if members:
            approved = status == CompanyStatus.VERIFIED
            await self._notify(
                members[0]["id"],
                title=f"Company Verification {'Approved' if approved else 'Rejected'}",
                content=(
                    "Your company has been verified successfully."
                    if approved
                    else f"Your company verification was rejected. Reason: {notes}"
                ),
                notification_type=NotificationType.COMPANY_VERIFICATION,
            )
        else:
            logger.warning(f"Company {company_id} has no members to notify")

        logger.info(f"Company {company_id} marked {status.value}")
        return Company.model_validate(result.data)
