"""
Outbound email via the ``send-email`` server-side function.

The client never talks to an email provider directly. It checks the
recipient's email preferences, invokes the function with the email type and
template variables, and records the send in ``email_logs``.

Design decisions:
- send_email never raises; every outcome comes back as an EmailSendResult
- Notification-driven emails honour the recipient's opt-ins
- Account emails (welcome, verification, password reset) are transactional
  and skip the opt-in check
- A failure to write the email log is logged and otherwise ignored
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from backend.client import RemoteService, get_remote_service
from backend.errors import RemoteError
from shared.config import TableNames, get_settings
from shared.templates import EmailTypes

logger = logging.getLogger("email_service")

SEND_EMAIL_FUNCTION = "send-email"


@dataclass
class EmailSendResult:
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    data: Any = None


class EmailService:

    def __init__(
        self,
        service: Optional[RemoteService] = None,
        tables: Optional[TableNames] = None,
    ):
        self.service = service or get_remote_service()
        self.tables = tables or get_settings().tables

    async def _email_enabled(self, user_id: str, email_type: str) -> bool:
        try:
            result = await (
                self.service.table(self.tables.user_preferences)
                .select("email_notifications")
                .eq("user_id", user_id)
                .single()
                .execute()
            )
        except RemoteError as e:
            if e.is_no_rows:
                return False
            raise
        return bool((result.data.get("email_notifications") or {}).get(email_type))

    async def send_email(
        self,
        user_id: str,
        email_type: str,
        data: Optional[dict[str, Any]] = None,
        check_preferences: bool = True,
    ) -> EmailSendResult:
        """
        Send one email of ``email_type`` to ``user_id``.

        Args:
            user_id: Recipient profile id
            email_type: One of EmailTypes
            data: Template variables, passed through to the function
            check_preferences: Skip the send if the user opted out
        """
        data = dict(data or {})
        try:
            if check_preferences and not await self._email_enabled(user_id, email_type):
                logger.info(f"User {user_id} has disabled {email_type} emails")
                return EmailSendResult(success=False, message="User has disabled this notification type")

            result = await self.service.functions.invoke(
                SEND_EMAIL_FUNCTION,
                {"type": email_type, "userId": user_id, **data},
            )
        except RemoteError as e:
            logger.error(f"Error sending {email_type} email to {user_id}: {e}")
            return EmailSendResult(success=False, error=e.message)

        await self._log_email_sent(user_id, email_type, data)
        logger.info(f"Sent {email_type} email to {user_id}")
        return EmailSendResult(success=True, data=result)

    async def _log_email_sent(self, user_id: str, email_type: str, data: dict[str, Any]) -> None:
        try:
            await self.service.table(self.tables.email_logs).insert({
                "user_id": user_id,
                "type": email_type,
                "metadata": data,
                "sent_at": datetime.utcnow().isoformat(),
            }).execute()
        except RemoteError as e:
            logger.error(f"Error logging email for {user_id}: {e}")

    # =========================================================================
    # Specific emails
    # =========================================================================

    async def send_welcome_email(self, user_id: str, user_name: str) -> EmailSendResult:
        return await self.send_email(
            user_id, EmailTypes.WELCOME,
            {"userName": user_name, "template": "welcome"},
            check_preferences=False,
        )

    async def send_verification_email(self, user_id: str, email: str) -> EmailSendResult:
        return await self.send_email(
            user_id, EmailTypes.VERIFICATION,
            {"email": email, "template": "verification"},
            check_preferences=False,
        )

    async def send_password_reset_email(self, user_id: str, email: str) -> EmailSendResult:
        return await self.send_email(
            user_id, EmailTypes.PASSWORD_RESET,
            {"email": email, "template": "password-reset"},
            check_preferences=False,
        )

    async def send_listing_interest_email(
        self, user_id: str, listing_id: Optional[str], message: Optional[str]
    ) -> EmailSendResult:
        return await self.send_email(
            user_id, EmailTypes.LISTING_INTEREST,
            {"listingId": listing_id, "message": message, "template": "listing-interest"},
        )

    async def send_message_notification(
        self, user_id: str, sender_id: Optional[str], message_preview: Optional[str]
    ) -> EmailSendResult:
        return await self.send_email(
            user_id, EmailTypes.MESSAGE_RECEIVED,
            {"senderId": sender_id, "messagePreview": message_preview, "template": "new-message"},
        )
