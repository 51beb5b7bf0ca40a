"""
Notification store.

Loads the signed-in user's email preferences and reacts to notification rows
inserted for that user. Notification rows are written server-side (or by
admin actions); this store only observes them and flips their read flag.

Design decisions:
- Preferences are replaced wholesale on update, never merged. Callers submit
  the full desired state.
- Only INSERT events filtered by ``user_id`` are watched
- Outbound email is decided per notification type through a handler
  mapping. Types without a handler are ignored (register more with
  ``register_email_handler``).
- Background failures are logged only
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from backend.client import RemoteService, get_remote_service
from backend.errors import NotAuthenticatedError, RemoteError
from backend.realtime import ChangeEvent, ChangeEventTypes, Channel
from shared.config import TableNames, get_settings
from shared.models import Notification, NotificationType
from stores.email_service import EmailService

logger = logging.getLogger("notification_store")

EmailHandler = Callable[[Notification], Awaitable[Any]]


@dataclass
class PreferencesUpdateResult:
    success: bool
    error: Optional[str] = None


class NotificationStore:
    """
    Per-user notification preferences plus the inbound notification feed.

    Example:
        store = NotificationStore(user_id=user.id, service=service)
        await store.start()

        await store.update_preferences({"message_received": True})
        # A message_received row inserted for this user now sends an email
    """

    def __init__(
        self,
        user_id: Optional[str],
        service: Optional[RemoteService] = None,
        email_service: Optional[EmailService] = None,
        tables: Optional[TableNames] = None,
    ):
        """
        Args:
            user_id: Signed-in user's id (None while signed out)
            service: Remote data service (defaults to singleton)
            email_service: Sends the outbound emails (defaults to a new one)
            tables: Table names (defaults to settings)
        """
        self.user_id = user_id
        self.service = service or get_remote_service()
        self.tables = tables or get_settings().tables
        self.email_service = email_service or EmailService(self.service, self.tables)

        self.preferences: dict[str, bool] = {}
        self.is_loading = True
        self._channel: Optional[Channel] = None

        self._email_handlers: dict[str, EmailHandler] = {
            NotificationType.MESSAGE_RECEIVED.value: self._email_message_received,
            NotificationType.LISTING_INTEREST.value: self._email_listing_interest,
        }

    def _require_user(self) -> str:
        if not self.user_id:
            raise NotAuthenticatedError("Notification store needs a signed-in user")
        return self.user_id

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        await self.load_preferences()
        await self.subscribe()

    async def subscribe(self) -> None:
        user_id = self._require_user()
        if self._channel is not None:
            logger.warning("NotificationStore already subscribed")
            return
        channel = self.service.channel(f"notifications-{user_id}")
        channel.on(
            self.tables.notifications,
            self._handle_new_notification,
            event=ChangeEventTypes.INSERT,
            filter=("user_id", user_id),
        )
        self._channel = await channel.subscribe()
        logger.info(f"Listening for notifications for {user_id}")

    async def stop(self) -> None:
        if self._channel is None:
            return
        await self.service.remove_channel(self._channel)
        self._channel = None

    # =========================================================================
    # Preferences
    # =========================================================================

    async def load_preferences(self) -> dict[str, bool]:
        """
        Fetch this user's preferences row.

        A missing row means an empty mapping. Other failures are logged and
        leave the current preferences in place.
        """
        user_id = self._require_user()
        try:
            result = await (
                self.service.table(self.tables.user_preferences)
                .select("*")
                .eq("user_id", user_id)
                .single()
                .execute()
            )
            self.preferences = dict(result.data.get("email_notifications") or {})
        except RemoteError as e:
            if e.is_no_rows:
                self.preferences = {}
            else:
                logger.error(f"Error loading notification preferences: {e}")
        finally:
            self.is_loading = False
        return dict(self.preferences)

    async def update_preferences(self, new_preferences: dict[str, bool]) -> PreferencesUpdateResult:
        """
        Upsert the full preference mapping.

        On success the local preferences become exactly ``new_preferences``.
        """
        user_id = self._require_user()
        try:
            await (
                self.service.table(self.tables.user_preferences)
                .upsert(
                    {"user_id": user_id, "email_notifications": dict(new_preferences)},
                    on_conflict="user_id",
                )
                .execute()
            )
        except RemoteError as e:
            logger.error(f"Error updating preferences: {e}")
            return PreferencesUpdateResult(success=False, error=e.message)

        self.preferences = dict(new_preferences)
        return PreferencesUpdateResult(success=True)

    def email_enabled(self, notification_type: str) -> bool:
        return bool(self.preferences.get(notification_type, False))

    # =========================================================================
    # Notification feed
    # =========================================================================

    def register_email_handler(self, notification_type: str, handler: EmailHandler) -> None:
        """Send email for another notification type."""
        self._email_handlers[notification_type] = handler

    async def _handle_new_notification(self, event: ChangeEvent) -> None:
        try:
            notification = Notification.model_validate(event.new)
        except ValidationError as e:
            logger.error(f"Malformed notification row: {e}")
            return

        logger.info(f"New notification {notification.id} ({notification.type}) for {notification.user_id}")

        if not self.email_enabled(notification.type):
            logger.debug(f"Email disabled for {notification.type}")
            return

        handler = self._email_handlers.get(notification.type)
        if handler is None:
            logger.debug(f"No email handler for notification type '{notification.type}'")
            return
        await handler(notification)

    async def _email_message_received(self, notification: Notification) -> None:
        await self.email_service.send_message_notification(
            notification.user_id,
            notification.sender_id,
            notification.content,
        )

    async def _email_listing_interest(self, notification: Notification) -> None:
        await self.email_service.send_listing_interest_email(
            notification.user_id,
            notification.listing_id,
            notification.content,
        )

    # =========================================================================
    # Read flags
    # =========================================================================

    async def list_notifications(self, unread_only: bool = False) -> list[Notification]:
        """Fetch this user's notifications, newest first."""
        user_id = self._require_user()
        query = self.service.table(self.tables.notifications).select("*").eq("user_id", user_id)
        if unread_only:
            query = query.eq("read", False)
        result = await query.order("created_at", desc=True).execute()
        return [Notification.model_validate(row) for row in result.data]

    async def mark_read(self, notification_id: str) -> None:
        """
        Raises:
            RemoteError: If the update fails
        """
        user_id = self._require_user()
        try:
            await (
                self.service.table(self.tables.notifications)
                .update({"read": True})
                .eq("id", notification_id)
                .eq("user_id", user_id)
                .execute()
            )
        except RemoteError as e:
            logger.error(f"Error marking notification {notification_id} read: {e}")
            raise
