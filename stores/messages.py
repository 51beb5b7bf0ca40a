"""
Message store: the signed-in user's inbox and outbox as one subscribed
collection, plus the conversation list derived from it.
"""

import logging
from typing import Optional

from backend.client import RemoteService
from backend.errors import NotAuthenticatedError, RemoteError
from backend.realtime import ChangeEventTypes
from shared.config import get_settings
from shared.models import Conversation, Message
from stores.collection import SubscribedCollection

logger = logging.getLogger("message_store")


class MessageStore(SubscribedCollection[Message]):
    """
    Messages where the user is sender or receiver, newest first.

    Sending goes through the remote table like every other write; the new
    message shows up locally after the change event refreshes the list.
    """

    def __init__(
        self,
        user_id: Optional[str],
        service: Optional[RemoteService] = None,
        table: Optional[str] = None,
        discard_stale_refreshes: bool = True,
    ):
        super().__init__(
            table=table or get_settings().tables.messages,
            parse=Message.model_validate,
            service=service,
            discard_stale_refreshes=discard_stale_refreshes,
        )
        self.user_id = user_id

    def _require_user(self) -> str:
        if not self.user_id:
            raise NotAuthenticatedError("Message store needs a signed-in user")
        return self.user_id

    @property
    def messages(self) -> list[Message]:
        return self.items

    def _build_query(self):
        user_id = self._require_user()
        return (
            self.service.table(self.table)
            .select("*")
            .or_(("sender_id", user_id), ("receiver_id", user_id))
            .order(self.order_column, desc=True)
        )

    async def subscribe(self) -> None:
        user_id = self._require_user()
        if self._channel is not None:
            logger.warning("MessageStore already subscribed")
            return
        channel = self.service.channel(f"messages-{user_id}")
        channel.on(self.table, self._handle_change, event=ChangeEventTypes.ALL, filter=("receiver_id", user_id))
        channel.on(self.table, self._handle_change, event=ChangeEventTypes.ALL, filter=("sender_id", user_id))
        self._channel = await channel.subscribe()
        logger.info(f"Listening for messages for {user_id}")

    async def load(self) -> list[Message]:
        await self.refresh()
        return self.items

    async def send(self, receiver_id: str, content: str) -> Message:
        """
        Raises:
            ValueError: Empty message
            RemoteError: If the insert fails
        """
        sender_id = self._require_user()
        content = content.strip()
        if not content:
            raise ValueError("Message content cannot be empty")
        return await self.add({
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "content": content,
            "read": False,
        })

    def conversations(self) -> list[Conversation]:
        """One entry per counterparty, most recent conversation first."""
        user_id = self._require_user()
        by_counterparty: dict[str, Conversation] = {}
        # _items is newest first, so the first message seen is the latest
        for message in self._items:
            other = message.counterparty(user_id)
            conversation = by_counterparty.get(other)
            if conversation is None:
                conversation = Conversation(counterparty_id=other, last_message=message, unread_count=0)
                by_counterparty[other] = conversation
            if message.receiver_id == user_id and not message.read:
                conversation.unread_count += 1
        return list(by_counterparty.values())

    def thread(self, counterparty_id: str) -> list[Message]:
        """Messages exchanged with one counterparty, oldest first."""
        user_id = self._require_user()
        return [m for m in reversed(self._items) if m.counterparty(user_id) == counterparty_id]

    async def mark_conversation_read(self, counterparty_id: str) -> int:
        """
        Mark everything ``counterparty_id`` sent to this user as read.

        Returns:
            Number of messages updated

        Raises:
            RemoteError: If the update fails
        """
        user_id = self._require_user()
        try:
            result = await (
                self.service.table(self.table)
                .update({"read": True})
                .eq("sender_id", counterparty_id)
                .eq("receiver_id", user_id)
                .eq("read", False)
                .execute()
            )
        except RemoteError as e:
            logger.error(f"Error marking conversation with {counterparty_id} read: {e}")
            raise
        return len(result.data)
