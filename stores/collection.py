"""
Subscribed collection: a local, ordered mirror of one remote table.

This is the synchronization pattern behind the product catalog and the
message inbox:

    UI write -> remote write -> change event -> refresh() -> local list replaced

Design decisions:
- Writes (add/update/remove) never touch the local list. The change-feed
  round trip is the only way local state changes (server-confirmed
  consistency). A read right after a write may therefore be stale.
- Every change event triggers a full re-fetch; event types are not
  inspected and there is no debouncing.
- A failed refresh is logged and keeps the previous list (stale but
  available). It is not retried.
- Refreshes are numbered when issued. With ``discard_stale_refreshes`` on, a
  refresh that resolves after a newer one has been applied is dropped, so an
  older snapshot can never overwrite a newer one. With it off, whichever
  refresh resolves last wins.
"""

import logging
from typing import Any, Callable, Generic, Optional, TypeVar

from pydantic import ValidationError

from backend.client import RemoteService, get_remote_service
from backend.errors import NO_ROWS, RemoteError
from backend.realtime import ChangeEvent, Channel

logger = logging.getLogger("subscribed_collection")

T = TypeVar("T")


class SubscribedCollection(Generic[T]):
    """
    Keeps ``items`` in sync with a remote table, newest first.

    Example:
        collection = SubscribedCollection("products", parse_listing)
        await collection.start()      # initial refresh + subscribe

        await collection.add({...})   # returns once the remote insert succeeds
        await service.drain()         # change event delivered, refresh done
        collection.items              # now contains the new row
    """

    def __init__(
        self,
        table: str,
        parse: Callable[[dict[str, Any]], T],
        service: Optional[RemoteService] = None,
        order_column: str = "created_at",
        discard_stale_refreshes: bool = True,
    ):
        """
        Args:
            table: Remote table to mirror
            parse: Builds a local item from a remote row
            service: Remote data service (defaults to singleton)
            order_column: Column sorted descending on every refresh
            discard_stale_refreshes: Drop refresh results older than the one
                                     already applied
        """
        self.table = table
        self.parse = parse
        self.service = service or get_remote_service()
        self.order_column = order_column
        self.discard_stale_refreshes = discard_stale_refreshes

        self._items: list[T] = []
        self.is_loading = True
        self.last_error: Optional[str] = None

        self._issued_seq = 0
        self._applied_seq = 0
        self._channel: Optional[Channel] = None

    @property
    def items(self) -> list[T]:
        return list(self._items)

    @property
    def is_subscribed(self) -> bool:
        return self._channel is not None

    # =========================================================================
    # Sync
    # =========================================================================

    def _build_query(self):
        return (
            self.service.table(self.table)
            .select("*")
            .order(self.order_column, desc=True)
        )

    async def refresh(self) -> bool:
        """
        Re-fetch the whole table and replace the local list.

        Returns:
            True if the result was applied, False if it failed or was stale
        """
        self._issued_seq += 1
        seq = self._issued_seq

        try:
            result = await self._build_query().execute()
            items = [self.parse(row) for row in result.data]
        except (RemoteError, ValidationError) as e:
            logger.error(f"Refresh #{seq} of '{self.table}' failed, keeping last-known state: {e}")
            self.last_error = str(e)
            self.is_loading = False
            return False

        if self.discard_stale_refreshes and seq < self._applied_seq:
            logger.info(
                f"Discarding stale refresh #{seq} of '{self.table}' "
                f"(#{self._applied_seq} already applied)"
            )
            return False

        self._applied_seq = seq
        self._items = items
        self.last_error = None
        self.is_loading = False
        self._on_refreshed()
        logger.debug(f"Refresh #{seq} of '{self.table}' applied: {len(items)} rows")
        return True

    def _on_refreshed(self) -> None:
        """Hook for subclasses to recompute derived state."""

    async def subscribe(self) -> None:
        """Open one change-feed channel; any change on the table triggers refresh()."""
        if self._channel is not None:
            logger.warning(f"Collection '{self.table}' already subscribed")
            return
        channel = self.service.channel(f"{self.table}-changes")
        channel.on(self.table, self._handle_change)
        self._channel = await channel.subscribe()
        logger.info(f"Subscribed to changes on '{self.table}'")

    async def unsubscribe(self) -> None:
        if self._channel is None:
            return
        await self.service.remove_channel(self._channel)
        self._channel = None
        logger.info(f"Unsubscribed from changes on '{self.table}'")

    async def start(self) -> None:
        """Initial load followed by subscribe()."""
        await self.refresh()
        await self.subscribe()

    async def _handle_change(self, event: ChangeEvent) -> None:
        logger.info(f"Change on '{self.table}': {event.event_type}, refreshing")
        await self.refresh()

    # =========================================================================
    # Reads (local only)
    # =========================================================================

    def get_by_id(self, item_id: str) -> Optional[T]:
        """Look up an item in the local list. Never goes to the remote service."""
        for item in self._items:
            if getattr(item, "id", None) == item_id:
                return item
        return None

    # =========================================================================
    # Writes (remote only)
    # =========================================================================

    async def add(self, row: dict[str, Any]) -> T:
        """
        Insert a row remotely.

        Returns:
            The stored row, parsed

        Raises:
            RemoteError: If the remote insert fails
        """
        try:
            result = await self.service.table(self.table).insert(row).execute()
        except RemoteError as e:
            logger.error(f"Insert into '{self.table}' failed: {e}")
            raise
        return self.parse(result.data[0])

    async def update(self, item_id: str, patch: dict[str, Any]) -> T:
        """
        Update one row remotely.

        Raises:
            RemoteError: If the update fails or no row has ``item_id``
        """
        try:
            result = await self.service.table(self.table).update(patch).eq("id", item_id).execute()
            if not result.data:
                raise RemoteError(f"No row in '{self.table}' with id {item_id}", code=NO_ROWS)
        except RemoteError as e:
            logger.error(f"Update of '{self.table}' {item_id} failed: {e}")
            raise
        return self.parse(result.data[0])

    async def remove(self, item_id: str) -> bool:
        """
        Delete one row remotely.

        Returns:
            True if a row was deleted, False if none matched

        Raises:
            RemoteError: If the delete fails
        """
        try:
            result = await self.service.table(self.table).delete().eq("id", item_id).execute()
        except RemoteError as e:
            logger.error(f"Delete from '{self.table}' {item_id} failed: {e}")
            raise
        return bool(result.data)
