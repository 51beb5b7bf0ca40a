"""
In-memory change feed for the remote data service.

Tables publish one ChangeEvent per affected row after every successful write.
Clients open named channels, bind handlers to a table (optionally filtered by
event type and a column equality) and receive the events asynchronously.

Design decisions:
- Asynchronous delivery: each handler runs as its own task on the event loop,
  so the writer never waits for subscribers (same as a websocket push)
- No ordering guarantee across handlers; within a handler, events arrive in
  publish order only if the handler itself does not suspend
- A failing handler is logged and does not affect other handlers
- ``drain()`` waits for in-flight deliveries (tests and demos use it)

Key properties:
- Writers don't know who is listening
- Subscribers react to row changes, not to the calls that caused them
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional
from uuid import uuid4

logger = logging.getLogger("change_feed")


class ChangeEventTypes:
    """Row-level change kinds. ``ALL`` matches any of them."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ALL = "*"


@dataclass
class ChangeEvent:
    """
    A row-level change on a remote table.

    Attributes:
        event_type: INSERT, UPDATE or DELETE
        table: Table the row belongs to
        new: Row after the change (empty for DELETE)
        old: Row before the change (empty for INSERT)
        commit_timestamp: When the write committed
        event_id: Unique identifier for this delivery
    """
    event_type: str
    table: str
    new: dict[str, Any] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)
    commit_timestamp: datetime = field(default_factory=datetime.utcnow)
    event_id: str = field(default_factory=lambda: str(uuid4()))

    @property
    def record(self) -> dict[str, Any]:
        """The row the event is about (``old`` for deletes)."""
        return self.new or self.old

    def __str__(self) -> str:
        return f"ChangeEvent({self.event_type} {self.table}, id={self.event_id[:8]})"


# Handlers may be plain functions or coroutines
ChangeHandler = Callable[[ChangeEvent], Any]


class HandlerTasks:
    """Runs callbacks as tracked event-loop tasks, logging their failures."""

    def __init__(self, name: str):
        self.name = name
        self._pending: set[asyncio.Task] = set()

    def spawn(self, handler: Callable[..., Any], *args: Any) -> None:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(handler, args))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run(self, handler: Callable[..., Any], args: tuple) -> None:
        try:
            result = handler(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"[{self.name}] Handler raised exception for {args[0] if args else ''}: {e}")

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every spawned handler (and any they spawn) has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))


@dataclass
class Binding:
    """One handler bound to a table on a channel."""
    table: str
    handler: ChangeHandler
    event: str = ChangeEventTypes.ALL
    filter: Optional[tuple[str, Any]] = None

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if self.event != ChangeEventTypes.ALL and self.event != event.event_type:
            return False
        if self.filter is not None:
            column, value = self.filter
            return event.record.get(column) == value
        return True


class Channel:
    """
    A named subscription channel.

    Bindings are declared with ``on()`` and only start receiving events after
    ``subscribe()``.

    Example usage:
        channel = service.channel("products")
        channel.on("products", handle_change)
        await channel.subscribe()
    """

    def __init__(self, name: str, feed: "ChangeFeed"):
        self.name = name
        self._feed = feed
        self.bindings: list[Binding] = []
        self.is_subscribed = False

    def on(
        self,
        table: str,
        handler: ChangeHandler,
        event: str = ChangeEventTypes.ALL,
        filter: Optional[tuple[str, Any]] = None,
    ) -> "Channel":
        """
        Bind a handler to changes on ``table``.

        Args:
            table: Table to watch
            handler: Called with each matching ChangeEvent
            event: INSERT, UPDATE, DELETE or "*" for all
            filter: Optional ``(column, value)`` equality on the changed row
        """
        self.bindings.append(Binding(table=table, handler=handler, event=event, filter=filter))
        return self

    async def subscribe(self) -> "Channel":
        self._feed._attach(self)
        self.is_subscribed = True
        logger.debug(f"Channel '{self.name}' subscribed with {len(self.bindings)} binding(s)")
        return self


class ChangeFeed:
    """
    Pub/sub hub for row-level change events.

    The remote tables publish here; channels opened by client stores receive.
    """

    def __init__(self):
        self._channels: list[Channel] = []
        self._tasks = HandlerTasks("change_feed")

        # Track all events for debugging and tests
        self._event_log: list[ChangeEvent] = []
        self._log_events: bool = True

    def channel(self, name: str) -> Channel:
        """Create a new, not yet subscribed, channel."""
        return Channel(name, self)

    def _attach(self, channel: Channel) -> None:
        if channel not in self._channels:
            self._channels.append(channel)

    def remove_channel(self, channel: Channel) -> bool:
        """
        Stop delivering to a channel.

        Returns:
            True if the channel was subscribed, False otherwise
        """
        try:
            self._channels.remove(channel)
        except ValueError:
            return False
        channel.is_subscribed = False
        logger.debug(f"Channel '{channel.name}' removed")
        return True

    def publish(self, event: ChangeEvent) -> int:
        """
        Deliver an event to every matching binding.

        Must be called from inside the event loop. Handlers run later, as
        separate tasks.

        Returns:
            Number of handlers scheduled
        """
        if self._log_events:
            self._event_log.append(event)

        logger.debug(f"Publishing: {event}")

        scheduled = 0
        for channel in list(self._channels):
            for binding in channel.bindings:
                if binding.matches(event):
                    self._tasks.spawn(binding.handler, event)
                    scheduled += 1
        return scheduled

    def get_subscriber_count(self, table: str) -> int:
        """Number of bindings on subscribed channels watching ``table``."""
        return sum(
            1
            for channel in self._channels
            for binding in channel.bindings
            if binding.table == table
        )

    def get_event_log(self) -> list[ChangeEvent]:
        return self._event_log.copy()

    def clear_event_log(self) -> None:
        self._event_log.clear()

    @property
    def pending_deliveries(self) -> int:
        return self._tasks.pending_count

    async def drain(self) -> None:
        """Wait for all scheduled deliveries to complete."""
        await self._tasks.drain()
