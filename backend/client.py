"""
Facade over the in-memory remote data service.

One RemoteService bundles everything the marketplace delegates to the hosted
platform: tables, auth, object storage, change-feed channels and server-side
functions. Stores receive it by injection; ``get_remote_service()`` provides
a process-wide default.
"""

import logging
from pathlib import Path
from typing import Optional

from backend.auth import AuthClient
from backend.functions import FunctionsClient
from backend.realtime import Channel, ChangeFeed
from backend.storage import StorageClient
from backend.tables import InMemoryDatabase, TableQuery
from shared.config import get_settings

logger = logging.getLogger("remote_service")


class RemoteService:
    """
    Example usage:
        service = RemoteService(data_dir=Path("data"))

        rows = (await service.table("products").select().execute()).data

        channel = service.channel("products").on("products", on_change)
        await channel.subscribe()
    """

    def __init__(self, data_dir: Optional[Path] = None, public_url: Optional[str] = None):
        """
        Args:
            data_dir: Fixture directory for seeding tables. None means
                      empty tables.
            public_url: Base URL for storage public URLs (defaults to settings)
        """
        self.feed = ChangeFeed()
        self.db = InMemoryDatabase(self.feed, data_dir=data_dir)
        self.auth = AuthClient()
        self.storage = StorageClient(public_url or get_settings().public_url)
        self.functions = FunctionsClient()

    def table(self, name: str) -> TableQuery:
        return TableQuery(self.db, name)

    def channel(self, name: str) -> Channel:
        return self.feed.channel(name)

    async def remove_channel(self, channel: Channel) -> bool:
        return self.feed.remove_channel(channel)

    async def drain(self) -> None:
        """
        Wait until every pending change-feed and auth delivery has run.

        Deliveries can trigger further remote calls, so loop until both
        sources are quiet.
        """
        while True:
            await self.feed.drain()
            await self.auth.drain()
            if not self.feed.pending_deliveries and not self.auth.pending_deliveries:
                return


# Module-level singleton for convenience
# In tests, create a new RemoteService instance instead
_default_service: Optional[RemoteService] = None


def get_remote_service() -> RemoteService:
    """Get the default remote service, seeded from the configured data dir."""
    global _default_service
    if _default_service is None:
        _default_service = RemoteService(data_dir=get_settings().data_dir)
    return _default_service


def reset_remote_service() -> RemoteService:
    """Replace the default remote service with a fresh one."""
    global _default_service
    _default_service = RemoteService(data_dir=get_settings().data_dir)
    return _default_service
