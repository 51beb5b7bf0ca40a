"""
Tests for the subscribed collection pattern.

These tests verify the write -> change event -> refresh round trip, the
stale-but-available behaviour on refresh failure, and what happens when
refreshes resolve out of order.
"""

import asyncio

import pytest

from backend.client import RemoteService
from backend.errors import NO_ROWS, RemoteError
from stores.products import ProductStore


class _GatedQuery:
    """Runs the real query, then holds the result until ``gate`` opens."""

    def __init__(self, query, gate: asyncio.Event, fetched: asyncio.Event):
        self._query = query
        self._gate = gate
        self._fetched = fetched

    async def execute(self):
        result = await self._query.execute()
        self._fetched.set()
        await self._gate.wait()
        return result


class GatedProductStore(ProductStore):
    """ProductStore whose next refreshes can be held and released by the test."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._holds: list[tuple[asyncio.Event, asyncio.Event]] = []

    def hold_next_refresh(self) -> tuple[asyncio.Event, asyncio.Event]:
        gate, fetched = asyncio.Event(), asyncio.Event()
        self._holds.append((gate, fetched))
        return gate, fetched

    def _build_query(self):
        query = super()._build_query()
        if not self._holds:
            return query
        gate, fetched = self._holds.pop(0)
        return _GatedQuery(query, gate, fetched)


def _price(store: ProductStore, product_id: str) -> float:
    return store.get_by_id(product_id).listing_price_amount


class TestSyncRoundTrip:

    @pytest.mark.asyncio
    async def test_start_loads_newest_first_and_subscribes(self, service: RemoteService):
        store = ProductStore(service=service)
        assert store.is_loading is True

        await store.start()

        created = [p.created_at for p in store.items]
        assert created == sorted(created, reverse=True)
        assert store.is_loading is False
        assert store.is_subscribed
        assert service.feed.get_subscriber_count("products") == 1

    @pytest.mark.asyncio
    async def test_add_is_not_applied_locally_until_change_event(
        self, service: RemoteService, new_listing_row: dict
    ):
        """Test that writes are server-confirmed: local state changes only via refresh."""
        store = ProductStore(service=service)
        await store.start()

        created = await store.add(new_listing_row)

        assert created.title == "Dell Latitude 5490"
        assert store.get_by_id(created.id) is None

        await service.drain()
        assert store.get_by_id(created.id) is not None

    @pytest.mark.asyncio
    async def test_local_equals_remote_after_mixed_writes(self, service: RemoteService, new_listing_row: dict):
        """Test eventual consistency over a sequence of insert/update/delete."""
        store = ProductStore(service=service)
        await store.start()

        created = await store.add(new_listing_row)
        await store.update("prod-002", {"price": 299.0})
        await store.remove("prod-003")
        await store.update(created.id, {"title": "Dell Latitude 5490 (renewed)"})
        await service.drain()

        remote = (await service.table("products").select().order("created_at", desc=True).execute()).data
        assert [p.id for p in store.items] == [row["id"] for row in remote]
        assert _price(store, "prod-002") == 299.0
        assert store.get_by_id(created.id).title == "Dell Latitude 5490 (renewed)"
        assert store.get_by_id("prod-003") is None

    @pytest.mark.asyncio
    async def test_external_writes_are_picked_up(self, service: RemoteService):
        """Test that writes made by other clients reach this store."""
        store = ProductStore(service=service)
        await store.start()

        await service.table("products").delete().eq("id", "prod-001").execute()
        await service.drain()

        assert store.get_by_id("prod-001") is None

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_updates(self, service: RemoteService, new_listing_row: dict):
        store = ProductStore(service=service)
        await store.start()
        await store.unsubscribe()

        created = await store.add(new_listing_row)
        await service.drain()

        assert store.get_by_id(created.id) is None
        assert store.is_subscribed is False

    @pytest.mark.asyncio
    async def test_items_is_a_copy(self, service: RemoteService):
        store = ProductStore(service=service)
        await store.refresh()

        store.items.clear()

        assert store.items


class TestWriteErrors:

    @pytest.mark.asyncio
    async def test_update_missing_id_raises_no_rows(self, service: RemoteService):
        store = ProductStore(service=service)

        with pytest.raises(RemoteError) as exc_info:
            await store.update("no-such-id", {"price": 1.0})

        assert exc_info.value.code == NO_ROWS

    @pytest.mark.asyncio
    async def test_remove_returns_whether_deleted(self, service: RemoteService):
        store = ProductStore(service=service)

        assert await store.remove("prod-001") is True
        assert await store.remove("prod-001") is False

    @pytest.mark.asyncio
    async def test_failed_insert_is_raised_and_changes_nothing(self, service: RemoteService, new_listing_row: dict):
        store = ProductStore(service=service)
        await store.start()
        before = [p.id for p in store.items]
        service.db.fail_next("products", "insert", "insert rejected")

        with pytest.raises(RemoteError, match="insert rejected"):
            await store.add(new_listing_row)
        await service.drain()

        assert [p.id for p in store.items] == before


class TestRefreshFailures:

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_last_known_items(self, service: RemoteService):
        """Test stale-but-available: a failed re-fetch keeps the previous list."""
        store = ProductStore(service=service)
        await store.refresh()
        before = [p.id for p in store.items]
        service.db.fail_next("products", "select", "timeout")

        applied = await store.refresh()

        assert applied is False
        assert [p.id for p in store.items] == before
        assert "timeout" in store.last_error

    @pytest.mark.asyncio
    async def test_failed_initial_load_leaves_empty_and_not_loading(self, service: RemoteService):
        store = ProductStore(service=service)
        service.db.fail_next("products", "select")

        await store.refresh()

        assert store.items == []
        assert store.is_loading is False

    @pytest.mark.asyncio
    async def test_malformed_row_fails_refresh(self, service: RemoteService):
        store = ProductStore(service=service)
        await store.refresh()
        service.db.seed("products", [{"id": "broken"}])

        assert await store.refresh() is False
        assert len(store.items) > 0


class TestOutOfOrderRefreshes:
    """
    Two rapid updates to one product, each followed by a refresh, with the
    refreshes resolving in reverse order.
    """

    async def _run_race(self, store: GatedProductStore) -> None:
        await store.refresh()

        gate1, fetched1 = store.hold_next_refresh()
        await store.update("prod-001", {"price": 200.0})
        refresh1 = asyncio.create_task(store.refresh())
        await fetched1.wait()

        gate2, fetched2 = store.hold_next_refresh()
        await store.update("prod-001", {"price": 210.0})
        refresh2 = asyncio.create_task(store.refresh())
        await fetched2.wait()

        # Newer refresh resolves first
        gate2.set()
        assert await refresh2 is True
        assert _price(store, "prod-001") == 210.0

        gate1.set()
        self.older_applied = await refresh1

    @pytest.mark.asyncio
    async def test_last_resolved_wins_without_stale_discard(self, service: RemoteService):
        """Test that the race exists: the older snapshot overwrites the newer one."""
        store = GatedProductStore(service=service, discard_stale_refreshes=False)

        await self._run_race(store)

        assert self.older_applied is True
        assert _price(store, "prod-001") == 200.0
        remote = (await service.table("products").select().eq("id", "prod-001").single().execute()).data
        assert remote["price"] == 210.0

    @pytest.mark.asyncio
    async def test_stale_discard_keeps_latest_issued(self, service: RemoteService):
        store = GatedProductStore(service=service, discard_stale_refreshes=True)

        await self._run_race(store)

        assert self.older_applied is False
        assert _price(store, "prod-001") == 210.0
