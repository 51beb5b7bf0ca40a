"""
Tests for the product catalogue store: search and derived categories.
"""

import pytest

from backend.client import RemoteService
from shared.models import SingleListing, parse_listing
from stores.products import ProductFilters, ProductStore, matches


@pytest.fixture
def two_laptops(empty_service: RemoteService) -> RemoteService:
    empty_service.db.seed("products", [
        {"id": "a", "title": "Dell Latitude E7450", "category": "Laptops", "price": 150.0,
         "created_at": "2024-03-01T00:00:00"},
        {"id": "b", "title": "HP EliteBook", "category": "Laptops", "price": 250.0,
         "created_at": "2024-03-02T00:00:00"},
    ])
    return empty_service


class TestSearch:

    @pytest.mark.asyncio
    async def test_empty_search_returns_everything(self, service: RemoteService):
        store = ProductStore(service=service)
        await store.refresh()

        assert store.search("", {}) == store.items
        assert store.search() == store.items

    @pytest.mark.asyncio
    async def test_query_matches_title_case_insensitively(self, two_laptops: RemoteService):
        store = ProductStore(service=two_laptops)
        await store.refresh()

        assert [p.title for p in store.search("dell", {})] == ["Dell Latitude E7450"]
        assert [p.title for p in store.search("ELITEBOOK")] == ["HP EliteBook"]

    @pytest.mark.asyncio
    async def test_query_matches_description(self, service: RemoteService):
        store = ProductStore(service=service)
        await store.refresh()

        results = store.search("blancco")

        assert [p.id for p in results] == ["batch-001"]

    @pytest.mark.asyncio
    async def test_price_range_is_inclusive(self, service: RemoteService):
        store = ProductStore(service=service)
        await store.refresh()

        results = store.search("", {"minPrice": 139, "maxPrice": 249})

        assert {p.id for p in results} == {"prod-001", "prod-003", "prod-005"}
        assert all(139 <= p.listing_price_amount <= 249 for p in results)

    @pytest.mark.asyncio
    async def test_price_range_from_dict_filters(self, service: RemoteService):
        store = ProductStore(service=service)
        await store.refresh()

        results = store.search("", {"minPrice": 100, "maxPrice": 200})

        assert {p.id for p in results} == {"prod-003", "prod-005"}

    @pytest.mark.asyncio
    async def test_category_and_condition_exact(self, service: RemoteService):
        store = ProductStore(service=service)
        await store.refresh()

        laptops = store.search("", ProductFilters(category="Laptops", condition="Used"))

        assert {p.id for p in laptops} == {"prod-002", "prod-004"}
        assert store.search("", {"category": "laptops"}) == []

    @pytest.mark.asyncio
    async def test_location_substring(self, service: RemoteService):
        store = ProductStore(service=service)
        await store.refresh()

        results = store.search("", {"location": "amsterdam"})

        assert {p.id for p in results} == {"prod-001", "prod-005"}

    @pytest.mark.asyncio
    async def test_batch_listings_searched_through_shared_fields(self, service: RemoteService):
        store = ProductStore(service=service)
        await store.refresh()

        results = store.search("", {"category": "Desktop", "location": "Antwerp"})

        assert [p.id for p in results] == ["batch-002"]
        assert results[0].is_batch

    @pytest.mark.asyncio
    async def test_search_does_not_modify_collection(self, service: RemoteService):
        store = ProductStore(service=service)
        await store.refresh()
        before = store.items

        store.search("dell", {"maxPrice": 10})

        assert store.items == before


class TestMatches:

    def test_unpriced_listing_fails_price_bounds(self):
        listing = SingleListing(id="x", title="Spare parts")

        assert matches(listing, "", ProductFilters()) is True
        assert matches(listing, "", ProductFilters(min_price=0)) is False

    def test_filters_populate_by_alias_or_name(self):
        assert ProductFilters(minPrice=5).min_price == 5
        assert ProductFilters(max_price=9).max_price == 9

    def test_query_on_batch_notes(self):
        listing = parse_listing({"id": "b", "title": "Lot", "brands_included": ["HP"], "custom_notes": "No HDDs"})

        assert matches(listing, "hdd", ProductFilters()) is True


class TestCategories:

    @pytest.mark.asyncio
    async def test_categories_deduplicated(self, service: RemoteService):
        store = ProductStore(service=service)
        await store.refresh()

        assert sorted(store.categories) == ["Desktop", "Desktops", "Laptop", "Laptops", "Monitors"]
        assert len(store.categories) == len(set(store.categories))

    @pytest.mark.asyncio
    async def test_categories_follow_changes(self, service: RemoteService, new_listing_row: dict):
        store = ProductStore(service=service)
        await store.start()

        await store.add({**new_listing_row, "category": "Servers"})
        await store.remove("prod-005")
        await service.drain()

        assert "Servers" in store.categories
        assert "Monitors" not in store.categories

    @pytest.mark.asyncio
    async def test_get_by_seller(self, service: RemoteService, bob_id: str):
        store = ProductStore(service=service)
        await store.refresh()

        assert {p.id for p in store.get_by_seller(bob_id)} == {"prod-001", "prod-003", "prod-005", "batch-001"}
