"""
Product catalog store.

Mirrors the remote products table (single-item and batch listings) and adds
the two things the marketplace screens need on top of the raw collection:
the derived category list and in-memory search.
"""

import logging
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from backend.client import RemoteService
from shared.config import get_settings
from shared.models import BatchListing, SingleListing, parse_listing
from stores.collection import SubscribedCollection

logger = logging.getLogger("product_store")

ListingModel = Union[SingleListing, BatchListing]


class ProductFilters(BaseModel):
    """
    Search filters. Unset filters don't restrict anything.

    Accepts both ``min_price`` and the ``minPrice`` spelling used by the web
    client's query strings.
    """
    category: Optional[str] = None
    condition: Optional[str] = None
    location: Optional[str] = None
    min_price: Optional[float] = Field(default=None, alias="minPrice")
    max_price: Optional[float] = Field(default=None, alias="maxPrice")

    model_config = ConfigDict(populate_by_name=True)


def matches(listing: ListingModel, query: str, filters: ProductFilters) -> bool:
    """
    Predicate used by ProductStore.search.

    - query: case-insensitive substring of title or description
    - category, condition: exact match
    - location: case-insensitive substring
    - min_price / max_price: inclusive bounds; listings without a price fail
      any price bound
    """
    if query:
        needle = query.lower()
        if needle not in listing.title.lower() and needle not in listing.listing_description.lower():
            return False
    if filters.category and listing.listing_category != filters.category:
        return False
    if filters.condition and listing.listing_condition != filters.condition:
        return False
    if filters.location:
        location = listing.listing_location or ""
        if filters.location.lower() not in location.lower():
            return False
    if filters.min_price is not None or filters.max_price is not None:
        price = listing.listing_price_amount
        if price is None:
            return False
        if filters.min_price is not None and price < filters.min_price:
            return False
        if filters.max_price is not None and price > filters.max_price:
            return False
    return True


class ProductStore(SubscribedCollection[ListingModel]):
    """
    The marketplace catalogue, newest listing first.

    Example:
        store = ProductStore(service=service)
        await store.start()

        laptops = store.search("dell", {"category": "Laptops", "maxPrice": 500})
    """

    def __init__(
        self,
        service: Optional[RemoteService] = None,
        table: Optional[str] = None,
        discard_stale_refreshes: bool = True,
    ):
        super().__init__(
            table=table or get_settings().tables.products,
            parse=parse_listing,
            service=service,
            discard_stale_refreshes=discard_stale_refreshes,
        )
        self.categories: list[str] = []

    @property
    def products(self) -> list[ListingModel]:
        return self.items

    def _on_refreshed(self) -> None:
        seen: dict[str, None] = {}
        for listing in self._items:
            category = listing.listing_category
            if category:
                seen.setdefault(category, None)
        self.categories = list(seen)

    def search(
        self,
        query: str = "",
        filters: Union[ProductFilters, dict[str, Any], None] = None,
    ) -> list[ListingModel]:
        """
        Filter the local collection. Pure and synchronous.

        Returns:
            A new list; the collection itself is never modified
        """
        if filters is None:
            filters = ProductFilters()
        elif isinstance(filters, dict):
            filters = ProductFilters.model_validate(filters)
        return [listing for listing in self._items if matches(listing, query or "", filters)]

    def get_by_seller(self, seller_id: str) -> list[ListingModel]:
        return [listing for listing in self._items if listing.seller_id == seller_id]
