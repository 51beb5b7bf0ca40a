"""
Tests for listing photo uploads and the batch listing form.
"""

import pytest

from backend.client import RemoteService
from backend.errors import ListingValidationError, NotAuthenticatedError, RemoteError
from shared.models import BatchListing, PhotoType
from stores.listings import BatchListingForm, ListingPhotos
from stores.products import ProductStore


def _files(count: int, ext: str = "jpg") -> list[tuple[str, bytes]]:
    return [(f"photo{i}.{ext}", f"content-{i}".encode()) for i in range(count)]


class TestListingPhotos:

    @pytest.fixture
    def photos(self, empty_service: RemoteService) -> ListingPhotos:
        return ListingPhotos(service=empty_service)

    @pytest.mark.asyncio
    async def test_upload_stores_objects_and_public_urls(self, photos: ListingPhotos):
        added = await photos.upload(_files(1, ext="png"))

        photo = added[0]
        assert photo.path.startswith("batch-images/")
        assert photo.path.endswith(".png")
        assert photos.bucket.exists(photo.path)
        assert photo.url.endswith(f"/storage/v1/object/public/revend-images/{photo.path}")

    @pytest.mark.asyncio
    async def test_types_assigned_by_position(self, photos: ListingPhotos):
        await photos.upload(_files(4))

        assert [p.type for p in photos.photos] == ["overview", "labels", "condition", "condition"]

    @pytest.mark.asyncio
    async def test_paths_are_unique(self, photos: ListingPhotos):
        await photos.upload(_files(5))

        assert len({p.path for p in photos.photos}) == 5

    @pytest.mark.asyncio
    async def test_at_most_ten_photos(self, photos: ListingPhotos):
        added = await photos.upload(_files(12))

        assert len(added) == 10
        assert photos.remaining == 0
        assert len(photos.bucket.list_paths()) == 10

        with pytest.raises(ListingValidationError, match="Maximum 10 photos"):
            await photos.upload(_files(1))

    @pytest.mark.asyncio
    async def test_upload_failure_keeps_earlier_photos(self, photos: ListingPhotos, monkeypatch):
        # Every file gets the same name, so the second upload collides
        monkeypatch.setattr("stores.listings._random_name", lambda filename: "fixed.jpg")

        with pytest.raises(RemoteError, match="already exists"):
            await photos.upload(_files(2))

        assert [p.path for p in photos.photos] == ["batch-images/fixed.jpg"]

    @pytest.mark.asyncio
    async def test_remove_deletes_object(self, photos: ListingPhotos):
        await photos.upload(_files(2))
        path = photos.photos[0].path

        removed = await photos.remove(0)

        assert removed.path == path
        assert not photos.bucket.exists(path)
        assert len(photos.photos) == 1

    @pytest.mark.asyncio
    async def test_retag(self, photos: ListingPhotos):
        await photos.upload(_files(2))

        photos.retag(1, PhotoType.CONDITION)

        assert photos.photos[1].type == "condition"
        assert photos.has_type(PhotoType.LABELS) is False


async def _complete_form(service: RemoteService) -> BatchListingForm:
    form = BatchListingForm(service=service)
    d = form.draft
    d.title = "30x HP EliteBook 840 G6"
    d.quantity = 30
    d.device_category = "Laptop"
    d.brands_included = ["HP"]
    d.models_included = [{"model": "EliteBook 840 G6", "quantity": 30}]
    d.cpu_types = ["Intel i5"]
    d.ram_configuration = [{"size": "16GB", "quantity": 30}]
    d.storage_configuration = [{"type": "SSD", "size": "256GB", "quantity": 30}]
    d.battery_health = [{"condition": "", "quantity": None}]
    d.condition_grade = "A (Like New)"
    d.coa_license_info = "Included"
    d.power_supplies = "All included"
    d.data_wipe_report = "Uploaded"
    await form.photos.upload(_files(3))
    d.packaging = "Boxed"
    d.pickup_location = "Eindhoven, NL"
    d.price_amount = 5400.0
    d.minimum_purchase = 5
    return form


class TestBatchListingForm:

    def test_step_one_reports_first_error(self, empty_service: RemoteService):
        form = BatchListingForm(service=empty_service)

        assert form.validate_step(1) == "Batch title is required"
        form.draft.title = "Lot"
        assert form.validate_step(1) == "Valid quantity is required"
        form.draft.quantity = 5
        assert form.validate_step(1) == "Device category is required"
        form.draft.device_category = "Laptop"
        assert form.validate_step(1) == "At least one brand must be selected"
        form.draft.brands_included = ["Dell"]
        assert form.validate_step(1) is None

    def test_step_two_incomplete_rows(self, empty_service: RemoteService):
        form = BatchListingForm(service=empty_service)

        assert form.validate_step(2) == "Model information is incomplete"
        form.draft.models_included = [{"model": "X1", "quantity": 2}]
        form.draft.cpu_types = ["Intel i7"]
        assert form.validate_step(2) == "RAM configuration is incomplete"

    def test_step_four_needs_each_photo_type(self, empty_service: RemoteService):
        form = BatchListingForm(service=empty_service)

        assert form.validate_step(4) == "At least 3 photos are required"

    @pytest.mark.asyncio
    async def test_step_four_missing_labels(self, empty_service: RemoteService):
        form = BatchListingForm(service=empty_service)
        await form.photos.upload(_files(3))
        form.photos.retag(1, PhotoType.CONDITION)

        assert form.validate_step(4) == "A labels photo is required"

    def test_lead_time_required_unless_ready(self, empty_service: RemoteService):
        form = BatchListingForm(service=empty_service)
        d = form.draft
        d.packaging, d.pickup_location, d.price_amount, d.minimum_purchase = "Boxed", "Ghent", 100.0, 1

        assert form.validate_step(5) is None
        form.set_availability("Within 2 weeks")
        assert form.validate_step(5) == "Lead time is required"
        form.draft.lead_time = 10
        assert form.validate_step(5) is None

    def test_next_and_prev_step(self, empty_service: RemoteService):
        form = BatchListingForm(service=empty_service)

        assert form.next_step() is False
        assert form.error == "Batch title is required"
        assert form.current_step == 1

        d = form.draft
        d.title, d.quantity, d.device_category, d.brands_included = "Lot", 5, "Laptop", ["Dell"]
        assert form.next_step() is True
        assert form.current_step == 2
        form.prev_step()
        form.prev_step()
        assert form.current_step == 1

    @pytest.mark.asyncio
    async def test_build_submission(self, empty_service: RemoteService):
        form = await _complete_form(empty_service)

        row = form.build_submission("usr-alice")

        assert row["seller_id"] == "usr-alice"
        assert row["models_included"] == [{"model": "EliteBook 840 G6", "quantity": 30}]
        assert row["battery_health"] == []
        assert row["availability"] == "Ready Now"
        assert row["listing_price"] == {"type": "total", "amount": 5400.0}
        assert row["photos"] == [p.url for p in form.photos.photos]

    @pytest.mark.asyncio
    async def test_build_submission_drops_incomplete_model_rows(self, empty_service: RemoteService):
        form = await _complete_form(empty_service)
        form.draft.models_included.append({"model": "", "quantity": None})
        form.draft.models_included.append({"model": "EliteBook 830 G6", "quantity": None})

        row = form.build_submission("usr-alice")

        assert row["models_included"] == [{"model": "EliteBook 840 G6", "quantity": 30}]

    @pytest.mark.asyncio
    async def test_ships_in_n_days(self, empty_service: RemoteService):
        form = await _complete_form(empty_service)
        form.set_availability("Lead time")
        form.draft.lead_time = 14

        assert form.build_submission("usr-alice")["availability"] == "Ships in 14 days"

    @pytest.mark.asyncio
    async def test_submit_creates_batch_listing_in_catalogue(self, service: RemoteService):
        store = ProductStore(service=service)
        await store.start()
        form = await _complete_form(service)

        listing = await form.submit(seller_id="usr-alice")
        await service.drain()

        assert isinstance(listing, BatchListing)
        in_store = store.get_by_id(listing.id)
        assert in_store is not None
        assert in_store.is_batch
        assert in_store.listing_price_amount == 5400.0
        assert [p.type for p in in_store.photos] == ["other", "other", "other"]

    @pytest.mark.asyncio
    async def test_submit_validates_all_steps(self, empty_service: RemoteService):
        form = await _complete_form(empty_service)
        form.draft.power_supplies = ""

        with pytest.raises(ListingValidationError, match="Power supply information is required"):
            await form.submit(seller_id="usr-alice")

        assert form.current_step == 3
        assert empty_service.db.rows("products") == []

    @pytest.mark.asyncio
    async def test_submit_requires_seller(self, empty_service: RemoteService):
        form = await _complete_form(empty_service)

        with pytest.raises(NotAuthenticatedError):
            await form.submit(seller_id=None)
