"""
Listing creation: photo uploads and the multi-step batch listing form.

Photos go to object storage as soon as they are picked (before the listing
exists); the listing row only stores their public URLs.

Design decisions:
- At most ``max_listing_photos`` photos per listing (10 by default).
  Extra files in one upload are skipped with a warning.
- Photo type is assigned by position on upload (first overview, second
  labels, the rest condition) and can be changed afterwards
- Step validation returns the first problem as a user-facing message, or
  None when the step is complete
- Incomplete configuration rows (models, RAM, storage, battery) are dropped
  at submission, not rejected
"""

import logging
import secrets
import time
from typing import Any, Optional

from pydantic import BaseModel, Field

from backend.client import RemoteService, get_remote_service
from backend.errors import ListingValidationError, NotAuthenticatedError, RemoteError
from backend.storage import Bucket
from shared.config import get_settings
from shared.models import BatchListing, Photo, PhotoType, PriceType, parse_listing

logger = logging.getLogger("listings")

READY_NOW = "Ready Now"
PHOTO_FOLDER = "batch-images"
TOTAL_STEPS = 6


def _photo_type_for_position(position: int) -> PhotoType:
    if position == 0:
        return PhotoType.OVERVIEW
    if position == 1:
        return PhotoType.LABELS
    return PhotoType.CONDITION


def _random_name(filename: str) -> str:
    extension = filename.rsplit(".", 1)[-1] if "." in filename else "bin"
    return f"{secrets.token_hex(6)}_{int(time.time() * 1000)}.{extension}"


# =============================================================================
# Photos
# =============================================================================

class ListingPhotos:
    """
    Photos attached to a listing draft.

    Example:
        photos = ListingPhotos(service=service)
        await photos.upload([("front.jpg", front_bytes), ("label.png", label_bytes)])
        photos.retag(1, PhotoType.CONDITION)
        await photos.remove(0)
    """

    def __init__(
        self,
        service: Optional[RemoteService] = None,
        bucket: Optional[str] = None,
        max_photos: Optional[int] = None,
    ):
        settings = get_settings()
        self.service = service or get_remote_service()
        self.bucket_name = bucket or settings.images_bucket
        self.max_photos = max_photos if max_photos is not None else settings.max_listing_photos
        self.photos: list[Photo] = []

    @property
    def bucket(self) -> Bucket:
        return self.service.storage.from_(self.bucket_name)

    @property
    def remaining(self) -> int:
        return max(self.max_photos - len(self.photos), 0)

    async def upload(self, files: list[tuple[str, bytes]]) -> list[Photo]:
        """
        Upload ``(filename, content)`` pairs in order.

        Returns:
            The photos added by this call

        Raises:
            ListingValidationError: The listing already has the maximum
            RemoteError: If a storage upload fails (earlier files stay added)
        """
        if files and not self.remaining:
            raise ListingValidationError(f"Maximum {self.max_photos} photos allowed")

        added = []
        for filename, content in files:
            if not self.remaining:
                logger.warning(f"Maximum {self.max_photos} photos allowed, skipping {filename}")
                break
            path = f"{PHOTO_FOLDER}/{_random_name(filename)}"
            try:
                await self.bucket.upload(path, content)
            except RemoteError as e:
                logger.error(f"Error uploading image {filename}: {e}")
                raise
            photo = Photo(
                url=self.bucket.get_public_url(path),
                path=path,
                type=_photo_type_for_position(len(self.photos)),
            )
            self.photos.append(photo)
            added.append(photo)
        return added

    async def remove(self, index: int) -> Photo:
        """
        Remove a photo from the draft and delete its stored object.

        A storage failure is logged; the photo is removed from the draft
        regardless.
        """
        photo = self.photos[index]
        if photo.path:
            try:
                await self.bucket.remove([photo.path])
            except RemoteError as e:
                logger.error(f"Error removing image {photo.path}: {e}")
        del self.photos[index]
        return photo

    def retag(self, index: int, photo_type: PhotoType) -> Photo:
        photo = self.photos[index].model_copy(update={"type": PhotoType(photo_type).value})
        self.photos[index] = photo
        return photo

    def has_type(self, photo_type: PhotoType) -> bool:
        return any(p.type == PhotoType(photo_type).value for p in self.photos)


# =============================================================================
# Batch listing form
# =============================================================================

class BatchListingDraft(BaseModel):
    """Form fields as entered. Rows in the list fields may be incomplete."""
    title: str = ""
    quantity: Optional[int] = None
    device_category: str = ""
    brands_included: list[str] = Field(default_factory=list)
    models_included: list[dict[str, Any]] = Field(default_factory=lambda: [{"model": "", "quantity": None}])
    cpu_types: list[str] = Field(default_factory=list)
    ram_configuration: list[dict[str, Any]] = Field(default_factory=lambda: [{"size": "", "quantity": None}])
    storage_configuration: list[dict[str, Any]] = Field(
        default_factory=lambda: [{"type": "", "size": "", "quantity": None}]
    )
    screen_sizes: list[str] = Field(default_factory=list)
    condition_grade: str = ""
    operating_system: str = ""
    coa_license_info: str = ""
    power_supplies: str = ""
    battery_health: list[dict[str, Any]] = Field(default_factory=lambda: [{"condition": "", "quantity": None}])
    functional_defects: str = ""
    data_wipe_report: str = ""
    packaging: str = ""
    shipping_details: str = ""
    pickup_location: str = ""
    price_type: PriceType = PriceType.TOTAL
    price_amount: Optional[float] = None
    minimum_purchase: Optional[int] = None
    availability: str = READY_NOW
    lead_time: Optional[int] = None
    warranty: str = ""
    escrow_eligible: bool = False
    preferred_buyer_region: list[str] = Field(default_factory=list)
    custom_notes: str = ""


def _complete(row: dict[str, Any], keys: tuple[str, ...]) -> bool:
    return all(row.get(key) for key in keys)


class BatchListingForm:
    """
    Six-step form for a batch listing; step 6 is review.

    Example:
        form = BatchListingForm(service=service)
        form.draft.title = "50x Dell Latitude"
        ...
        if form.next_step():
            ...
        else:
            show(form.error)

        listing = await form.submit(seller_id=user.id)
    """

    def __init__(self, service: Optional[RemoteService] = None, table: Optional[str] = None):
        self.service = service or get_remote_service()
        self.table = table or get_settings().tables.products
        self.draft = BatchListingDraft()
        self.photos = ListingPhotos(service=self.service)
        self.current_step = 1
        self.error: Optional[str] = None

    def validate_step(self, step: int) -> Optional[str]:
        """Return the first problem on ``step``, or None."""
        d = self.draft
        if step == 1:
            if not d.title.strip():
                return "Batch title is required"
            if not d.quantity or d.quantity <= 0:
                return "Valid quantity is required"
            if not d.device_category:
                return "Device category is required"
            if not d.brands_included:
                return "At least one brand must be selected"
        elif step == 2:
            if not d.models_included or not all(_complete(r, ("model", "quantity")) for r in d.models_included):
                return "Model information is incomplete"
            if not d.cpu_types:
                return "At least one CPU type must be selected"
            if not d.ram_configuration or not all(_complete(r, ("size", "quantity")) for r in d.ram_configuration):
                return "RAM configuration is incomplete"
            if not d.storage_configuration or not all(
                _complete(r, ("type", "size", "quantity")) for r in d.storage_configuration
            ):
                return "Storage configuration is incomplete"
        elif step == 3:
            if not d.condition_grade:
                return "Condition grade is required"
            if not d.coa_license_info:
                return "COA/License information is required"
            if not d.power_supplies:
                return "Power supply information is required"
            if not d.data_wipe_report:
                return "Data wipe report information is required"
        elif step == 4:
            if len(self.photos.photos) < 3:
                return "At least 3 photos are required"
            if not self.photos.has_type(PhotoType.OVERVIEW):
                return "An overview photo is required"
            if not self.photos.has_type(PhotoType.LABELS):
                return "A labels photo is required"
            if not self.photos.has_type(PhotoType.CONDITION):
                return "A condition photo is required"
        elif step == 5:
            if not d.packaging:
                return "Packaging information is required"
            if not d.pickup_location:
                return "Pickup location is required"
            if not d.price_amount:
                return "Price is required"
            if not d.minimum_purchase:
                return "Minimum purchase quantity is required"
            if d.availability != READY_NOW and not d.lead_time:
                return "Lead time is required"
        return None

    def next_step(self) -> bool:
        self.error = self.validate_step(self.current_step)
        if self.error:
            return False
        self.current_step = min(self.current_step + 1, TOTAL_STEPS)
        return True

    def prev_step(self) -> None:
        self.error = None
        self.current_step = max(self.current_step - 1, 1)

    def set_availability(self, availability: str) -> None:
        self.draft.availability = availability
        if availability == READY_NOW:
            self.draft.lead_time = None

    def build_submission(self, seller_id: str) -> dict[str, Any]:
        """The row to insert, with incomplete configuration rows dropped."""
        d = self.draft
        if d.availability == READY_NOW:
            availability = READY_NOW
        else:
            availability = f"Ships in {d.lead_time} days"
        return {
            "seller_id": seller_id,
            "title": d.title,
            "quantity": d.quantity,
            "device_category": d.device_category,
            "brands_included": list(d.brands_included),
            "models_included": [r for r in d.models_included if _complete(r, ("model", "quantity"))],
            "cpu_types": list(d.cpu_types),
            "ram_configuration": [r for r in d.ram_configuration if _complete(r, ("size", "quantity"))],
            "storage_configuration": [
                r for r in d.storage_configuration if _complete(r, ("type", "size", "quantity"))
            ],
            "screen_sizes": list(d.screen_sizes),
            "condition_grade": d.condition_grade,
            "operating_system": d.operating_system,
            "coa_license_info": d.coa_license_info,
            "power_supplies": d.power_supplies,
            "battery_health": [r for r in d.battery_health if _complete(r, ("condition", "quantity"))],
            "functional_defects": d.functional_defects,
            "data_wipe_report": d.data_wipe_report,
            "photos": [p.url for p in self.photos.photos],
            "packaging": d.packaging,
            "shipping_details": d.shipping_details,
            "pickup_location": d.pickup_location,
            "listing_price": {"type": PriceType(d.price_type).value, "amount": d.price_amount},
            "minimum_purchase": d.minimum_purchase,
            "availability": availability,
            "warranty": d.warranty,
            "escrow_eligible": d.escrow_eligible,
            "preferred_buyer_region": list(d.preferred_buyer_region),
            "custom_notes": d.custom_notes,
        }

    async def submit(self, seller_id: Optional[str]) -> BatchListing:
        """
        Validate every step, then insert the listing.

        Raises:
            NotAuthenticatedError: No seller signed in
            ListingValidationError: A step is incomplete (first error)
            RemoteError: If the insert fails
        """
        if not seller_id:
            raise NotAuthenticatedError("You must be logged in to create a listing")
        for step in range(1, TOTAL_STEPS):
            problem = self.validate_step(step)
            if problem:
                self.error = problem
                self.current_step = step
                raise ListingValidationError(problem)

        self.error = None
        try:
            result = await self.service.table(self.table).insert(self.build_submission(seller_id)).execute()
        except RemoteError as e:
            logger.error(f"Error submitting batch: {e}")
            self.error = e.message
            raise
        listing = parse_listing(result.data[0])
        logger.info(f"Created batch listing {listing.id} for seller {seller_id}")
        return listing
