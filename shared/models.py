"""
Domain models for the Revend marketplace sync layer.

These models mirror the rows that live in the remote data service. The client
never holds authoritative state: every instance here is a local copy of a
remote record, rebuilt whenever the owning store refreshes.

Design decisions:
- Using Pydantic for validation and serialization
- Unknown columns are tolerated (the remote schema may grow)
- Single-item and batch listings are two explicit models sharing a read
  interface, resolved once at parse time by ``parse_listing``
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    field_validator,
)


# =============================================================================
# Enums
# =============================================================================

class UserRole(str, Enum):
    """Marketplace roles. Admins can escalate other users."""
    USER = "user"
    BROKER = "broker"
    ITAD = "itad"                   # IT asset disposition vendor
    RESELLER = "reseller"
    ADMIN = "admin"
    COMPANY_ADMIN = "company_admin"


class PhotoType(str, Enum):
    """What a listing photo shows."""
    OVERVIEW = "overview"
    LABELS = "labels"
    CONDITION = "condition"
    OTHER = "other"


class PriceType(str, Enum):
    """How a batch listing price applies."""
    TOTAL = "total"
    PER_UNIT = "per_unit"


class NotificationType(str, Enum):
    """
    Notification row types.

    Only some of these trigger outbound email; see NotificationStore.
    """
    MESSAGE_RECEIVED = "message_received"
    LISTING_INTEREST = "listing_interest"
    ACCOUNT_ACTION = "account_action"
    COMPANY_VERIFICATION = "company_verification"
    ORDER_CONFIRMATION = "order_confirmation"


class CompanyStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


# =============================================================================
# Users
# =============================================================================

DEFAULT_AVATAR = (
    "https://images.unsplash.com/photo-1472099645785-5658abf4ff4e"
    "?w=150&h=150&fit=crop&crop=face"
)


class Profile(BaseModel):
    """
    Application-level user record, joined to the auth identity by ``id``.

    Created together with the auth record on registration. Never hard-deleted.
    """
    id: str = Field(..., description="Same id as the auth user")
    email: Optional[str] = Field(default=None)
    name: Optional[str] = Field(default=None, description="Display name")
    company_id: Optional[str] = Field(default=None)
    role: UserRole = Field(default=UserRole.USER)
    is_company_admin: bool = Field(default=False)
    avatar: Optional[str] = Field(default=None)
    is_suspended: bool = Field(default=False)
    created_at: Optional[datetime] = Field(default=None)
    updated_at: Optional[datetime] = Field(default=None)

    model_config = ConfigDict(use_enum_values=True, extra="allow")


class CurrentUser(Profile):
    """
    The signed-in user as seen by the auth session mirror.

    ``confirmed`` is False while the object was built only from local
    registration input, and True once a profile fetch has backed it.
    """
    confirmed: bool = Field(default=False)


class Company(BaseModel):
    id: str
    name: str
    status: CompanyStatus = Field(default=CompanyStatus.PENDING)
    verified_at: Optional[datetime] = Field(default=None)
    verified_by: Optional[str] = Field(default=None)
    verification_notes: Optional[str] = Field(default=None)
    created_at: Optional[datetime] = Field(default=None)

    model_config = ConfigDict(use_enum_values=True, extra="allow")


# =============================================================================
# Listings
# =============================================================================

class Photo(BaseModel):
    """A listing photo stored in object storage."""
    url: str
    path: Optional[str] = Field(default=None, description="Storage path, if uploaded by us")
    type: PhotoType = Field(default=PhotoType.OTHER)

    model_config = ConfigDict(use_enum_values=True)


class ListingPrice(BaseModel):
    type: PriceType = Field(default=PriceType.TOTAL)
    amount: float = Field(..., ge=0)

    model_config = ConfigDict(use_enum_values=True)


class ListingBase(BaseModel):
    """
    Fields and read interface shared by both listing variants.

    Never instantiated itself: rows are parsed into SingleListing or
    BatchListing, which implement every ``listing_*`` property.

    Search and category derivation only go through the ``listing_*``
    properties, never through variant-specific columns.
    """
    id: str
    seller_id: Optional[str] = Field(default=None)
    title: str
    quantity: int = Field(default=1, ge=0)
    photos: list[Photo] = Field(default_factory=list)
    created_at: Optional[datetime] = Field(default=None)

    model_config = ConfigDict(use_enum_values=True, extra="allow")

    @field_validator("photos", mode="before")
    @classmethod
    def coerce_photo_urls(cls, value: Any) -> Any:
        # Rows written by the batch form store bare URLs.
        if value is None:
            return []
        return [{"url": p} if isinstance(p, str) else p for p in value]

    @property
    def listing_category(self) -> Optional[str]:
        raise NotImplementedError

    @property
    def listing_condition(self) -> Optional[str]:
        raise NotImplementedError

    @property
    def listing_location(self) -> Optional[str]:
        raise NotImplementedError

    @property
    def listing_price_amount(self) -> Optional[float]:
        raise NotImplementedError

    @property
    def listing_description(self) -> str:
        return ""

    @property
    def is_batch(self) -> bool:
        return False


class SingleListing(ListingBase):
    """One kind of device, sold by unit price."""
    description: Optional[str] = Field(default=None)
    category: Optional[str] = Field(default=None)
    condition: Optional[str] = Field(default=None)
    price: Optional[float] = Field(default=None, ge=0)
    location: Optional[str] = Field(default=None)
    seller: Optional[str] = Field(default=None, description="Seller display name")
    specs: dict[str, str] = Field(default_factory=dict)

    @property
    def listing_category(self) -> Optional[str]:
        return self.category

    @property
    def listing_condition(self) -> Optional[str]:
        return self.condition

    @property
    def listing_location(self) -> Optional[str]:
        return self.location

    @property
    def listing_price_amount(self) -> Optional[float]:
        return self.price

    @property
    def listing_description(self) -> str:
        return self.description or ""


class BatchListing(ListingBase):
    """
    A heterogeneous group of devices sold together.

    Recognised by the presence of ``models_included`` or ``brands_included``.
    """
    device_category: Optional[str] = Field(default=None)
    condition_grade: Optional[str] = Field(default=None)
    listing_price: Optional[ListingPrice] = Field(default=None)
    minimum_purchase: Optional[int] = Field(default=None, ge=1)
    pickup_location: Optional[str] = Field(default=None)
    brands_included: list[str] = Field(default_factory=list)
    models_included: list[dict[str, Any]] = Field(default_factory=list)
    cpu_types: list[str] = Field(default_factory=list)
    ram_configuration: list[dict[str, Any]] = Field(default_factory=list)
    storage_configuration: list[dict[str, Any]] = Field(default_factory=list)
    screen_sizes: list[str] = Field(default_factory=list)
    operating_system: Optional[str] = Field(default=None)
    coa_license_info: Optional[str] = Field(default=None)
    power_supplies: Optional[str] = Field(default=None)
    battery_health: list[dict[str, Any]] = Field(default_factory=list)
    functional_defects: Optional[str] = Field(default=None)
    data_wipe_report: Optional[str] = Field(default=None)
    packaging: Optional[str] = Field(default=None)
    shipping_details: Optional[str] = Field(default=None)
    availability: Optional[str] = Field(default=None)
    warranty: Optional[str] = Field(default=None)
    escrow_eligible: bool = Field(default=False)
    preferred_buyer_region: list[str] = Field(default_factory=list)
    custom_notes: Optional[str] = Field(default=None)

    @property
    def listing_category(self) -> Optional[str]:
        return self.device_category

    @property
    def listing_condition(self) -> Optional[str]:
        return self.condition_grade

    @property
    def listing_location(self) -> Optional[str]:
        return self.pickup_location

    @property
    def listing_price_amount(self) -> Optional[float]:
        return self.listing_price.amount if self.listing_price else None

    @property
    def listing_description(self) -> str:
        return self.custom_notes or ""

    @property
    def is_batch(self) -> bool:
        return True


def listing_kind(row: Any) -> str:
    """Discriminate a raw row (or model) into "batch" or "single"."""
    if isinstance(row, dict):
        is_batch = "models_included" in row or "brands_included" in row
    else:
        is_batch = isinstance(row, BatchListing)
    return "batch" if is_batch else "single"


Listing = Annotated[
    Union[
        Annotated[SingleListing, Tag("single")],
        Annotated[BatchListing, Tag("batch")],
    ],
    Discriminator(listing_kind),
]

_listing_adapter: TypeAdapter = TypeAdapter(Listing)


def parse_listing(row: dict[str, Any]) -> Union[SingleListing, BatchListing]:
    """Build the right listing variant from a remote row."""
    return _listing_adapter.validate_python(row)


# =============================================================================
# Notifications & messages
# =============================================================================

class NotificationPreferences(BaseModel):
    """
    Per-user email opt-ins, keyed by notification type.

    A missing row is equivalent to an empty mapping (nothing enabled).
    """
    user_id: str
    email_notifications: dict[str, bool] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")

    def email_enabled(self, notification_type: str) -> bool:
        return bool(self.email_notifications.get(notification_type, False))


class Notification(BaseModel):
    """
    A notification row. Inserted server-side; the client only flips ``read``.
    """
    id: str
    user_id: str
    type: str
    title: Optional[str] = Field(default=None)
    content: Optional[str] = Field(default=None)
    sender_id: Optional[str] = Field(default=None)
    listing_id: Optional[str] = Field(default=None)
    read: bool = Field(default=False)
    created_at: Optional[datetime] = Field(default=None)

    model_config = ConfigDict(extra="allow")


class Message(BaseModel):
    id: str
    sender_id: str
    receiver_id: str
    content: str
    read: bool = Field(default=False)
    created_at: Optional[datetime] = Field(default=None)

    def counterparty(self, user_id: str) -> str:
        """The other participant, from ``user_id``'s point of view."""
        return self.receiver_id if self.sender_id == user_id else self.sender_id


class Conversation(BaseModel):
    """Derived, never stored: one per distinct counterparty."""
    counterparty_id: str
    last_message: Message
    unread_count: int = Field(default=0, ge=0)


class EmailTemplate(BaseModel):
    """Email template row; ``content`` uses ``{{key}}`` placeholders."""
    type: str
    subject: str
    content: str
