"""
Shared infrastructure for the Revend marketplace.

- Domain models (listings, profiles, notifications, messages)
- Settings (pydantic-settings)
- Email channels (in-memory and SendGrid)
- Email templates
"""

from shared.channels import EmailChannel, EmailResult, SendGridEmailChannel
from shared.config import Settings, get_settings
from shared.models import (
    BatchListing,
    Company,
    CurrentUser,
    Message,
    Notification,
    Profile,
    SingleListing,
    parse_listing,
)

__all__ = [
    "EmailChannel",
    "EmailResult",
    "SendGridEmailChannel",
    "Settings",
    "get_settings",
    "BatchListing",
    "Company",
    "CurrentUser",
    "Message",
    "Notification",
    "Profile",
    "SingleListing",
    "parse_listing",
]
