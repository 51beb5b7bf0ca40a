"""
Client-side stores for the Revend marketplace.

Each store mirrors part of the remote data service and keeps it current:
- SubscribedCollection: table mirror refreshed on every change event
- ProductStore: the catalogue, with categories and search
- AuthSession: the signed-in user (auth identity + profile)
- NotificationStore: email preferences and the notification feed
- MessageStore: inbox/outbox and conversations
- EmailService, AdminService, listing form helpers
"""

from stores.admin import AdminService
from stores.auth_session import AuthSession, RegistrationData
from stores.collection import SubscribedCollection
from stores.email_service import EmailSendResult, EmailService
from stores.listings import BatchListingForm, ListingPhotos
from stores.messages import MessageStore
from stores.notifications import NotificationStore
from stores.products import ProductFilters, ProductStore

__all__ = [
    "AdminService",
    "AuthSession",
    "RegistrationData",
    "SubscribedCollection",
    "EmailSendResult",
    "EmailService",
    "BatchListingForm",
    "ListingPhotos",
    "MessageStore",
    "NotificationStore",
    "ProductFilters",
    "ProductStore",
]
