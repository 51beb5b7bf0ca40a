"""
Demonstration scripts for the marketplace stores.

Each scenario builds a fresh in-memory RemoteService seeded from data/,
wires the stores to it and walks through one sync flow. Watch the logs to
see writes, change events and refreshes interleave.
"""

import asyncio
import logging

from api.send_email import register_send_email
from backend.client import RemoteService
from shared.channels import EmailChannel
from shared.config import get_settings
from shared.models import NotificationType
from stores.admin import AdminService
from stores.auth_session import AuthSession, RegistrationData
from stores.messages import MessageStore
from stores.notifications import NotificationStore
from stores.products import ProductStore

# Configure logging to see what's happening
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
)


def _banner(title: str) -> None:
    print("\n" + "=" * 70)
    print(title)
    print("=" * 70 + "\n")


def _section(title: str) -> None:
    print("\n" + "-" * 70)
    print(title)
    print("-" * 70 + "\n")


def _fresh_service() -> RemoteService:
    return RemoteService(data_dir=get_settings().data_dir)


async def catalog_sync_demo() -> None:
    """
    A listing written through the store appears locally only after the
    change event round trip.
    """
    _banner("DEMO: Catalogue sync through the change feed")
    service = _fresh_service()
    products = ProductStore(service=service)
    await products.start()

    print(f"Loaded {len(products.products)} listings")
    print(f"Categories: {', '.join(products.categories)}")
    print("Search 'dell' under 300:")
    for listing in products.search("dell", {"maxPrice": 300}):
        print(f"  {listing.title} ({listing.listing_price_amount})")

    _section("ACTION: Adding 'Dell Latitude 5490' through the store")
    created = await products.add({
        "seller_id": "usr-bob",
        "title": "Dell Latitude 5490",
        "description": "Intel i5-8250U, 8GB RAM, 256GB SSD",
        "category": "Laptops",
        "condition": "Refurbished",
        "price": 259.0,
        "location": "Amsterdam, NL",
    })
    print(f"Insert confirmed, id={created.id}")
    print(f"Visible locally right after the write: {products.get_by_id(created.id) is not None}")

    await service.drain()
    print(f"Visible locally after the change event: {products.get_by_id(created.id) is not None}")

    await products.unsubscribe()


async def account_demo() -> None:
    """Register a company admin, log out, log back in."""
    _banner("DEMO: Registration and the auth session mirror")
    service = _fresh_service()
    auth = AuthSession(service=service)
    await auth.initialize()

    _section("ACTION: Registering dana@circuit-resale.com as company_admin")
    user = await auth.register(RegistrationData(
        name="Dana Smit",
        email="dana@circuit-resale.com",
        password="s3cure-pass",
        company="Circuit Resale BV",
        role="company_admin",
    ))
    await service.drain()
    print(f"User: {user.name} role={user.role} is_company_admin={user.is_company_admin}")
    print(f"Confirmed by profile fetch: {auth.user.confirmed}")

    _section("ACTION: Logging out and back in")
    await auth.logout()
    await service.drain()
    print(f"After logout: user={auth.user}")
    await auth.login("dana@circuit-resale.com", "s3cure-pass")
    await service.drain()
    print(f"After login: {auth.user.name} ({auth.user.email})")
    auth.close()


async def notifications_demo() -> None:
    """
    A notification row inserted for Alice sends her an email, because she
    opted in for that notification type.
    """
    _banner("DEMO: Notification preferences and outbound email")
    service = _fresh_service()
    channel = EmailChannel()
    register_send_email(service, channel=channel)

    notifications = NotificationStore(user_id="usr-alice", service=service)
    await notifications.start()
    print(f"Alice's preferences: {notifications.preferences}")

    messages = MessageStore(user_id="usr-alice", service=service)
    await messages.start()
    for conversation in messages.conversations():
        print(f"  {conversation.counterparty_id}: {conversation.unread_count} unread")

    _section("ACTION: Bob messages Alice; a message_received notification is inserted")
    await service.table("messages").insert({
        "sender_id": "usr-bob",
        "receiver_id": "usr-alice",
        "content": "Can you send the Blancco reports?",
    }).execute()
    await service.table("notifications").insert({
        "user_id": "usr-alice",
        "type": NotificationType.MESSAGE_RECEIVED.value,
        "title": "New message",
        "content": "Can you send the Blancco reports?",
        "sender_id": "usr-bob",
    }).execute()
    await service.drain()

    print("Emails sent:")
    for result in channel.sent_messages:
        print(f"  {result}")

    _section("ACTION: Admin suspends Carol")
    admin = AdminService(service=service)
    await admin.apply_user_action("usr-carol", "unsuspend")
    await admin.apply_user_action("usr-carol", "suspend")
    suspended = await admin.list_users(status="suspended")
    print(f"Suspended users: {[u.name for u in suspended]}")

    await notifications.stop()
    await messages.unsubscribe()


SCENARIOS = {
    "catalog": catalog_sync_demo,
    "account": account_demo,
    "notifications": notifications_demo,
}


def run_demo(scenario: str) -> None:
    """Run one scenario by name, or every scenario for "all"."""
    names = list(SCENARIOS) if scenario == "all" else [scenario]
    for name in names:
        asyncio.run(SCENARIOS[name]())
