"""
Shared pytest fixtures for the Revend marketplace tests.

These fixtures provide consistent test data and a fresh in-memory remote
service per test.
"""

import pytest
from pathlib import Path

from api.send_email import SendEmailFunction, register_send_email
from backend.client import RemoteService
from shared.channels import EmailChannel
from shared.config import TableNames, get_settings


@pytest.fixture
def data_dir() -> Path:
    """Path to the fixture data directory."""
    return Path(__file__).parent.parent / "data"


@pytest.fixture
def service(data_dir: Path) -> RemoteService:
    """
    Fresh RemoteService for each test.

    Seeded from the real JSON fixtures, but every test gets its own copy so
    writes don't leak between tests.
    """
    return RemoteService(data_dir=data_dir)


@pytest.fixture
def empty_service() -> RemoteService:
    """RemoteService with every table empty."""
    return RemoteService()


@pytest.fixture
def tables() -> TableNames:
    return get_settings().tables


@pytest.fixture
def email_channel() -> EmailChannel:
    """Fresh recording EmailChannel for each test."""
    return EmailChannel(fail_rate=0.0)


@pytest.fixture
def send_email_function(service: RemoteService, email_channel: EmailChannel) -> SendEmailFunction:
    """The send-email function registered on ``service``, sending to ``email_channel``."""
    return register_send_email(service, channel=email_channel)


# =============================================================================
# User Fixtures
# =============================================================================

@pytest.fixture
def alice_id() -> str:
    """Alice: reseller, company admin of Janssen IT Trading, opted in to message and interest emails."""
    return "usr-alice"


@pytest.fixture
def bob_id() -> str:
    """Bob: ITAD at GreenCycle (pending verification), message emails off."""
    return "usr-bob"


@pytest.fixture
def carol_id() -> str:
    """Carol: suspended broker, no company, no preferences row."""
    return "usr-carol"


@pytest.fixture
def admin_id() -> str:
    return "usr-admin"


# =============================================================================
# Listing Fixtures
# =============================================================================

@pytest.fixture
def dell_listing_id() -> str:
    """Dell Latitude E7450: single listing, Laptops, 249.0, Amsterdam."""
    return "prod-001"


@pytest.fixture
def dell_batch_id() -> str:
    """50x Dell Latitude 7490: batch listing, Laptop, 7500.0 total, Utrecht."""
    return "batch-001"


@pytest.fixture
def new_listing_row() -> dict:
    """A single listing row not present in the fixtures."""
    return {
        "seller_id": "usr-bob",
        "title": "Dell Latitude 5490",
        "description": "Intel i5-8250U, 8GB RAM, 256GB SSD",
        "category": "Laptops",
        "condition": "Refurbished",
        "price": 259.0,
        "location": "Amsterdam, NL",
    }
