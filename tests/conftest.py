"""Shared test fixtures for the WebSimple API test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, fake keys)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- admin_headers: bearer token for the operator endpoints
- seed_data: a customer with one paid, active site
- make_event: builds Stripe-shaped webhook event dicts
- sample_content / sample_intake: generated copy and intake form payloads
"""

import copy
from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from app.extensions import db as _db
from app.models.customer import Customer
from app.models.reservation import SlugReservation
from app.models.site import Site, SiteStatus


SAMPLE_CONTENT = {
    "hero": {
        "headline": "Reliable Electrical Work in Austin",
        "subheadline": "Licensed electricians serving Austin homes and businesses for 12 years.",
        "cta_text": "Get Free Quote",
    },
    "about": {
        "headline": "Family Owned Since 2013",
        "text": "We wire homes the right way, the first time.",
    },
    "services": [
        {"title": "Panel Upgrades", "description": "200A service upgrades."},
        {"title": "EV Chargers", "description": "Level 2 charger installs."},
    ],
    "trust": {
        "headline": "Why Austin Trusts Us",
        "points": ["Licensed and insured", "Upfront pricing", "Same-day service"],
    },
    "cta": {
        "headline": "Ready to get started?",
        "text": "Call today for a free estimate.",
        "button_text": "Call Now",
    },
    "seo": {
        "title": "Smith Electric | Austin Electricians",
        "description": "Panel upgrades and EV chargers in Austin, TX.",
    },
    "business": {
        "name": "Smith Electric",
        "phone": "512-555-0100",
        "email": "owner@smithelectric.com",
        "serviceArea": "Austin, TX",
        "years": "12",
        "industry": "electrician",
    },
}

SAMPLE_INTAKE = {
    "businessName": "Smith Electric",
    "phone": "512-555-0100",
    "email": "owner@smithelectric.com",
    "serviceArea": "Austin, TX",
    "services": "Panel upgrades, EV chargers, lighting",
    "years": "12",
}


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def admin_headers(app):
    return {"Authorization": f"Bearer {app.config['ADMIN_API_TOKEN']}"}


@pytest.fixture
def seed_data(db_session):
    """Seed a customer with a converted reservation and an active site.

    Returns plain IDs plus the objects; bulk service updates expire the
    session, so tests should re-query rather than trust these objects.
    """
    customer = Customer(email="owner@smithelectric.com", stripe_customer_id="cus_test_123")
    _db.session.add(customer)
    _db.session.flush()

    reservation = SlugReservation(
        slug="smith-electric",
        email="owner@smithelectric.com",
        session_id="sess-1",
        template_id="electrician",
        intake_data=SAMPLE_INTAKE,
        generated_content=SAMPLE_CONTENT,
        expires_at=datetime.now(timezone.utc) + timedelta(minutes=30),
        converted=True,
    )
    _db.session.add(reservation)

    site = Site(
        customer_id=customer.id,
        slug="smith-electric",
        plan="starter",
        template_id="electrician",
        intake_data=SAMPLE_INTAKE,
        generated_content=SAMPLE_CONTENT,
        stripe_subscription_id="sub_test_123",
        status=SiteStatus.ACTIVE,
    )
    _db.session.add(site)
    _db.session.commit()

    return {
        "customer": customer,
        "customer_id": customer.id,
        "site": site,
        "site_id": site.id,
        "site_slug": site.slug,
        "subscription_id": "sub_test_123",
        "stripe_customer_id": "cus_test_123",
    }


@pytest.fixture
def make_event():
    """Factory for Stripe-shaped webhook events."""

    def _make(event_id, event_type, obj):
        return {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {"object": obj},
        }

    return _make


@pytest.fixture
def sample_content():
    return copy.deepcopy(SAMPLE_CONTENT)


@pytest.fixture
def sample_intake():
    return dict(SAMPLE_INTAKE)
