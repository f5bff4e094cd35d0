"""
Pytest configuration and shared fixtures for the EventPilot tests.
"""

import base64
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock
from werkzeug.security import generate_password_hash
from flask_jwt_extended import create_access_token
from eventpilot import create_app
from eventpilot.extensions import db as database
from eventpilot.models import (
    Coupon,
    Event,
    EventInstance,
    GmailConnection,
    RegistrationField,
    RegistrationPeriod,
    RegistrationPeriodPricing,
    RegistrationTier,
    UpsellItem,
    User,
)
from eventpilot.models.enums import CouponAppliesTo, DiscountType, FieldRole, FieldType

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "JWT_SECRET_KEY": "test-secret-key-with-enough-length-for-hs256",
    "STRIPE_SECRET_KEY": "sk_test_123",
    "STRIPE_PUBLISHABLE_KEY": "pk_test_123",
    "STRIPE_WEBHOOK_SECRET": "whsec_test",
    "CRON_SECRET": "cron-secret",
    "S3_BUCKET": "eventpilot-test",
    "S3_BASE_URL": "https://files.example.com",
    "GMAIL_POLL_ENABLED": False,
    "RATELIMIT_ENABLED": False,
}


@pytest.fixture
def app():
    """Create a test app with a fresh in-memory database."""
    app = create_app(TEST_CONFIG)
    with app.app_context():
        database.create_all()
        yield app
        database.session.remove()
        database.drop_all()


@pytest.fixture
def db(app):
    return database


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def organizer(db):
    user = User(
        email="organizer@example.com",
        password=generate_password_hash("password123"),
        first_name="Olive",
        last_name="Organizer",
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def auth_headers(organizer):
    token = create_access_token(identity=str(organizer.id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def event_setup(db, organizer):
    """An event with one open period, a $50 tier, a $20 upsell and name/email fields."""
    now = datetime.now(timezone.utc)
    event = Event(name="River Run", user_id=organizer.id, stripe_connected_account_id="acct_123")
    db.session.add(event)
    db.session.flush()

    instance = EventInstance(event_id=event.id, name="2025")
    db.session.add(instance)
    db.session.flush()

    tier = RegistrationTier(event_id=event.id, instance_id=instance.id, name="10k")
    period = RegistrationPeriod(
        event_id=event.id,
        instance_id=instance.id,
        name="Early bird",
        starts_at=now - timedelta(days=1),
        ends_at=now + timedelta(days=30),
    )
    db.session.add_all([tier, period])
    db.session.flush()

    pricing = RegistrationPeriodPricing(
        registration_period_id=period.id, registration_tier_id=tier.id, price=Decimal("50.00")
    )
    upsell = UpsellItem(event_id=event.id, name="T-shirt", price=Decimal("20.00"))
    name_field = RegistrationField(
        event_id=event.id,
        instance_id=instance.id,
        type=FieldType.TEXT,
        role=FieldRole.PARTICIPANT_NAME,
        label="Full name",
        required=True,
        order=0,
    )
    email_field = RegistrationField(
        event_id=event.id,
        instance_id=instance.id,
        type=FieldType.EMAIL,
        label="Email address",
        required=True,
        order=1,
    )
    db.session.add_all([pricing, upsell, name_field, email_field])
    db.session.commit()

    return {
        "event": event,
        "instance": instance,
        "tier": tier,
        "period": period,
        "pricing": pricing,
        "upsell": upsell,
        "name_field": name_field,
        "email_field": email_field,
    }


@pytest.fixture
def make_coupon(db, event_setup):
    def _make(code="SAVE10", discount_type=DiscountType.FLAT, amount="10",
              applies_to=CouponAppliesTo.BOTH, **kwargs):
        coupon = Coupon(
            event_id=event_setup["event"].id,
            instance_id=event_setup["instance"].id,
            title=f"Coupon {code}",
            code=code,
            discount_type=discount_type,
            amount=Decimal(amount),
            applies_to=applies_to,
            **kwargs,
        )
        db.session.add(coupon)
        db.session.commit()
        return coupon

    return _make


@pytest.fixture
def registration_payload(event_setup):
    def _payload(**overrides):
        payload = {
            "instance_id": event_setup["instance"].id,
            "registration_tier_id": event_setup["tier"].id,
            "responses": [
                {"field_id": event_setup["name_field"].id, "value": "Rita Runner"},
                {"field_id": event_setup["email_field"].id, "value": "rita@example.com"},
            ],
        }
        payload.update(overrides)
        return payload

    return _payload


@pytest.fixture
def stripe_mocks(monkeypatch):
    """Replace the Stripe calls made while creating payment intents."""
    intent = MagicMock(id="pi_test_123", client_secret="pi_test_123_secret")
    mocks = {
        "intent_create": MagicMock(return_value=intent),
        "customer_list": MagicMock(return_value=MagicMock(data=[])),
        "customer_create": MagicMock(return_value=MagicMock(id="cus_test_1")),
    }
    monkeypatch.setattr("stripe.PaymentIntent.create", mocks["intent_create"])
    monkeypatch.setattr("stripe.Customer.list", mocks["customer_list"])
    monkeypatch.setattr("stripe.Customer.create", mocks["customer_create"])
    return mocks


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []
    monkeypatch.setattr(
        "eventpilot.services.registration_service.send_registration_confirmation_email",
        lambda *args, **kwargs: sent.append((args, kwargs)),
    )
    return sent


def b64url(text):
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


def gmail_message(gmail_id, thread_id, headers, text="Hello", html=None, parts=None, labels=None):
    """Build a Gmail API ``format=full`` message resource."""
    body_parts = parts or []
    if not parts:
        body_parts.append({"mimeType": "text/plain", "body": {"data": b64url(text)}})
        if html:
            body_parts.append({"mimeType": "text/html", "body": {"data": b64url(html)}})
    return {
        "id": gmail_id,
        "threadId": thread_id,
        "labelIds": labels or ["INBOX"],
        "internalDate": "1735725600000",
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [{"name": k, "value": v} for k, v in headers.items()],
            "parts": body_parts,
        },
    }


class _Request:
    def __init__(self, result):
        self._result = result

    def execute(self):
        if isinstance(self._result, Exception):
            raise self._result
        return self._result


class FakeGmailService:
    """In-memory stand-in for the Gmail v1 resource used during ingestion."""

    def __init__(self, pages, messages, attachments=None):
        self.pages = pages
        self.messages_by_id = messages
        self.attachments_by_id = attachments or {}
        self.list_calls = []

    def users(self):
        return self

    def messages(self):
        return self

    def attachments(self):
        return _Attachments(self.attachments_by_id)

    def list(self, userId, q=None, pageToken=None):
        self.list_calls.append({"q": q, "pageToken": pageToken})
        return _Request(self.pages[pageToken])

    def get(self, userId, id, format=None):
        return _Request(self.messages_by_id[id])


class _Attachments:
    def __init__(self, attachments):
        self.attachments_by_id = attachments

    def get(self, userId, messageId, id):
        return _Request(self.attachments_by_id[id])


@pytest.fixture
def gmail_connection(db, event_setup):
    connection = GmailConnection(
        event_id=event_setup["event"].id,
        email="hello@riverrun.org",
        access_token="ya29.token",
        refresh_token="refresh",
    )
    db.session.add(connection)
    db.session.commit()
    return connection
