"""
Pytest configuration and fixtures.

The environment is pinned before the application is imported: settings
are read once at import time. Stripe is replaced by an in-memory fake of
the resource API, and every test starts with empty tables.
"""

import hashlib
import hmac
import itertools
import json
import os
import tempfile
import time
from types import SimpleNamespace

_TEST_DIR = tempfile.mkdtemp(prefix="fitness-tracker-tests-")

os.environ["STRIPE_SECRET_KEY"] = "sk_test_fake"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["STRIPE_CHECK_ON_STARTUP"] = "false"
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR}/test.db"
os.environ["WORKOUT_STORE_BACKEND"] = "database"
os.environ["SUPABASE_JWT_SECRET"] = ""
os.environ["ANALYSIS_WEBHOOK_URL"] = "http://analysis.test/webhook/workout-analysis"

import httpx  # noqa: E402
import pytest  # noqa: E402
import stripe  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from fitness_tracker.database import SessionLocal, create_tables  # noqa: E402
from fitness_tracker.main import app  # noqa: E402
from fitness_tracker.models import BillingCustomer, Workout  # noqa: E402
from fitness_tracker.services.analysis_service import (  # noqa: E402
    AnalysisService,
    get_analysis_service,
)
from fitness_tracker.services.billing_service import (  # noqa: E402
    BillingService,
    get_billing_service,
)

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]
ANALYSIS_URL = os.environ["ANALYSIS_WEBHOOK_URL"]
PRICE_ID = "price_monthly"


def _missing(resource_id: str) -> stripe.InvalidRequestError:
    return stripe.InvalidRequestError(
        f"No such resource: '{resource_id}'", "id", code="resource_missing"
    )


class _Customers:
    def __init__(self, fake: "FakeStripe"):
        self.fake = fake

    def list(self, email=None, limit=10):
        matches = [
            c for c in self.fake.customers.values()
            if email is None or c["email"] == email
        ]
        # Stripe lists newest first
        return {"data": list(reversed(matches))[:limit]}

    def retrieve(self, customer_id):
        if customer_id not in self.fake.customers:
            raise _missing(customer_id)
        return self.fake.customers[customer_id]

    def create(self, email=None, metadata=None):
        customer_id = f"cus_{next(self.fake.ids)}"
        customer = {"id": customer_id, "email": email, "metadata": dict(metadata or {})}
        self.fake.customers[customer_id] = customer
        return customer

    def modify(self, customer_id, metadata=None):
        customer = self.retrieve(customer_id)
        customer["metadata"].update(metadata or {})
        return customer


class _Subscriptions:
    def __init__(self, fake: "FakeStripe"):
        self.fake = fake

    def list(self, customer=None, status=None, limit=10):
        matches = [
            s for s in self.fake.subscriptions.values()
            if s["customer"] == customer and (status is None or s["status"] == status)
        ]
        return {"data": list(reversed(matches))[:limit]}

    def cancel(self, subscription_id):
        subscription = self.fake.subscriptions.get(subscription_id)
        if subscription is None or subscription["status"] == "canceled":
            raise _missing(subscription_id)
        subscription["status"] = "canceled"
        self.fake.cancel_calls.append(subscription_id)
        return subscription


class _Sessions:
    def __init__(self, fake: "FakeStripe"):
        self.fake = fake

    def create(self, **params):
        session = {"id": f"cs_test_{next(self.fake.ids)}", "url": "https://checkout.stripe.test/pay", **params}
        self.fake.sessions.append(session)
        return session


class FakeStripe:
    """In-memory stand-in for the parts of the stripe module the app uses."""

    Webhook = stripe.Webhook

    def __init__(self):
        self.api_key = None
        self.ids = itertools.count(1)
        self.customers = {}
        self.subscriptions = {}
        self.sessions = []
        self.cancel_calls = []
        self.Customer = _Customers(self)
        self.Subscription = _Subscriptions(self)
        self.checkout = SimpleNamespace(Session=_Sessions(self))

    def add_customer(self, email, user_id=None):
        metadata = {"userId": user_id} if user_id else {}
        return self.Customer.create(email=email, metadata=metadata)["id"]

    def add_subscription(self, customer_id, price_id=PRICE_ID, interval="month", status="active"):
        subscription_id = f"sub_{next(self.ids)}"
        self.subscriptions[subscription_id] = {
            "id": subscription_id,
            "customer": customer_id,
            "status": status,
            "items": {
                "data": [{
                    "price": {"id": price_id, "recurring": {"interval": interval}},
                    "current_period_end": 1767225600,
                }]
            },
        }
        return subscription_id


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a ``stripe-signature`` header the way Stripe signs events."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode("utf-8") + payload
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def event_payload(event_type: str, **obj) -> bytes:
    event = {
        "id": "evt_test_1",
        "object": "event",
        "type": event_type,
        "data": {"object": {"object": "subscription", **obj}},
    }
    return json.dumps(event).encode("utf-8")


@pytest.fixture(scope="session", autouse=True)
def _tables():
    create_tables()


@pytest.fixture(autouse=True)
def _clean_tables():
    """Every test starts with empty tables."""
    db = SessionLocal()
    try:
        db.query(Workout).delete()
        db.query(BillingCustomer).delete()
        db.commit()
    finally:
        db.close()
    yield


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def fake_stripe():
    return FakeStripe()


@pytest.fixture
def billing(fake_stripe):
    return BillingService(
        api=fake_stripe,
        api_key="sk_test_fake",
        webhook_secret=WEBHOOK_SECRET,
        client_url="http://localhost:3000",
    )


@pytest.fixture
def analysis_requests():
    """Notes received by the fake analysis webhook."""
    return []


@pytest.fixture
def analysis_reply():
    """Response the fake analysis webhook sends; tests may replace it."""
    return {"status": 200, "json": {"output": "Solid aerobic session."}}


@pytest.fixture
def analysis(analysis_requests, analysis_reply):
    def handler(request: httpx.Request) -> httpx.Response:
        analysis_requests.append(json.loads(request.content))
        if analysis_reply.get("error"):
            raise httpx.ConnectError("connection refused", request=request)
        if "text" in analysis_reply:
            return httpx.Response(analysis_reply["status"], text=analysis_reply["text"])
        return httpx.Response(analysis_reply["status"], json=analysis_reply["json"])

    return AnalysisService(webhook_url=ANALYSIS_URL, timeout=5.0, transport=httpx.MockTransport(handler))


@pytest.fixture
def client(billing, analysis):
    """Test client with Stripe and the analysis webhook replaced by fakes."""
    app.dependency_overrides[get_billing_service] = lambda: billing
    app.dependency_overrides[get_analysis_service] = lambda: analysis
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
