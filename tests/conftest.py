"""
Shared fixtures: a throwaway SQLite store per test, a fake Stripe gateway and
a fake webhook verifier.
"""

import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.db.store import InvoiceStore
from app.errors import AuthenticationError, ExternalServiceError
from app.main import create_app
from app.models.invoices import LineItemIn, PaymentLinkRecord

ADMIN_TOKEN = "test-admin-token"
WEBHOOK_SECRET = "whsec_test_secret"
GOOD_SIGNATURE = "t=1,v1=good"


class FakeGateway:
    """Stands in for StripePaymentGateway; records which invoices it was asked about."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def create_payment_link(self, invoice) -> PaymentLinkRecord:
        self.calls.append(invoice.id)
        if self.fail:
            raise ExternalServiceError("stripe unavailable")
        n = len(self.calls)
        return PaymentLinkRecord(
            product_id=f"prod_{n}",
            price_id=f"price_{n}",
            payment_link_id=f"plink_{invoice.id}_{n}",
            payment_link_url=f"https://buy.stripe.com/test_{invoice.id}_{n}",
        )


def fake_verify(payload: bytes, signature: Optional[str], secret: str) -> Dict[str, Any]:
    if signature != GOOD_SIGNATURE or secret != WEBHOOK_SECRET:
        raise AuthenticationError("bad signature")
    return json.loads(payload)


def checkout_completed(payment_link: Optional[str], session_id: str = "cs_test_1") -> bytes:
    event = {
        "id": "evt_test_1",
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "payment_link": payment_link,
            }
        },
    }
    return json.dumps(event).encode()


def stripe_signature(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header the way Stripe signs deliveries."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def repair_item(**overrides) -> LineItemIn:
    fields = {"description": "Repair", "quantity": 2, "unit_price_cents": 5000}
    fields.update(overrides)
    return LineItemIn(**fields)


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'invoices.sqlite'}"


@pytest.fixture
def store(db_url):
    s = InvoiceStore.open(db_url)
    s.init_schema()
    yield s
    s.close()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def settings(db_url) -> Settings:
    return Settings(
        database_url=db_url,
        admin_api_token=ADMIN_TOKEN,
        stripe_webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture
def client(settings, store, gateway):
    app = create_app(settings, store=store, gateway=gateway, event_verifier=fake_verify)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
