import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_temp.db")

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from tier_checkout.credentials import AccessCredential, CredentialCache
from tier_checkout.database import Base
from tier_checkout.ledger import OrderLedger
from tier_checkout.lifecycle import OrderLifecycleManager
from tier_checkout.record_store import SqlRecordStore
import tier_checkout.models  # noqa: F401

CAPTURE_TIME = "2026-10-18T10:00:00Z"


def completed_response(order_id, token, status="COMPLETED", create_time=CAPTURE_TIME):
    capture = {"id": f"CAP-{order_id}", "status": status, "create_time": create_time}
    if token is not None:
        capture["custom_id"] = token
    return {
        "id": order_id,
        "status": status,
        "purchase_units": [{"payments": {"captures": [capture]}}],
    }


class FakePayPal:
    """In-process stand-in for PayPalClient that remembers what was asked."""

    def __init__(self):
        self.calls = []
        self.tokens = {}
        self.capture_responses = {}
        self.exchange_error = None
        self.create_error = None
        self.capture_error = None

    @property
    def exchanges(self):
        return sum(1 for c in self.calls if c[0] == "exchange")

    def exchange_credentials(self):
        self.calls.append(("exchange",))
        if self.exchange_error:
            raise self.exchange_error
        return AccessCredential(
            value=f"tok-{self.exchanges}",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )

    def create_order(self, credential, amount, currency, correlation_token, return_url, cancel_url):
        self.calls.append(("create", amount, currency, correlation_token))
        if self.create_error:
            raise self.create_error
        order_id = f"O-{len(self.tokens) + 1}"
        self.tokens[order_id] = correlation_token
        return {
            "id": order_id,
            "status": "CREATED",
            "links": [
                {"rel": "self", "href": f"https://api-m.sandbox.paypal.com/v2/checkout/orders/{order_id}"},
                {"rel": "approve", "href": f"https://www.sandbox.paypal.com/checkoutnow?token={order_id}"},
            ],
        }

    def capture_order(self, credential, order_id):
        self.calls.append(("capture", order_id))
        if self.capture_error:
            raise self.capture_error
        if order_id in self.capture_responses:
            return self.capture_responses[order_id]
        return completed_response(order_id, self.tokens.get(order_id))


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def provider():
    return FakePayPal()


@pytest.fixture
def record_store(session_factory):
    return SqlRecordStore(session_factory=session_factory, timeout=5)


@pytest.fixture
def ledger(session_factory):
    return OrderLedger(session_factory=session_factory)


@pytest.fixture
def manager(provider, record_store, ledger):
    return OrderLifecycleManager(
        provider=provider,
        credentials=CredentialCache(provider),
        record_store=record_store,
        ledger=ledger,
    )
