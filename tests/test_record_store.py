import time
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from tier_checkout.errors import RecordWriteError, RecordWriteTimeoutError
from tier_checkout.orders import PaymentRecord
from tier_checkout.record_store import SqlRecordStore
from tier_checkout.tiers import PriceTier

WHEN = datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc)


def make_record(order_id="O-1", user_id="user-42", tier=PriceTier.TIER1):
    return PaymentRecord(user_id=user_id, tier=tier, order_id=order_id, completed_at=WHEN)


def test_write_then_get(record_store):
    assert record_store.write("user-42", make_record()) is True

    stored = record_store.get("user-42")
    assert stored.user_id == "user-42"
    assert stored.order_id == "O-1"
    assert stored.tier is PriceTier.TIER1
    assert stored.completed_at.replace(tzinfo=None) == WHEN.replace(tzinfo=None)


def test_get_missing_key(record_store):
    assert record_store.get("nobody") is None


def test_rewriting_same_order_is_noop(record_store):
    record_store.write("user-42", make_record())

    assert record_store.write("user-42", make_record()) is False


def test_newer_order_overwrites(record_store):
    record_store.write("user-42", make_record("O-1", tier=PriceTier.TIER1))
    assert record_store.write("user-42", make_record("O-2", tier=PriceTier.TIER3)) is True

    stored = record_store.get("user-42")
    assert stored.order_id == "O-2"
    assert stored.tier is PriceTier.TIER3


def test_database_error_becomes_record_write_error(mocker):
    session = mocker.Mock()
    session.get.side_effect = OperationalError("SELECT", {}, Exception("disk I/O error"))
    store = SqlRecordStore(session_factory=lambda: session, timeout=5)

    with pytest.raises(RecordWriteError) as exc:
        store.write("user-42", make_record())

    assert exc.value.order_id == "O-1"
    session.rollback.assert_called_once()
    session.close.assert_called_once()


def test_slow_write_times_out():
    def slow_session():
        time.sleep(0.5)
        raise AssertionError("write should have been abandoned")

    store = SqlRecordStore(session_factory=slow_session, timeout=0.05)

    with pytest.raises(RecordWriteTimeoutError):
        store.write("user-42", make_record())


def test_older_capture_does_not_replace_newer_record(record_store):
    newer = PaymentRecord(
        user_id="user-42", tier=PriceTier.TIER3, order_id="O-2",
        completed_at=datetime(2026, 10, 18, 11, 0, tzinfo=timezone.utc),
    )
    record_store.write("user-42", make_record("O-1"))
    record_store.write("user-42", newer)

    assert record_store.write("user-42", make_record("O-1")) is False

    stored = record_store.get("user-42")
    assert stored.order_id == "O-2"
    assert stored.tier is PriceTier.TIER3
