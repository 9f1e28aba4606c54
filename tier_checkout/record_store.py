from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from tier_checkout.config import REMOTE_TIMEOUT_SECONDS
from tier_checkout.database import SessionLocal
from tier_checkout.errors import RecordWriteError, RecordWriteTimeoutError
from tier_checkout.models import PaymentRecordRow
from tier_checkout.orders import PaymentRecord
from tier_checkout.tiers import PriceTier

logger = structlog.get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SqlRecordStore:
    """Payment records keyed by user id.

    Writes are last-write-wins per user. Rewriting the stored order, or a
    capture older than the stored one, is a no-op.
    """

    def __init__(self, session_factory=SessionLocal, timeout: float = REMOTE_TIMEOUT_SECONDS,
                 executor: Optional[ThreadPoolExecutor] = None):
        self.session_factory = session_factory
        self.timeout = timeout
        self.executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="record-store")

    def write(self, key: str, record: PaymentRecord) -> bool:
        future = self.executor.submit(self._write, key, record)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            raise RecordWriteTimeoutError(
                f"Record write for {key} exceeded {self.timeout}s", order_id=record.order_id
            )
        except Exception as e:
            raise RecordWriteError(
                f"Record write for {key} failed: {e}", order_id=record.order_id
            ) from e

    def get(self, key: str) -> Optional[PaymentRecord]:
        db = self.session_factory()
        try:
            row = db.get(PaymentRecordRow, key)
            if row is None:
                return None
            return PaymentRecord(
                user_id=row.user_id,
                tier=PriceTier(row.tier),
                order_id=row.order_id,
                completed_at=row.completed_at,
            )
        finally:
            db.close()

    def _write(self, key: str, record: PaymentRecord) -> bool:
        db = self.session_factory()
        try:
            row = db.get(PaymentRecordRow, key)
            if row is not None and row.order_id == record.order_id:
                logger.info("payment_record_unchanged", user_id=key, order_id=record.order_id)
                return False
            stored_at = row.completed_at if row is not None else None
            if stored_at is not None and _as_utc(stored_at) > _as_utc(record.completed_at):
                logger.info("payment_record_newer", user_id=key, stored_order_id=row.order_id,
                            order_id=record.order_id)
                return False

            if row is None:
                row = PaymentRecordRow(user_id=key)
                db.add(row)
            row.order_id = record.order_id
            row.tier = record.tier.value
            row.completed_at = _as_utc(record.completed_at)
            db.commit()
            logger.info("payment_record_written", user_id=key, order_id=record.order_id, tier=record.tier.value)
            return True
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()
