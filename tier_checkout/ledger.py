from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from tier_checkout.credentials import utcnow
from tier_checkout.database import SessionLocal
from tier_checkout.models import LedgerEntryRow
from tier_checkout.orders import Order, OrderState


@dataclass(frozen=True)
class LedgerEntry:
    order_id: str
    state: OrderState
    user_id: Optional[str]
    tier: Optional[str]
    detail: Optional[str]
    updated_at: datetime


def _entry(row: LedgerEntryRow) -> LedgerEntry:
    return LedgerEntry(
        order_id=row.order_id,
        state=OrderState(row.state),
        user_id=row.user_id,
        tier=row.tier,
        detail=row.detail,
        updated_at=row.updated_at,
    )


class OrderLedger:
    """Terminal order outcomes kept for manual reconciliation."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def record(self, order: Order, detail: Optional[str] = None) -> None:
        db = self.session_factory()
        try:
            row = db.get(LedgerEntryRow, order.order_id)
            if row is None:
                row = LedgerEntryRow(order_id=order.order_id)
                db.add(row)
            row.state = order.state.value
            row.user_id = order.user_id
            row.tier = order.tier.value if order.tier else None
            row.detail = detail
            row.updated_at = utcnow()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get(self, order_id: str) -> Optional[LedgerEntry]:
        db = self.session_factory()
        try:
            row = db.get(LedgerEntryRow, order_id)
            return _entry(row) if row else None
        finally:
            db.close()

    def unreconciled(self) -> List[LedgerEntry]:
        db = self.session_factory()
        try:
            rows = (
                db.query(LedgerEntryRow)
                .filter_by(state=OrderState.CAPTURED_UNRECORDED.value)
                .order_by(LedgerEntryRow.updated_at)
                .all()
            )
            return [_entry(r) for r in rows]
        finally:
            db.close()
