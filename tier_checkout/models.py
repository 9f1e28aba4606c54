from sqlalchemy import Column, DateTime, String, Text
from tier_checkout.database import Base


class PaymentRecordRow(Base):
    __tablename__ = "payment_records"

    user_id = Column(String, primary_key=True)     # one record per user, last write wins
    order_id = Column(String, index=True)          # PayPal order id
    tier = Column(String)
    completed_at = Column(DateTime(timezone=True))


class LedgerEntryRow(Base):
    __tablename__ = "order_ledger"

    order_id = Column(String, primary_key=True)
    state = Column(String, index=True)             # captured | failed | cancelled | captured_unrecorded
    user_id = Column(String, nullable=True)
    tier = Column(String, nullable=True)
    detail = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True))
