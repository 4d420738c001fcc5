"""
Payment records and the host credit ledger.
"""
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from splitsmart.database import Base, utcnow


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String, ForeignKey("sessions.id"), nullable=False, index=True)
    participant_id = Column(String, ForeignKey("participants.id"), index=True)
    host_id = Column(String, ForeignKey("hosts.id"))
    amount_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String(8), nullable=False, default="USD")
    status = Column(String, nullable=False, default="pending")  # pending | paid | failed
    checkout_url = Column(Text)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class HostLedgerEntryModel(Base):
    __tablename__ = "host_ledger_entries"
    __table_args__ = (
        UniqueConstraint("payment_id", "type", name="uq_ledger_payment_type"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    host_id = Column(String, ForeignKey("hosts.id"), nullable=False, index=True)
    type = Column(String, nullable=False)  # host_credit
    amount_cents = Column(Integer, nullable=False)
    payment_id = Column(String, ForeignKey("payments.id"), nullable=False)
    notes = Column(String)
    created_at = Column(DateTime, default=utcnow)
