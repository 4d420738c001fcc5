"""
Session and host tables.
"""
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from splitsmart.database import Base, utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


class HostModel(Base):
    """Owner of a session; receives ledger credits for payments."""
    __tablename__ = "hosts"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String)
    email = Column(String)
    created_at = Column(DateTime, default=utcnow)


class SessionModel(Base):
    """One shared receipt-splitting group, addressed by a short join code."""
    __tablename__ = "sessions"

    id = Column(String, primary_key=True, default=_uuid)
    code = Column(String(16), nullable=False, unique=True, index=True)
    host_id = Column(String, ForeignKey("hosts.id"))
    currency = Column(String(8))  # raw hint; normalized on read

    subtotal_cents = Column(Integer, nullable=False, default=0)
    tax_cents = Column(Integer, nullable=False, default=0)
    tip_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    items = relationship(
        "ItemModel",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ItemModel.position",
    )
    participants = relationship(
        "ParticipantModel",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ParticipantModel.created_at",
    )
