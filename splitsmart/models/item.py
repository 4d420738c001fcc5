"""
Receipt line items.
"""
import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from splitsmart.database import Base, utcnow


class ItemModel(Base):
    __tablename__ = "items"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)  # receipt order
    name = Column(String, nullable=False)
    quantity = Column(Float, nullable=False, default=1.0)
    unit_price_cents = Column(Integer, nullable=False, default=0)
    total_cents = Column(Integer, nullable=False, default=0)
    tax_included = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)

    session = relationship("SessionModel", back_populates="items")
    claims = relationship("ClaimModel", back_populates="item", cascade="all, delete-orphan")
    toggles = relationship("ClaimToggleModel", cascade="all, delete-orphan")
