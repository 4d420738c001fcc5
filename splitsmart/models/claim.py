"""
Claims: many-to-many between items and participants with a share weight.
"""
import uuid

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from splitsmart.database import Base, utcnow


class ClaimModel(Base):
    __tablename__ = "claims"
    __table_args__ = (
        UniqueConstraint("item_id", "participant_id", name="uq_claim_item_participant"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    item_id = Column(String, ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_id = Column(String, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(String, nullable=False, index=True)  # copy of item.session_id, for change filters
    share = Column(Float, nullable=False, default=1.0)
    created_at = Column(DateTime, default=utcnow)

    item = relationship("ItemModel", back_populates="claims")


class ClaimToggleModel(Base):
    """Last accepted toggle sequence number per (item, participant)."""
    __tablename__ = "claim_toggles"

    item_id = Column(String, ForeignKey("items.id", ondelete="CASCADE"), primary_key=True)
    participant_id = Column(String, primary_key=True)
    last_seq = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
