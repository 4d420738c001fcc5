"""
Participants: client-held opaque ids, optional display name, no auth.
"""
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from splitsmart.database import Base, utcnow


class ParticipantModel(Base):
    __tablename__ = "participants"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, index=True)
    paid = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)

    session = relationship("SessionModel", back_populates="participants")
