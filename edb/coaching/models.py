from enum import Enum

from sqlalchemy import Column, Integer, DateTime, Text, Boolean, String, ForeignKey
from sqlalchemy.orm import relationship

from edb.db.session import Base
from edb.utils.dates import utcnow


class CoachingStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class CoachingSession(Base):
    __tablename__ = "coaching_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    coach_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    cohort_id = Column(Integer, ForeignKey("cohorts.id", ondelete="SET NULL"), nullable=True, index=True)

    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False, index=True)
    is_free = Column(Boolean, default=False, nullable=False)
    status = Column(String(20), default=CoachingStatus.ACTIVE.value, nullable=False, index=True)

    feedback_from_coach = Column(Text, nullable=True)
    feedback_from_user = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    # Date du dernier rappel d'expiration envoyé (évite les doublons)
    last_reminder_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", foreign_keys=[user_id], back_populates="coaching_sessions")
    coach = relationship("User", foreign_keys=[coach_id])
    cohort = relationship("Cohort", back_populates="sessions")

    def __repr__(self):
        return f"<CoachingSession(id={self.id}, user_id={self.user_id}, status='{self.status}')>"
