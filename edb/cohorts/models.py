from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Text, Float, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from edb.db.session import Base
from edb.utils.dates import utcnow


class FormationType(str, Enum):
    TRADING_BASICS = "TRADING_BASICS"
    TRADING_ADVANCED = "TRADING_ADVANCED"
    INVESTMENT = "INVESTMENT"
    CRYPTO = "CRYPTO"
    FOREX = "FOREX"
    OTHER = "OTHER"


class CohortStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Cohort(Base):
    __tablename__ = "cohorts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False, index=True)
    description = Column(Text, nullable=True)
    type = Column(String(30), default=FormationType.TRADING_BASICS.value, nullable=False, index=True)
    status = Column(String(20), default=CohortStatus.DRAFT.value, nullable=False, index=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    max_students = Column(Integer, nullable=True)
    price = Column(Float, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    members = relationship("CohortMember", back_populates="cohort", cascade="all, delete-orphan")
    sessions = relationship("CoachingSession", back_populates="cohort")

    def __repr__(self):
        return f"<Cohort(id={self.id}, name='{self.name}', status='{self.status}')>"

    @property
    def members_count(self):
        return len(self.members)

    @property
    def sessions_count(self):
        return len(self.sessions)

    @property
    def is_full(self):
        if self.max_students is None:
            return False
        return self.members_count >= self.max_students


class CohortMember(Base):
    __tablename__ = "cohort_members"
    __table_args__ = (UniqueConstraint("cohort_id", "user_id", name="uq_cohort_member"),)

    id = Column(Integer, primary_key=True, index=True)
    cohort_id = Column(Integer, ForeignKey("cohorts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    progress = Column(Float, default=0, nullable=False)
    attendance_count = Column(Integer, default=0, nullable=False)
    absence_count = Column(Integer, default=0, nullable=False)
    joined_at = Column(DateTime, default=utcnow, nullable=False)

    cohort = relationship("Cohort", back_populates="members")
    user = relationship("User", back_populates="memberships")

    def __repr__(self):
        return f"<CohortMember(cohort_id={self.cohort_id}, user_id={self.user_id}, progress={self.progress})>"
