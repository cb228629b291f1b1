import json
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Float, ForeignKey
from sqlalchemy.orm import relationship

from edb.db.session import Base
from edb.utils.dates import utcnow


class SubscriptionType(str, Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    SEMIANNUAL = "SEMIANNUAL"
    YEARLY = "YEARLY"


class SubscriptionStatus(str, Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


# Durée d'une période de facturation, en mois
SUBSCRIPTION_PERIOD_MONTHS = {
    SubscriptionType.MONTHLY.value: 1,
    SubscriptionType.QUARTERLY.value: 3,
    SubscriptionType.SEMIANNUAL.value: 6,
    SubscriptionType.YEARLY.value: 12,
}


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)
    type = Column(String(20), nullable=False, index=True)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)
    currency = Column(String(10), default="XOF", nullable=False)
    duration_months = Column(Integer, nullable=False)
    features_json = Column("features", Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    subscriptions = relationship("Subscription", back_populates="plan")

    def __repr__(self):
        return f"<SubscriptionPlan(id={self.id}, name='{self.name}', price={self.price})>"

    @property
    def features(self):
        return json.loads(self.features_json) if self.features_json else []

    @features.setter
    def features(self, value):
        self.features_json = json.dumps(list(value or []))


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=True, index=True)
    type = Column(String(20), nullable=False)
    price = Column(Float, nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False, index=True)
    status = Column(String(20), default=SubscriptionStatus.PENDING_PAYMENT.value, nullable=False, index=True)
    auto_renew = Column(Boolean, default=False, nullable=False)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    last_reminder_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="subscriptions")
    plan = relationship("SubscriptionPlan", back_populates="subscriptions")
    payments = relationship("Payment", back_populates="subscription", order_by="Payment.created_at.desc()")

    def __repr__(self):
        return f"<Subscription(id={self.id}, user_id={self.user_id}, type='{self.type}', status='{self.status}')>"

    @property
    def period_months(self):
        return SUBSCRIPTION_PERIOD_MONTHS[self.type]
