from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Text, Float, ForeignKey
from sqlalchemy.orm import relationship

from edb.db.session import Base
from edb.utils.dates import utcnow


class PaymentMethod(str, Enum):
    CINETPAY = "CINETPAY"
    ORANGE_MONEY = "ORANGE_MONEY"
    WAVE = "WAVE"
    BANK_TRANSFER = "BANK_TRANSFER"
    CASH = "CASH"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


# Méthodes passant par un prestataire en ligne
ONLINE_METHODS = {PaymentMethod.CINETPAY.value, PaymentMethod.ORANGE_MONEY.value, PaymentMethod.WAVE.value}


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(10), default="XOF", nullable=False)
    method = Column(String(20), nullable=False, index=True)
    status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False, index=True)
    provider_reference = Column(String(255), nullable=True, index=True)
    payment_url = Column(String(1000), nullable=True)
    failure_reason = Column(Text, nullable=True)
    paid_at = Column(DateTime, nullable=True, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="payments")
    subscription = relationship("Subscription", back_populates="payments")

    def __repr__(self):
        return f"<Payment(id={self.id}, amount={self.amount}, method='{self.method}', status='{self.status}')>"
