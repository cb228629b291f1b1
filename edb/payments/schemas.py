from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from edb.auth.schemas import UserBrief
from edb.payments.models import PaymentMethod, PaymentStatus
from edb.subscriptions.models import SubscriptionStatus, SubscriptionType


class PaymentInitiate(BaseModel):
    subscription_id: int
    # Par défaut, le prix de l'abonnement
    amount: Optional[float] = Field(None, gt=0)
    method: PaymentMethod


class InitiateResponse(BaseModel):
    payment_id: int
    payment_url: str
    amount: float
    method: PaymentMethod
    status: PaymentStatus


class CallbackPayload(BaseModel):
    """Notification envoyée par le prestataire (champs en camelCase ou snake_case)."""
    payment_id: int = Field(..., alias="paymentId")
    provider_reference: Optional[str] = Field(None, alias="providerReference")
    status: str
    message: Optional[str] = None
    model_config = ConfigDict(populate_by_name=True)


class ManualPaymentCreate(BaseModel):
    user_id: int
    subscription_id: Optional[int] = None
    amount: float = Field(..., gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=10)
    method: PaymentMethod = PaymentMethod.CASH
    status: PaymentStatus = PaymentStatus.COMPLETED
    provider_reference: Optional[str] = Field(None, max_length=255)


class PaymentUpdate(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    method: Optional[PaymentMethod] = None
    status: Optional[PaymentStatus] = None
    provider_reference: Optional[str] = Field(None, max_length=255)
    failure_reason: Optional[str] = Field(None, max_length=2000)


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus
    failure_reason: Optional[str] = Field(None, max_length=2000)


class PaymentSubscription(BaseModel):
    id: int
    type: SubscriptionType
    price: float
    status: SubscriptionStatus
    end_date: datetime
    model_config = ConfigDict(from_attributes=True)


class PaymentOut(BaseModel):
    id: int
    user_id: int
    subscription_id: Optional[int] = None
    amount: float
    currency: str
    method: PaymentMethod
    status: PaymentStatus
    provider_reference: Optional[str] = None
    payment_url: Optional[str] = None
    failure_reason: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    user: Optional[UserBrief] = None
    subscription: Optional[PaymentSubscription] = None
    model_config = ConfigDict(from_attributes=True)


class PaymentStats(BaseModel):
    total_revenue: float
    total_payments: int
    completed_payments: int
    pending_payments: int
    failed_payments: int
