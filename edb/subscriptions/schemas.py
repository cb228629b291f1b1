from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict, model_validator

from edb.auth.schemas import UserBrief
from edb.subscriptions.models import SubscriptionStatus, SubscriptionType


# ===========================
# PLANS
# ===========================
class PlanCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    type: SubscriptionType
    description: Optional[str] = Field(None, max_length=5000)
    price: float = Field(..., ge=0)
    currency: str = Field("XOF", min_length=3, max_length=10)
    # Par défaut, la durée de la période du type choisi
    duration_months: Optional[int] = Field(None, gt=0, le=120)
    features: List[str] = []
    is_active: bool = True


class PlanUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    type: Optional[SubscriptionType] = None
    description: Optional[str] = Field(None, max_length=5000)
    price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=10)
    duration_months: Optional[int] = Field(None, gt=0, le=120)
    features: Optional[List[str]] = None
    is_active: Optional[bool] = None


class PlanOut(BaseModel):
    id: int
    name: str
    type: SubscriptionType
    description: Optional[str] = None
    price: float
    currency: str
    duration_months: int
    features: List[str] = []
    is_active: bool
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class PlanBrief(BaseModel):
    id: int
    name: str
    type: SubscriptionType
    price: float
    currency: str
    model_config = ConfigDict(from_attributes=True)


class PlanStats(BaseModel):
    total_plans: int
    active_plans: int
    total_subscribers: int
    monthly_revenue: float


# ===========================
# ABONNEMENTS
# ===========================
class SubscriptionCreate(BaseModel):
    plan_id: Optional[int] = None
    type: Optional[SubscriptionType] = None
    price: Optional[float] = Field(None, ge=0)
    # Réservé aux administrateurs : abonnement créé pour un autre utilisateur
    user_id: Optional[int] = None
    auto_renew: bool = False

    @model_validator(mode="after")
    def check_plan_or_type(self):
        if self.plan_id is None and (self.type is None or self.price is None):
            raise ValueError("Indiquez un plan ou bien un type et un prix")
        return self


class SubscriptionUpdate(BaseModel):
    status: Optional[SubscriptionStatus] = None
    auto_renew: Optional[bool] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class SubscriptionOut(BaseModel):
    id: int
    user_id: int
    plan_id: Optional[int] = None
    type: SubscriptionType
    price: float
    start_date: datetime
    end_date: datetime
    status: SubscriptionStatus
    auto_renew: bool
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    user: Optional[UserBrief] = None
    plan: Optional[PlanBrief] = None
    model_config = ConfigDict(from_attributes=True)


class SubscriptionStats(BaseModel):
    total: int
    active: int
    expired: int
    cancelled: int
    pending_payment: int
    total_revenue: float
    monthly_revenue: float
