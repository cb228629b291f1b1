from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict, model_validator

from edb.auth.schemas import UserBrief
from edb.cohorts.models import CohortStatus, FormationType


# ===========================
# COHORTES
# ===========================
class CohortBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=150)
    description: Optional[str] = Field(None, max_length=5000)
    type: FormationType = FormationType.TRADING_BASICS
    start_date: datetime
    end_date: Optional[datetime] = None
    max_students: Optional[int] = Field(None, gt=0)
    price: Optional[float] = Field(None, ge=0)


class CohortCreate(CohortBase):
    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date and self.start_date >= self.end_date:
            raise ValueError("La date de fin doit être après la date de début")
        return self


class CohortUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=150)
    description: Optional[str] = Field(None, max_length=5000)
    type: Optional[FormationType] = None
    status: Optional[CohortStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_students: Optional[int] = Field(None, gt=0)
    price: Optional[float] = Field(None, ge=0)


class CohortBrief(BaseModel):
    id: int
    name: str
    type: FormationType
    status: Optional[CohortStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class CohortMemberOut(BaseModel):
    id: int
    cohort_id: int
    user_id: int
    progress: float
    attendance_count: int = 0
    absence_count: int = 0
    joined_at: datetime
    user: Optional[UserBrief] = None
    model_config = ConfigDict(from_attributes=True)


class MembershipOut(CohortMemberOut):
    cohort: Optional[CohortBrief] = None


class CohortOut(CohortBase):
    id: int
    status: CohortStatus
    created_at: datetime
    updated_at: datetime
    members_count: int = 0
    sessions_count: int = 0
    is_full: bool = False
    members: List[CohortMemberOut] = []
    model_config = ConfigDict(from_attributes=True)


class CohortSessionOut(BaseModel):
    id: int
    user_id: int
    coach_id: Optional[int] = None
    start_date: datetime
    end_date: datetime
    is_free: bool
    status: str
    coach: Optional[UserBrief] = None
    model_config = ConfigDict(from_attributes=True)


class CohortDetail(CohortOut):
    sessions: List[CohortSessionOut] = []


# ===========================
# MEMBRES
# ===========================
class MemberAdd(BaseModel):
    user_id: int


class ProgressUpdate(BaseModel):
    # Valeur bornée à [0, 100] par le service
    progress: float


class CohortStats(BaseModel):
    total: int
    active: int
    completed: int
    draft: int
