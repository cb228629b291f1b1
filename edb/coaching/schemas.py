from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict, model_validator

from edb.auth.schemas import UserBrief
from edb.coaching.models import CoachingStatus
from edb.cohorts.schemas import CohortBrief


class CoachingSessionCreate(BaseModel):
    user_id: int
    coach_id: Optional[int] = None
    cohort_id: Optional[int] = None
    start_date: datetime
    end_date: datetime
    is_free: bool = False
    notes: Optional[str] = Field(None, max_length=5000)

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date >= self.end_date:
            raise ValueError("La date de fin doit être après la date de début")
        return self


class CoachingSessionUpdate(BaseModel):
    coach_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_free: Optional[bool] = None
    status: Optional[CoachingStatus] = None
    notes: Optional[str] = Field(None, max_length=5000)


class AssignCoach(BaseModel):
    coach_id: int


class FeedbackUpdate(BaseModel):
    feedback: str = Field(..., min_length=1, max_length=5000)


class CoachingStatusUpdate(BaseModel):
    status: CoachingStatus


class CoachingSessionOut(BaseModel):
    id: int
    user_id: int
    coach_id: Optional[int] = None
    cohort_id: Optional[int] = None
    start_date: datetime
    end_date: datetime
    is_free: bool
    status: CoachingStatus
    feedback_from_coach: Optional[str] = None
    feedback_from_user: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    user: Optional[UserBrief] = None
    coach: Optional[UserBrief] = None
    cohort: Optional[CohortBrief] = None
    model_config = ConfigDict(from_attributes=True)
