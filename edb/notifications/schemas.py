from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, ConfigDict, model_validator

from edb.auth.models import UserRole
from edb.notifications.models import NotificationStatus, NotificationType


class NotificationOut(BaseModel):
    id: int
    user_id: int
    type: NotificationType
    title: str
    message: str
    data: Optional[Any] = None
    status: NotificationStatus
    attempts: int = 0
    error: Optional[str] = None
    sent_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class NotificationSend(BaseModel):
    user_ids: Optional[List[int]] = None
    role: Optional[UserRole] = None
    channel: NotificationType = NotificationType.IN_APP
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1, max_length=5000)

    @model_validator(mode="after")
    def check_recipients(self):
        if not self.user_ids and not self.role:
            raise ValueError("Indiquez des destinataires (user_ids) ou un rôle")
        return self


class SendResult(BaseModel):
    sent: int
    notification_ids: List[int] = []


class NotificationStats(BaseModel):
    total: int
    by_status: dict
    by_type: dict


class TemplateOut(BaseModel):
    name: str
    title: str
    message: str
