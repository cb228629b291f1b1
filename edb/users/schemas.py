from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from edb.auth.models import UserRole, UserStatus
from edb.auth.schemas import UserOut, validate_password_strength, validate_phone


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    phone: Optional[str] = None
    role: UserRole = UserRole.APPRENANT
    bio: Optional[str] = None

    @field_validator("password")
    @classmethod
    def password_strength(cls, v):
        return validate_password_strength(v)

    @field_validator("phone")
    @classmethod
    def phone_format(cls, v):
        return validate_phone(v)


class ProfileUpdate(BaseModel):
    """Champs modifiables par l'utilisateur lui-même."""
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = None
    bio: Optional[str] = None
    avatar: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def phone_format(cls, v):
        return validate_phone(v)


class UserUpdate(ProfileUpdate):
    """Champs modifiables par un administrateur."""
    password: Optional[str] = None
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    email_verified: Optional[bool] = None
    phone_verified: Optional[bool] = None

    @field_validator("password")
    @classmethod
    def password_strength(cls, v):
        if v is None:
            return v
        return validate_password_strength(v)


class StatusUpdate(BaseModel):
    status: UserStatus


class PasswordChange(BaseModel):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, v):
        return validate_password_strength(v)


class NotificationSettings(BaseModel):
    email_notifications: Optional[bool] = None
    sms_notifications: Optional[bool] = None


class NotesUpdate(BaseModel):
    notes: Optional[str] = Field(None, max_length=5000)


class AttendanceRecord(BaseModel):
    present: bool
    cohort_id: Optional[int] = None


class UserDetail(UserOut):
    notes: Optional[str] = None
