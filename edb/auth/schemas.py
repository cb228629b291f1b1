import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator

from edb.auth.models import UserRole, UserStatus

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")


def validate_password_strength(v: str) -> str:
    if len(v) < 8:
        raise ValueError("Le mot de passe doit contenir au moins 8 caractères")
    if not re.search(r"[A-Z]", v) or not re.search(r"[a-z]", v) or not re.search(r"[\d\W]", v):
        raise ValueError("Le mot de passe doit contenir au moins 1 majuscule, 1 minuscule et 1 chiffre")
    return v


def validate_phone(v: Optional[str]) -> Optional[str]:
    if v is None or v == "":
        return None
    v = v.replace(" ", "").replace("-", "")
    if not PHONE_PATTERN.match(v):
        raise ValueError("Numéro de téléphone invalide")
    return v


class UserRegister(BaseModel):
    email: EmailStr
    password: str
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    phone: Optional[str] = None
    role: Optional[UserRole] = None

    @field_validator("password")
    @classmethod
    def password_strength(cls, v):
        return validate_password_strength(v)

    @field_validator("phone")
    @classmethod
    def phone_format(cls, v):
        return validate_phone(v)


class UserLogin(BaseModel):
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def password_required(cls, v):
        if not v:
            raise ValueError("Mot de passe requis")
        return v


class RefreshRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class UserOut(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: UserRole
    status: UserStatus
    avatar: Optional[str] = None
    bio: Optional[str] = None
    email_verified: bool = False
    phone_verified: bool = False
    email_notifications: bool = True
    sms_notifications: bool = True
    created_at: datetime
    updated_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class UserBrief(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: Optional[UserRole] = None
    avatar: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginResponse(TokenPair):
    user: UserOut


class RegisterResponse(BaseModel):
    message: str
    user: UserOut


class MessageResponse(BaseModel):
    message: str
