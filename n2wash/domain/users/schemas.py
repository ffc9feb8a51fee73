from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...security import MIN_PASSWORD_LENGTH
from ...shared.validators import require_text, validate_email

MANAGED_ROLES = ("admin", "employee", "hall")


def _password(v):
    if v is None or len(v) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return v


def _role(v):
    if v is not None and v not in MANAGED_ROLES:
        raise ValueError(f"role must be one of {', '.join(MANAGED_ROLES)}")
    return v


class InstanceUserCreate(BaseModel):
    username: str
    password: str
    role: str
    email: Optional[str] = None
    fullName: Optional[str] = None
    hallId: Optional[int] = None  # Only for the hall role

    @field_validator("username")
    @classmethod
    def validate_username(cls, v):
        return require_text(v, "username").lower()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return _password(v)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        return _role(require_text(v, "role"))

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return validate_email(v)


class InstanceUserUpdate(BaseModel):
    username: Optional[str] = None
    role: Optional[str] = None
    email: Optional[str] = None
    fullName: Optional[str] = None
    hallId: Optional[int] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v):
        if v is None:
            return v
        return require_text(v, "username").lower()

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        return _role(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return validate_email(v)


class PasswordReset(BaseModel):
    password: str

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        return _password(v)


class InstanceUserResponse(BaseModel):
    id: int
    username: str
    email: Optional[str] = None
    fullName: Optional[str] = None
    role: Optional[str] = None
    hallId: Optional[int] = None
    isBlocked: bool
    lastLoginAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None
