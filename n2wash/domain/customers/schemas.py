"""Customer domain schemas"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import require_text, validate_email, validate_phone


class CustomerCreate(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return require_text(v, "name")

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_phone(require_text(v, "phone"))

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return validate_email(v)


class CustomerUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if v is not None:
            return require_text(v, "name")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v is not None:
            return validate_phone(require_text(v, "phone"))
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return validate_email(v)


class CustomerResponse(BaseModel):
    id: int
    instance_id: int
    name: str
    phone: str
    email: Optional[str] = None
    phone_verified: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CustomerVisit(BaseModel):
    """Past or upcoming reservation made with the customer's phone"""

    id: int
    reservation_date: date
    start_time: str
    end_time: str
    status: str
    vehicle_plate: str
    price: Optional[float] = None

    class Config:
        from_attributes = True


class CustomerDetail(CustomerResponse):
    visits: list[CustomerVisit] = []
