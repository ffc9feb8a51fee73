"""Public booking schemas - what the customer-facing booking page sends"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import CAR_SIZES
from ...shared.validators import require_text, validate_email, validate_phone, validate_time


class BookingData(BaseModel):
    """Reservation draft kept with the verification code until the phone is confirmed"""

    serviceIds: list[int]
    date: date
    time: str
    customerName: str
    customerEmail: Optional[str] = None
    carSize: Optional[str] = None
    stationId: Optional[int] = None
    vehiclePlate: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("serviceIds")
    @classmethod
    def validate_services(cls, v):
        if not v:
            raise ValueError("Select at least one service")
        return v

    @field_validator("time")
    @classmethod
    def validate_start(cls, v):
        return validate_time(require_text(v, "time"))

    @field_validator("customerName")
    @classmethod
    def validate_name(cls, v):
        return require_text(v, "customerName")

    @field_validator("customerEmail")
    @classmethod
    def validate_email(cls, v):
        return validate_email(v)

    @field_validator("carSize")
    @classmethod
    def validate_car_size(cls, v):
        if v is not None and v not in CAR_SIZES:
            raise ValueError(f"carSize must be one of {', '.join(CAR_SIZES)}")
        return v


class SmsCodeRequest(BaseModel):
    phone: str
    reservationData: BookingData

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_phone(require_text(v, "phone"))


class VerifyCodeRequest(BaseModel):
    phone: str
    code: str

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_phone(require_text(v, "phone"))

    @field_validator("code")
    @classmethod
    def validate_code(cls, v):
        return require_text(v, "code")


class ChangeRequest(BaseModel):
    """Customer's proposed new slot for an existing reservation"""

    date: date
    time: str
    serviceIds: Optional[list[int]] = None
    carSize: Optional[str] = None
    stationId: Optional[int] = None
    note: Optional[str] = None

    @field_validator("time")
    @classmethod
    def validate_start(cls, v):
        return validate_time(require_text(v, "time"))

    @field_validator("carSize")
    @classmethod
    def validate_car_size(cls, v):
        if v is not None and v not in CAR_SIZES:
            raise ValueError(f"carSize must be one of {', '.join(CAR_SIZES)}")
        return v
