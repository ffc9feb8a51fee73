"""Reservation domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import CAR_SIZES, RESERVATION_STATUSES
from ...shared.validators import require_text, validate_email, validate_phone, validate_time


def _car_size(v):
    if v is not None and v not in CAR_SIZES:
        raise ValueError(f"carSize must be one of {', '.join(CAR_SIZES)}")
    return v


class ReservationCreate(BaseModel):
    """Schema for creating a reservation from the admin calendar"""

    stationId: int
    serviceIds: list[int] = []
    customerName: str
    customerPhone: str
    customerEmail: Optional[str] = None
    vehiclePlate: str
    carSize: Optional[str] = None
    reservationDate: date
    endDate: Optional[date] = None
    startTime: str
    endTime: Optional[str] = None  # Computed from service durations when omitted
    price: Optional[float] = None
    adminNotes: Optional[str] = None
    customerNotes: Optional[str] = None
    status: Optional[str] = None

    @field_validator("customerName", "vehiclePlate")
    @classmethod
    def validate_required(cls, v, info):
        return require_text(v, info.field_name)

    @field_validator("customerPhone")
    @classmethod
    def validate_phone(cls, v):
        return validate_phone(require_text(v, "customerPhone"))

    @field_validator("customerEmail")
    @classmethod
    def validate_email(cls, v):
        return validate_email(v)

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_times(cls, v):
        return validate_time(v)

    @field_validator("carSize")
    @classmethod
    def validate_car_size(cls, v):
        return _car_size(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in ("pending", "confirmed"):
            raise ValueError("New reservations start as pending or confirmed")
        return v


class ReservationUpdate(BaseModel):
    """Schema for editing reservation details"""

    stationId: Optional[int] = None
    serviceIds: Optional[list[int]] = None
    customerName: Optional[str] = None
    customerPhone: Optional[str] = None
    customerEmail: Optional[str] = None
    vehiclePlate: Optional[str] = None
    carSize: Optional[str] = None
    reservationDate: Optional[date] = None
    endDate: Optional[date] = None
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    price: Optional[float] = None
    adminNotes: Optional[str] = None
    customerNotes: Optional[str] = None

    @field_validator("customerPhone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_phone(v)
        return v

    @field_validator("customerEmail")
    @classmethod
    def validate_email(cls, v):
        return validate_email(v)

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_times(cls, v):
        return validate_time(v)

    @field_validator("carSize")
    @classmethod
    def validate_car_size(cls, v):
        return _car_size(v)


class ReservationMove(BaseModel):
    """Drag-to-move target slot"""

    stationId: int
    reservationDate: date
    startTime: str
    endTime: Optional[str] = None
    endDate: Optional[date] = None

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_times(cls, v):
        return validate_time(v)


class StatusChange(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in RESERVATION_STATUSES:
            raise ValueError("Unknown status")
        return v


class ReservationResponse(BaseModel):
    """Reservation as sent to the calendar and over the realtime feed"""

    id: int
    instance_id: int
    station_id: Optional[int] = None
    service_ids: list[int] = []
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    vehicle_plate: str
    car_size: Optional[str] = None
    reservation_date: date
    end_date: Optional[date] = None
    start_time: str
    end_time: str
    status: str
    confirmation_code: str
    price: Optional[float] = None
    source: str
    admin_notes: Optional[str] = None
    customer_notes: Optional[str] = None
    created_by_username: Optional[str] = None
    original_reservation_id: Optional[int] = None
    change_request_note: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    released_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    no_show_at: Optional[datetime] = None
    confirmation_sms_sent_at: Optional[datetime] = None
    pickup_sms_sent_at: Optional[datetime] = None
    photo_urls: Optional[list[str]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("service_ids", mode="before")
    @classmethod
    def default_service_ids(cls, v):
        return v or []

    class Config:
        from_attributes = True


def to_record(reservation) -> dict:
    """JSON-ready dict for realtime messages"""
    return ReservationResponse.model_validate(reservation).model_dump(mode="json")
