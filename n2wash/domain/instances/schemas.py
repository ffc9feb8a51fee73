"""Instance (tenant) schemas - super admin console and instance settings"""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, field_validator

from ...security import MIN_PASSWORD_LENGTH
from ...shared.validators import require_text, validate_color, validate_email, validate_phone, validate_slug
from ...tenancy import RESERVED_LABELS


def _timezone(v):
    if v is None:
        return v
    try:
        ZoneInfo(v)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError("Unknown timezone") from e
    return v


def _non_negative(v):
    if v is not None and v < 0:
        raise ValueError("Value cannot be negative")
    return v


class InitialAdmin(BaseModel):
    username: str
    password: str
    email: Optional[str] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v):
        return require_text(v, "username").lower()

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return validate_email(v)


class InstanceCreate(BaseModel):
    name: str
    slug: str
    shortName: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    timezone: str = "Europe/Warsaw"
    smsLimit: int = 100
    planId: Optional[int] = None
    stationLimit: Optional[int] = None
    admin: Optional[InitialAdmin] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return require_text(v, "name")

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v):
        v = validate_slug(require_text(v, "slug"))
        if v in RESERVED_LABELS:
            raise ValueError("This slug is reserved")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return validate_email(v)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v):
        return _timezone(v)

    @field_validator("smsLimit", "stationLimit")
    @classmethod
    def validate_limits(cls, v):
        return _non_negative(v)


class InstanceUpdate(BaseModel):
    """Super admin edit: identity, quota and activation"""

    name: Optional[str] = None
    slug: Optional[str] = None
    active: Optional[bool] = None
    smsLimit: Optional[int] = None

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v):
        if v is None:
            return v
        v = validate_slug(v)
        if v in RESERVED_LABELS:
            raise ValueError("This slug is reserved")
        return v

    @field_validator("smsLimit")
    @classmethod
    def validate_limit(cls, v):
        return _non_negative(v)


class InstanceSettingsUpdate(BaseModel):
    """Settings an instance admin may change"""

    name: Optional[str] = None
    shortName: Optional[str] = None
    phone: Optional[str] = None
    reservationPhone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    googleMapsUrl: Optional[str] = None
    website: Optional[str] = None
    socialFacebook: Optional[str] = None
    socialInstagram: Optional[str] = None
    primaryColor: Optional[str] = None
    timezone: Optional[str] = None
    autoConfirmReservations: Optional[bool] = None
    bookingDaysAhead: Optional[int] = None
    customerEditCutoffHours: Optional[int] = None

    @field_validator("phone", "reservationPhone")
    @classmethod
    def validate_phone(cls, v):
        return validate_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return validate_email(v)

    @field_validator("primaryColor")
    @classmethod
    def validate_color(cls, v):
        return validate_color(v)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v):
        return _timezone(v)

    @field_validator("bookingDaysAhead")
    @classmethod
    def validate_days_ahead(cls, v):
        if v is not None and not 1 <= v <= 365:
            raise ValueError("bookingDaysAhead must be between 1 and 365")
        return v

    @field_validator("customerEditCutoffHours")
    @classmethod
    def validate_cutoff(cls, v):
        return _non_negative(v)


class InstanceResponse(BaseModel):
    id: int
    name: str
    short_name: Optional[str] = None
    slug: str
    phone: Optional[str] = None
    reservation_phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    google_maps_url: Optional[str] = None
    website: Optional[str] = None
    social_facebook: Optional[str] = None
    social_instagram: Optional[str] = None
    logo_url: Optional[str] = None
    primary_color: Optional[str] = None
    timezone: str
    working_hours: Optional[dict] = None
    auto_confirm_reservations: bool
    booking_days_ahead: int
    customer_edit_cutoff_hours: int
    sms_limit: int
    sms_used: int
    active: bool
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PlanCreate(BaseModel):
    name: str
    slug: str
    description: Optional[str] = None
    basePrice: float = 0
    pricePerStation: float = 0
    smsLimit: int = 100
    includedFeatures: list[str] = []
    sortOrder: int = 0

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return require_text(v, "name")

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v):
        return validate_slug(require_text(v, "slug"))


class PlanResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    base_price: float
    price_per_station: float
    sms_limit: int
    included_features: list[str] = []
    active: bool

    class Config:
        from_attributes = True


class SubscriptionUpdate(BaseModel):
    planId: int
    stationLimit: Optional[int] = None
    monthlyPrice: Optional[float] = None
    status: Optional[str] = None
    isTrial: Optional[bool] = None
    trialExpiresAt: Optional[datetime] = None
    endsAt: Optional[datetime] = None

    @field_validator("stationLimit")
    @classmethod
    def validate_station_limit(cls, v):
        if v is not None and v < 1:
            raise ValueError("stationLimit must be at least 1")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in ("active", "past_due", "cancelled"):
            raise ValueError("status must be active, past_due or cancelled")
        return v


class FeatureToggle(BaseModel):
    enabled: bool
    parameters: Optional[dict] = None
