"""Service catalog schemas"""

from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import STATION_TYPES
from ...shared.validators import require_text


class ServiceCreate(BaseModel):
    name: str
    shortName: Optional[str] = None
    description: Optional[str] = None
    durationMinutes: int = 60
    priceSmall: Optional[float] = None
    priceMedium: Optional[float] = None
    priceLarge: Optional[float] = None
    priceFrom: Optional[float] = None
    stationType: Optional[str] = None
    sortOrder: Optional[int] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return require_text(v, "name")

    @field_validator("durationMinutes")
    @classmethod
    def validate_duration(cls, v):
        if v <= 0:
            raise ValueError("Duration must be positive")
        return v

    @field_validator("stationType")
    @classmethod
    def validate_station_type(cls, v):
        if v is not None and v not in STATION_TYPES:
            raise ValueError("Unknown station type")
        return v


class ServiceUpdate(BaseModel):
    name: Optional[str] = None
    shortName: Optional[str] = None
    description: Optional[str] = None
    durationMinutes: Optional[int] = None
    priceSmall: Optional[float] = None
    priceMedium: Optional[float] = None
    priceLarge: Optional[float] = None
    priceFrom: Optional[float] = None
    stationType: Optional[str] = None
    active: Optional[bool] = None
    sortOrder: Optional[int] = None

    @field_validator("durationMinutes")
    @classmethod
    def validate_duration(cls, v):
        if v is not None and v <= 0:
            raise ValueError("Duration must be positive")
        return v


class ServiceResponse(BaseModel):
    id: int
    name: str
    short_name: Optional[str] = None
    description: Optional[str] = None
    duration_minutes: int
    price_small: Optional[float] = None
    price_medium: Optional[float] = None
    price_large: Optional[float] = None
    price_from: Optional[float] = None
    station_type: Optional[str] = None
    active: bool
    sort_order: Optional[int] = None

    class Config:
        from_attributes = True
