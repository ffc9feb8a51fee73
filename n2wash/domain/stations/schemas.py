"""Station domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import STATION_TYPES
from ...shared.validators import require_text, validate_color


def _station_type(v):
    if v is not None and v not in STATION_TYPES:
        raise ValueError(f"type must be one of {', '.join(STATION_TYPES)}")
    return v


class StationCreate(BaseModel):
    name: str
    type: str = "universal"
    color: Optional[str] = None
    sortOrder: Optional[int] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return require_text(v, "name")

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _station_type(v)

    @field_validator("color")
    @classmethod
    def validate_color(cls, v):
        return validate_color(v)


class StationUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    color: Optional[str] = None
    active: Optional[bool] = None
    sortOrder: Optional[int] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if v is not None:
            return require_text(v, "name")
        return v

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _station_type(v)

    @field_validator("color")
    @classmethod
    def validate_color(cls, v):
        return validate_color(v)


class StationResponse(BaseModel):
    id: int
    instance_id: int
    name: str
    type: str
    color: Optional[str] = None
    active: bool
    sort_order: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
