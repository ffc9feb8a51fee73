"""Hall (kiosk view) schemas"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import require_text, validate_slug, validate_time

VISIBLE_FIELD_KEYS = ("customer_name", "customer_phone", "vehicle_plate", "services", "admin_notes")
ACTION_KEYS = ("start", "complete", "release", "change_time", "change_station")

DEFAULT_VISIBLE_FIELDS = {
    "customer_name": True,
    "customer_phone": False,
    "vehicle_plate": True,
    "services": True,
    "admin_notes": False,
}
DEFAULT_ALLOWED_ACTIONS = {
    "start": True,
    "complete": True,
    "release": True,
    "change_time": False,
    "change_station": False,
}


def _check_keys(value: Optional[dict], allowed: tuple, label: str) -> Optional[dict]:
    if value is None:
        return None
    unknown = set(value) - set(allowed)
    if unknown:
        raise ValueError(f"Unknown {label}: {', '.join(sorted(unknown))}")
    return {k: bool(v) for k, v in value.items()}


class HallCreate(BaseModel):
    name: str
    slug: Optional[str] = None  # Generated from the name when omitted
    stationIds: list[int] = []
    visibleFields: Optional[dict] = None
    allowedActions: Optional[dict] = None
    sortOrder: Optional[int] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        return require_text(v, "name")

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v):
        return validate_slug(v)

    @field_validator("visibleFields")
    @classmethod
    def validate_visible_fields(cls, v):
        return _check_keys(v, VISIBLE_FIELD_KEYS, "visible fields")

    @field_validator("allowedActions")
    @classmethod
    def validate_allowed_actions(cls, v):
        return _check_keys(v, ACTION_KEYS, "actions")


class HallUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    stationIds: Optional[list[int]] = None
    visibleFields: Optional[dict] = None
    allowedActions: Optional[dict] = None
    active: Optional[bool] = None
    sortOrder: Optional[int] = None

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v):
        return validate_slug(v)

    @field_validator("visibleFields")
    @classmethod
    def validate_visible_fields(cls, v):
        return _check_keys(v, VISIBLE_FIELD_KEYS, "visible fields")

    @field_validator("allowedActions")
    @classmethod
    def validate_allowed_actions(cls, v):
        return _check_keys(v, ACTION_KEYS, "actions")


class HallResponse(BaseModel):
    id: int
    name: str
    slug: str
    station_ids: list[int] = []
    visible_fields: dict
    allowed_actions: dict
    active: bool
    sort_order: Optional[int] = None
    created_at: Optional[datetime] = None

    @field_validator("visible_fields", mode="before")
    @classmethod
    def default_visible_fields(cls, v):
        return {**DEFAULT_VISIBLE_FIELDS, **(v or {})}

    @field_validator("allowed_actions", mode="before")
    @classmethod
    def default_allowed_actions(cls, v):
        return {**DEFAULT_ALLOWED_ACTIONS, **(v or {})}

    class Config:
        from_attributes = True


class HallAction(BaseModel):
    """Kiosk action on a reservation: a status step or a move"""

    action: str
    stationId: Optional[int] = None
    reservationDate: Optional[date] = None
    startTime: Optional[str] = None

    @field_validator("action")
    @classmethod
    def validate_action(cls, v):
        if v not in ACTION_KEYS:
            raise ValueError(f"action must be one of {', '.join(ACTION_KEYS)}")
        return v

    @field_validator("startTime")
    @classmethod
    def validate_start(cls, v):
        return validate_time(v)
