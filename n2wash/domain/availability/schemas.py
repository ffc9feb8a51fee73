"""Availability schemas - working hours, breaks and closed days"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ...shared.validators import validate_time


class DayHours(BaseModel):
    open: str
    close: str

    @field_validator("open", "close")
    @classmethod
    def validate_times(cls, v):
        return validate_time(v)

    @model_validator(mode="after")
    def check_order(self):
        if self.open >= self.close:
            raise ValueError("Opening time must be before closing time")
        return self


class WorkingHours(BaseModel):
    """Per-day opening hours; null means closed"""

    monday: Optional[DayHours] = None
    tuesday: Optional[DayHours] = None
    wednesday: Optional[DayHours] = None
    thursday: Optional[DayHours] = None
    friday: Optional[DayHours] = None
    saturday: Optional[DayHours] = None
    sunday: Optional[DayHours] = None

    model_config = {"extra": "forbid"}


class BreakCreate(BaseModel):
    stationId: int
    breakDate: date
    startTime: str
    endTime: str
    note: Optional[str] = None

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_times(cls, v):
        return validate_time(v)

    @model_validator(mode="after")
    def check_order(self):
        if self.startTime >= self.endTime:
            raise ValueError("Break must end after it starts")
        return self


class BreakResponse(BaseModel):
    id: int
    station_id: int
    break_date: date
    start_time: str
    end_time: str
    note: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ClosedDayCreate(BaseModel):
    closedDate: date
    reason: Optional[str] = None


class ClosedDayResponse(BaseModel):
    id: int
    closed_date: date
    reason: Optional[str] = None

    class Config:
        from_attributes = True


class AvailabilityBlock(BaseModel):
    """Occupied span on a station, without customer data"""

    stationId: int
    day: date
    endDate: Optional[date] = None
    startTime: str
    endTime: str
    kind: str  # reservation, break


class FreeSlot(BaseModel):
    time: str
    stationIds: list[int]
