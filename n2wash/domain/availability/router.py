"""Availability router - working hours, breaks, closed days and free slots"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_instance_role
from ...database import get_db
from ...models import User
from .schemas import (
    AvailabilityBlock,
    BreakCreate,
    BreakResponse,
    ClosedDayCreate,
    ClosedDayResponse,
    FreeSlot,
    WorkingHours,
)
from .service import AvailabilityService

router = APIRouter(prefix="/instances/{instance_id}", tags=["Availability"])

staff = require_instance_role("admin", "employee")
admin_only = require_instance_role("admin")


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db)


@router.get("/working-hours")
async def get_working_hours(
    instance_id: int,
    current_user: User = Depends(staff),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.get_working_hours(instance_id)


@router.put("/working-hours")
async def update_working_hours(
    instance_id: int,
    data: WorkingHours,
    current_user: User = Depends(admin_only),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Replace the weekly opening hours; returns the stored value"""
    return service.set_working_hours(instance_id, data)


@router.get("/breaks", response_model=list[BreakResponse])
async def list_breaks(
    instance_id: int,
    date_from: date = Query(..., alias="from"),
    date_to: date = Query(..., alias="to"),
    current_user: User = Depends(staff),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.list_breaks(instance_id, date_from, date_to)


@router.post("/breaks", response_model=BreakResponse, status_code=201)
async def create_break(
    instance_id: int,
    data: BreakCreate,
    current_user: User = Depends(staff),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.create_break(instance_id, data)


@router.delete("/breaks/{break_id}")
async def delete_break(
    instance_id: int,
    break_id: int,
    current_user: User = Depends(staff),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.delete_break(instance_id, break_id)


@router.get("/closed-days", response_model=list[ClosedDayResponse])
async def list_closed_days(
    instance_id: int,
    date_from: Optional[date] = Query(None, alias="from"),
    current_user: User = Depends(staff),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.list_closed_days(instance_id, date_from)


@router.post("/closed-days", response_model=ClosedDayResponse, status_code=201)
async def create_closed_day(
    instance_id: int,
    data: ClosedDayCreate,
    current_user: User = Depends(admin_only),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.create_closed_day(instance_id, data)


@router.delete("/closed-days/{closed_day_id}")
async def delete_closed_day(
    instance_id: int,
    closed_day_id: int,
    current_user: User = Depends(admin_only),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.delete_closed_day(instance_id, closed_day_id)


@router.get("/availability", response_model=list[AvailabilityBlock])
async def get_availability_blocks(
    instance_id: int,
    date_from: date = Query(..., alias="from"),
    date_to: date = Query(..., alias="to"),
    current_user: User = Depends(staff),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.get_availability_blocks(instance_id, date_from, date_to)


@router.get("/free-slots", response_model=list[FreeSlot])
async def get_free_slots(
    instance_id: int,
    day: date = Query(..., alias="date"),
    duration: int = Query(..., gt=0),
    station_id: Optional[int] = Query(None, alias="stationId"),
    current_user: User = Depends(staff),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.get_free_slots(instance_id, day, duration, station_id)
