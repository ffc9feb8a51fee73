"""Reservation router - FastAPI endpoints for the admin calendar"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import require_instance_role
from ...database import get_db
from ...models import User
from .history import Actor
from .schemas import ReservationCreate, ReservationMove, ReservationResponse, ReservationUpdate, StatusChange
from .service import ReservationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/instances/{instance_id}/reservations", tags=["Reservations"])

staff = require_instance_role("admin", "employee")
admin_only = require_instance_role("admin")


def get_reservation_service(db: Session = Depends(get_db)) -> ReservationService:
    """Dependency injection for ReservationService"""
    return ReservationService(db)


@router.get("", response_model=list[ReservationResponse])
async def list_reservations(
    instance_id: int,
    date_from: date = Query(..., alias="from"),
    date_to: date = Query(..., alias="to"),
    station_id: Optional[int] = Query(None, alias="stationId"),
    current_user: User = Depends(staff),
    service: ReservationService = Depends(get_reservation_service),
):
    """Reservations touching the date range, optionally for one station"""
    return service.list_reservations(instance_id, date_from, date_to, station_id)


@router.post("", response_model=ReservationResponse, status_code=201)
async def create_reservation(
    instance_id: int,
    data: ReservationCreate,
    current_user: User = Depends(staff),
    service: ReservationService = Depends(get_reservation_service),
):
    return service.create_reservation(instance_id, data, Actor.from_user(current_user))


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    instance_id: int,
    reservation_id: int,
    current_user: User = Depends(staff),
    service: ReservationService = Depends(get_reservation_service),
):
    return service.get_reservation(instance_id, reservation_id)


@router.put("/{reservation_id}", response_model=ReservationResponse)
async def update_reservation(
    instance_id: int,
    reservation_id: int,
    data: ReservationUpdate,
    current_user: User = Depends(staff),
    service: ReservationService = Depends(get_reservation_service),
):
    return service.update_reservation(instance_id, reservation_id, data, Actor.from_user(current_user))


@router.post("/{reservation_id}/move", response_model=ReservationResponse)
async def move_reservation(
    instance_id: int,
    reservation_id: int,
    data: ReservationMove,
    current_user: User = Depends(staff),
    service: ReservationService = Depends(get_reservation_service),
):
    """Drag-to-move on the calendar"""
    return service.move_reservation(instance_id, reservation_id, data, Actor.from_user(current_user))


@router.post("/{reservation_id}/status", response_model=ReservationResponse)
async def change_status(
    instance_id: int,
    reservation_id: int,
    data: StatusChange,
    current_user: User = Depends(staff),
    service: ReservationService = Depends(get_reservation_service),
):
    return service.change_status(instance_id, reservation_id, data.status, Actor.from_user(current_user))


@router.post("/{reservation_id}/approve-change", response_model=ReservationResponse)
async def approve_change_request(
    instance_id: int,
    reservation_id: int,
    current_user: User = Depends(staff),
    service: ReservationService = Depends(get_reservation_service),
):
    return service.approve_change_request(instance_id, reservation_id, Actor.from_user(current_user))


@router.post("/{reservation_id}/reject-change", response_model=ReservationResponse)
async def reject_change_request(
    instance_id: int,
    reservation_id: int,
    current_user: User = Depends(staff),
    service: ReservationService = Depends(get_reservation_service),
):
    return service.reject_change_request(instance_id, reservation_id, Actor.from_user(current_user))


@router.delete("/{reservation_id}")
async def delete_reservation(
    instance_id: int,
    reservation_id: int,
    current_user: User = Depends(admin_only),
    service: ReservationService = Depends(get_reservation_service),
):
    return service.delete_reservation(instance_id, reservation_id, Actor.from_user(current_user))


@router.get("/{reservation_id}/history")
async def get_reservation_history(
    instance_id: int,
    reservation_id: int,
    current_user: User = Depends(staff),
    service: ReservationService = Depends(get_reservation_service),
):
    """Change history grouped by batch, newest first"""
    return service.get_history(instance_id, reservation_id)


@router.post("/{reservation_id}/send-confirmation-sms")
async def send_confirmation_sms(
    instance_id: int,
    reservation_id: int,
    current_user: User = Depends(staff),
    service: ReservationService = Depends(get_reservation_service),
):
    success, error = await service.send_confirmation_sms(instance_id, reservation_id, Actor.from_user(current_user))
    if not success:
        status_code = 429 if error == "SMS_LIMIT_EXCEEDED" else 502
        raise HTTPException(status_code=status_code, detail=error or "Failed to send SMS")
    return {"success": True}


@router.post("/{reservation_id}/send-pickup-sms")
async def send_pickup_sms(
    instance_id: int,
    reservation_id: int,
    current_user: User = Depends(staff),
    service: ReservationService = Depends(get_reservation_service),
):
    """Notify the customer that the vehicle is ready for pickup"""
    success, error = await service.send_pickup_sms(instance_id, reservation_id, Actor.from_user(current_user))
    if not success:
        status_code = 429 if error == "SMS_LIMIT_EXCEEDED" else 502
        raise HTTPException(status_code=status_code, detail=error or "Failed to send SMS")
    return {"success": True}
