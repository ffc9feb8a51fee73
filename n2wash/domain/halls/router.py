from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_instance_role
from ...database import get_db
from ...models import User
from .schemas import HallAction, HallCreate, HallResponse, HallUpdate
from .service import HallService

router = APIRouter(prefix="/instances/{instance_id}/halls", tags=["Halls"])

admin_only = require_instance_role("admin")
hall_users = require_instance_role("admin", "employee", "hall")


def get_hall_service(db: Session = Depends(get_db)) -> HallService:
    return HallService(db)


@router.get("", response_model=list[HallResponse])
async def list_halls(
    instance_id: int,
    current_user: User = Depends(hall_users),
    service: HallService = Depends(get_hall_service),
):
    return service.list_halls(instance_id)


@router.post("", response_model=HallResponse, status_code=201)
async def create_hall(
    instance_id: int,
    data: HallCreate,
    current_user: User = Depends(admin_only),
    service: HallService = Depends(get_hall_service),
):
    return service.create_hall(instance_id, data)


@router.get("/{hall_id}", response_model=HallResponse)
async def get_hall(
    instance_id: int,
    hall_id: int,
    current_user: User = Depends(hall_users),
    service: HallService = Depends(get_hall_service),
):
    hall = service.get_hall(instance_id, hall_id)
    service.check_access(current_user, hall)
    return hall


@router.put("/{hall_id}", response_model=HallResponse)
async def update_hall(
    instance_id: int,
    hall_id: int,
    data: HallUpdate,
    current_user: User = Depends(admin_only),
    service: HallService = Depends(get_hall_service),
):
    return service.update_hall(instance_id, hall_id, data)


@router.delete("/{hall_id}")
async def delete_hall(
    instance_id: int,
    hall_id: int,
    current_user: User = Depends(admin_only),
    service: HallService = Depends(get_hall_service),
):
    return service.delete_hall(instance_id, hall_id)


@router.get("/{hall_id}/board")
async def get_board(
    instance_id: int,
    hall_id: int,
    day: date = Query(..., alias="date"),
    current_user: User = Depends(hall_users),
    service: HallService = Depends(get_hall_service),
):
    """Kiosk view of the hall's stations for one day"""
    service.check_access(current_user, service.get_hall(instance_id, hall_id))
    return service.get_board(instance_id, hall_id, day)


@router.post("/{hall_id}/reservations/{reservation_id}/action")
async def perform_action(
    instance_id: int,
    hall_id: int,
    reservation_id: int,
    data: HallAction,
    current_user: User = Depends(hall_users),
    service: HallService = Depends(get_hall_service),
):
    service.check_access(current_user, service.get_hall(instance_id, hall_id))
    return service.perform_action(instance_id, hall_id, reservation_id, data, current_user)
