"""Station router"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_instance_role
from ...database import get_db
from ...models import User
from .schemas import StationCreate, StationResponse, StationUpdate
from .service import StationService

router = APIRouter(prefix="/instances/{instance_id}/stations", tags=["Stations"])


def get_station_service(db: Session = Depends(get_db)) -> StationService:
    """Dependency injection for StationService"""
    return StationService(db)


@router.get("", response_model=list[StationResponse])
async def list_stations(
    instance_id: int,
    active_only: bool = Query(False, alias="activeOnly"),
    current_user: User = Depends(require_instance_role("admin", "employee", "hall")),
    service: StationService = Depends(get_station_service),
):
    return service.get_stations(instance_id, active_only)


@router.post("", response_model=StationResponse, status_code=201)
async def create_station(
    instance_id: int,
    data: StationCreate,
    current_user: User = Depends(require_instance_role("admin")),
    service: StationService = Depends(get_station_service),
):
    return service.create_station(instance_id, data)


@router.put("/{station_id}", response_model=StationResponse)
async def update_station(
    instance_id: int,
    station_id: int,
    data: StationUpdate,
    current_user: User = Depends(require_instance_role("admin")),
    service: StationService = Depends(get_station_service),
):
    return service.update_station(instance_id, station_id, data)


@router.delete("/{station_id}")
async def delete_station(
    instance_id: int,
    station_id: int,
    current_user: User = Depends(require_instance_role("admin")),
    service: StationService = Depends(get_station_service),
):
    return service.delete_station(instance_id, station_id)
