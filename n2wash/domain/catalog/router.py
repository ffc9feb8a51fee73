"""Service catalog router"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_instance_role
from ...database import get_db
from ...models import User
from .schemas import ServiceCreate, ServiceResponse, ServiceUpdate
from .service import CatalogService

router = APIRouter(prefix="/instances/{instance_id}/services", tags=["Services"])


def get_catalog_service(db: Session = Depends(get_db)) -> CatalogService:
    return CatalogService(db)


@router.get("", response_model=list[ServiceResponse])
async def list_services(
    instance_id: int,
    active_only: bool = Query(False, alias="activeOnly"),
    current_user: User = Depends(require_instance_role("admin", "employee", "hall")),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.list_services(instance_id, active_only)


@router.post("", response_model=ServiceResponse, status_code=201)
async def create_service(
    instance_id: int,
    data: ServiceCreate,
    current_user: User = Depends(require_instance_role("admin")),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.create_service(instance_id, data)


@router.put("/{service_id}", response_model=ServiceResponse)
async def update_service(
    instance_id: int,
    service_id: int,
    data: ServiceUpdate,
    current_user: User = Depends(require_instance_role("admin")),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.update_service(instance_id, service_id, data)


@router.delete("/{service_id}")
async def deactivate_service(
    instance_id: int,
    service_id: int,
    current_user: User = Depends(require_instance_role("admin")),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.deactivate_service(instance_id, service_id)
