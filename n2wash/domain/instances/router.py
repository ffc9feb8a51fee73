"""Instance routers - super admin console and per-instance settings"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_instance_role, require_super_admin
from ...database import get_db
from ...models import User
from .schemas import (
    FeatureToggle,
    InstanceCreate,
    InstanceResponse,
    InstanceSettingsUpdate,
    InstanceUpdate,
    PlanCreate,
    PlanResponse,
    SubscriptionUpdate,
)
from .service import InstanceService

admin_router = APIRouter(prefix="/admin", tags=["Super Admin"])
router = APIRouter(prefix="/instances/{instance_id}", tags=["Instance Settings"])


def get_instance_service(db: Session = Depends(get_db)) -> InstanceService:
    return InstanceService(db)


# ----------------------------------------------------------------------
# Super admin
# ----------------------------------------------------------------------


@admin_router.get("/instances")
async def list_instances(
    include_deleted: bool = Query(False, alias="includeDeleted"),
    current_user: User = Depends(require_super_admin),
    service: InstanceService = Depends(get_instance_service),
):
    return service.list_instances(include_deleted)


@admin_router.post("/instances", response_model=InstanceResponse, status_code=201)
async def create_instance(
    data: InstanceCreate,
    current_user: User = Depends(require_super_admin),
    service: InstanceService = Depends(get_instance_service),
):
    return service.create_instance(data)


@admin_router.get("/instances/{instance_id}", response_model=InstanceResponse)
async def get_instance(
    instance_id: int,
    current_user: User = Depends(require_super_admin),
    service: InstanceService = Depends(get_instance_service),
):
    return service.get_instance(instance_id, include_deleted=True)


@admin_router.put("/instances/{instance_id}", response_model=InstanceResponse)
async def update_instance(
    instance_id: int,
    data: InstanceUpdate,
    current_user: User = Depends(require_super_admin),
    service: InstanceService = Depends(get_instance_service),
):
    return service.update_instance(instance_id, data)


@admin_router.delete("/instances/{instance_id}")
async def delete_instance(
    instance_id: int,
    current_user: User = Depends(require_super_admin),
    service: InstanceService = Depends(get_instance_service),
):
    return service.delete_instance(instance_id)


@admin_router.get("/plans", response_model=list[PlanResponse])
async def list_plans(
    current_user: User = Depends(require_super_admin),
    service: InstanceService = Depends(get_instance_service),
):
    return service.list_plans()


@admin_router.post("/plans", response_model=PlanResponse, status_code=201)
async def create_plan(
    data: PlanCreate,
    current_user: User = Depends(require_super_admin),
    service: InstanceService = Depends(get_instance_service),
):
    return service.create_plan(data)


@admin_router.put("/instances/{instance_id}/subscription")
async def set_subscription(
    instance_id: int,
    data: SubscriptionUpdate,
    current_user: User = Depends(require_super_admin),
    service: InstanceService = Depends(get_instance_service),
):
    """Assign a plan and station limit"""
    return service.set_subscription(instance_id, data)


@admin_router.get("/sms-usage")
async def sms_usage(
    current_user: User = Depends(require_super_admin),
    service: InstanceService = Depends(get_instance_service),
):
    return service.sms_usage_all()


@admin_router.post("/instances/{instance_id}/sms-usage/reset")
async def reset_sms_usage(
    instance_id: int,
    current_user: User = Depends(require_super_admin),
    service: InstanceService = Depends(get_instance_service),
):
    return service.reset_sms_usage(instance_id)


@admin_router.get("/instances/{instance_id}/features")
async def list_features(
    instance_id: int,
    current_user: User = Depends(require_super_admin),
    service: InstanceService = Depends(get_instance_service),
):
    return service.list_features(instance_id)


@admin_router.put("/instances/{instance_id}/features/{feature_key}")
async def set_feature(
    instance_id: int,
    feature_key: str,
    data: FeatureToggle,
    current_user: User = Depends(require_super_admin),
    service: InstanceService = Depends(get_instance_service),
):
    return service.set_feature(instance_id, feature_key, data)


@admin_router.delete("/instances/{instance_id}/features/{feature_key}")
async def clear_feature(
    instance_id: int,
    feature_key: str,
    current_user: User = Depends(require_super_admin),
    service: InstanceService = Depends(get_instance_service),
):
    return service.clear_feature(instance_id, feature_key)


# ----------------------------------------------------------------------
# Instance admin
# ----------------------------------------------------------------------


@router.get("/settings", response_model=InstanceResponse)
async def get_settings(
    instance_id: int,
    current_user: User = Depends(require_instance_role("admin", "employee")),
    service: InstanceService = Depends(get_instance_service),
):
    return service.get_instance(instance_id)


@router.put("/settings", response_model=InstanceResponse)
async def update_settings(
    instance_id: int,
    data: InstanceSettingsUpdate,
    current_user: User = Depends(require_instance_role("admin")),
    service: InstanceService = Depends(get_instance_service),
):
    return service.update_settings(instance_id, data)


@router.get("/subscription")
async def get_subscription(
    instance_id: int,
    current_user: User = Depends(require_instance_role("admin")),
    service: InstanceService = Depends(get_instance_service),
):
    return service.get_subscription(instance_id)


@router.get("/features")
async def get_features(
    instance_id: int,
    current_user: User = Depends(require_instance_role("admin", "employee", "hall")),
    service: InstanceService = Depends(get_instance_service),
):
    """Effective feature flags, for the admin UI to hide disabled modules"""
    return {f["key"]: f["enabled"] for f in service.list_features(instance_id)}
