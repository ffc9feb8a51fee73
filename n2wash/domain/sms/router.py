from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_instance_role
from ...database import get_db
from ...models import User
from .schemas import ManualSmsRequest, MessageSettingUpdate, SmsLogResponse
from .service import SmsService

router = APIRouter(prefix="/instances/{instance_id}/sms", tags=["SMS"])

staff = require_instance_role("admin", "employee")
admin_only = require_instance_role("admin")


def get_sms_service(db: Session = Depends(get_db)) -> SmsService:
    return SmsService(db)


@router.get("/settings")
async def get_settings(
    instance_id: int,
    current_user: User = Depends(admin_only),
    service: SmsService = Depends(get_sms_service),
):
    return service.get_settings(instance_id)


@router.put("/settings")
async def update_settings(
    instance_id: int,
    data: list[MessageSettingUpdate],
    current_user: User = Depends(admin_only),
    service: SmsService = Depends(get_sms_service),
):
    return service.update_settings(instance_id, data)


@router.post("/send")
async def send_manual_sms(
    instance_id: int,
    data: ManualSmsRequest,
    current_user: User = Depends(staff),
    service: SmsService = Depends(get_sms_service),
):
    """Free-text SMS to a customer, counted against the instance quota"""
    return await service.send_manual(instance_id, data, current_user)


@router.get("/logs", response_model=list[SmsLogResponse])
async def list_logs(
    instance_id: int,
    reservation_id: Optional[int] = Query(None, alias="reservationId"),
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(admin_only),
    service: SmsService = Depends(get_sms_service),
):
    return service.list_logs(instance_id, reservation_id, status, limit, offset)


@router.get("/usage")
async def get_usage(
    instance_id: int,
    current_user: User = Depends(staff),
    service: SmsService = Depends(get_sms_service),
):
    return service.get_usage(instance_id)
