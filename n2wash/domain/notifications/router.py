from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_instance_role
from ... import config
from ...database import get_db
from ...models import User
from .schemas import NotificationResponse, PushSubscribeRequest, PushUnsubscribeRequest
from .service import NotificationService

router = APIRouter(prefix="/instances/{instance_id}", tags=["Notifications"])

staff = require_instance_role("admin", "employee")


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


@router.get("/notifications", response_model=list[NotificationResponse])
async def list_notifications(
    instance_id: int,
    unread_only: bool = Query(False, alias="unreadOnly"),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(staff),
    service: NotificationService = Depends(get_notification_service),
):
    return service.list_notifications(instance_id, unread_only, limit)


@router.get("/notifications/unread-count")
async def unread_count(
    instance_id: int,
    current_user: User = Depends(staff),
    service: NotificationService = Depends(get_notification_service),
):
    return {"count": service.unread_count(instance_id)}


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    instance_id: int,
    notification_id: int,
    current_user: User = Depends(staff),
    service: NotificationService = Depends(get_notification_service),
):
    return service.mark_read(instance_id, notification_id)


@router.post("/notifications/read-all")
async def mark_all_read(
    instance_id: int,
    current_user: User = Depends(staff),
    service: NotificationService = Depends(get_notification_service),
):
    return {"updated": service.mark_all_read(instance_id)}


@router.get("/push/public-key")
async def get_push_public_key(instance_id: int, current_user: User = Depends(staff)):
    """VAPID application server key for PushManager.subscribe()"""
    return {"publicKey": config.VAPID_PUBLIC_KEY}


@router.post("/push/subscribe", status_code=201)
async def subscribe(
    instance_id: int,
    data: PushSubscribeRequest,
    current_user: User = Depends(staff),
    service: NotificationService = Depends(get_notification_service),
):
    subscription = service.subscribe(instance_id, current_user, data)
    return {"id": subscription.id, "endpoint": subscription.endpoint}


@router.post("/push/unsubscribe")
async def unsubscribe(
    instance_id: int,
    data: PushUnsubscribeRequest,
    current_user: User = Depends(staff),
    service: NotificationService = Depends(get_notification_service),
):
    return service.unsubscribe(instance_id, data.endpoint)
