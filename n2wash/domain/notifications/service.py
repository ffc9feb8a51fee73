"""In-app notifications and the push subscription registry"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Notification, PushSubscription, User
from ...services.push_service import send_push_to_instance
from .schemas import PushSubscribeRequest

logger = logging.getLogger(__name__)


async def notify(
    db: Session,
    instance_id: int,
    type: str,
    title: str,
    description: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    url: Optional[str] = None,
) -> Notification:
    """
    Store an admin notification and push it to the instance's subscribed devices.
    Push failures are logged; the notification is kept regardless.
    """
    notification = Notification(
        instance_id=instance_id,
        type=type,
        title=title,
        description=description,
        entity_type=entity_type,
        entity_id=entity_id,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)

    try:
        await send_push_to_instance(db, instance_id, title, description, url=url, tag=f"{type}-{entity_id}")
    except Exception as e:
        logger.error(f"❌ Push dispatch failed for notification {notification.id}: {e}")
    return notification


class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    def list_notifications(self, instance_id: int, unread_only: bool = False, limit: int = 50) -> list[Notification]:
        query = self.db.query(Notification).filter(Notification.instance_id == instance_id)
        if unread_only:
            query = query.filter(Notification.read.is_(False))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    def unread_count(self, instance_id: int) -> int:
        return (
            self.db.query(Notification)
            .filter(Notification.instance_id == instance_id, Notification.read.is_(False))
            .count()
        )

    def mark_read(self, instance_id: int, notification_id: int) -> Notification:
        notification = (
            self.db.query(Notification)
            .filter(Notification.id == notification_id, Notification.instance_id == instance_id)
            .first()
        )
        if not notification:
            raise HTTPException(status_code=404, detail="Notification not found")
        notification.read = True
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_all_read(self, instance_id: int) -> int:
        updated = (
            self.db.query(Notification)
            .filter(Notification.instance_id == instance_id, Notification.read.is_(False))
            .update({Notification.read: True}, synchronize_session=False)
        )
        self.db.commit()
        return updated

    def subscribe(self, instance_id: int, user: User, data: PushSubscribeRequest) -> PushSubscription:
        """Register a device; an endpoint already known is re-bound to this user and instance"""
        subscription = self.db.query(PushSubscription).filter(PushSubscription.endpoint == data.endpoint).first()
        if subscription is None:
            subscription = PushSubscription(endpoint=data.endpoint)
            self.db.add(subscription)
        subscription.instance_id = instance_id
        subscription.user_id = user.id
        subscription.p256dh = data.keys.p256dh
        subscription.auth = data.keys.auth
        self.db.commit()
        self.db.refresh(subscription)
        logger.info(f"🔔 Push subscription {subscription.id} registered for instance {instance_id}")
        return subscription

    def unsubscribe(self, instance_id: int, endpoint: str) -> dict:
        deleted = (
            self.db.query(PushSubscription)
            .filter(PushSubscription.endpoint == endpoint, PushSubscription.instance_id == instance_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if not deleted:
            raise HTTPException(status_code=404, detail="Subscription not found")
        return {"message": "Unsubscribed"}
