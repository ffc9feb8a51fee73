"""WebSocket feed of reservation changes for the admin calendar and hall views"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect

from ..auth import get_instance_roles, get_user_from_token, has_instance_role, is_super_admin
from ..database import SessionLocal
from ..domain.halls.service import HallFeed, HallService
from ..models import ROLE_HALL, Instance
from .broker import broker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])

REALTIME_ROLES = ("admin", "employee", "hall")
STAFF_ROLES = ("admin", "employee")

# Application close codes (4000-4999 range)
CLOSE_UNAUTHORIZED = 4401
CLOSE_FORBIDDEN = 4403
CLOSE_NOT_FOUND = 4404


def _hall_feed(db, user, instance_id: int, hall_id: Optional[int]):
    """Resolve the hall a kiosk account follows; returns (close_code, feed)"""
    service = HallService(db)
    if hall_id is None:
        bound = {r.hall_id for r in user.roles if r.role == ROLE_HALL and r.instance_id == instance_id}
        if len(bound) != 1 or None in bound:
            return CLOSE_FORBIDDEN, None
        hall_id = bound.pop()

    try:
        hall = service.get_hall(instance_id, hall_id)
        service.check_access(user, hall)
    except HTTPException as e:
        return (CLOSE_NOT_FOUND if e.status_code == 404 else CLOSE_FORBIDDEN), None
    if not hall.active:
        return CLOSE_NOT_FOUND, None
    return None, HallFeed(hall, service.service_names(instance_id))


def authorize_subscriber(instance_id: int, token: Optional[str], hall_id: Optional[int] = None):
    """
    Check a connecting client.

    Returns (close_code, feed): close_code is None when the token may follow
    the instance, feed is a HallFeed for hall-only accounts.
    """
    db = SessionLocal()
    try:
        try:
            user = get_user_from_token(db, token)
        except HTTPException as e:
            return (CLOSE_FORBIDDEN if e.status_code == 403 else CLOSE_UNAUTHORIZED), None

        instance = db.query(Instance).filter(Instance.id == instance_id).first()
        if not instance or instance.deleted_at is not None:
            return CLOSE_NOT_FOUND, None
        if not has_instance_role(user, instance_id, REALTIME_ROLES):
            return CLOSE_FORBIDDEN, None
        if is_super_admin(user) or any(role in STAFF_ROLES for role in get_instance_roles(user, instance_id)):
            return None, None
        return _hall_feed(db, user, instance_id, hall_id)
    finally:
        db.close()


async def _forward(websocket: WebSocket, subscription, feed: Optional[HallFeed]):
    while True:
        message = await subscription.get()
        if feed is not None:
            message = feed.filter_message(message)
            if message is None:
                continue
        await websocket.send_json(message)


async def _receive(websocket: WebSocket):
    # Client messages are ignored; reading only detects the disconnect
    while True:
        await websocket.receive_text()


async def stream_events(websocket: WebSocket, subscription, feed: Optional[HallFeed] = None):
    """Pump broker messages to the socket until either direction stops"""
    tasks = [
        asyncio.create_task(_forward(websocket, subscription, feed)),
        asyncio.create_task(_receive(websocket)),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error(f"❌ Realtime stream failed: {error!r}")
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


@router.websocket("/ws/instances/{instance_id}/reservations")
async def reservations_feed(
    websocket: WebSocket,
    instance_id: int,
    token: Optional[str] = Query(None),
    hall_id: Optional[int] = Query(None, alias="hallId"),
):
    close_code, feed = authorize_subscriber(instance_id, token, hall_id)
    if close_code is not None:
        logger.warning(f"⚠️ Realtime connection refused for instance {instance_id} ({close_code})")
        await websocket.close(code=close_code)
        return

    await websocket.accept()
    subscription = broker.subscribe(instance_id)
    try:
        await stream_events(websocket, subscription, feed)
    finally:
        broker.unsubscribe(subscription)
    logger.info(f"📡 Realtime subscriber left instance {instance_id}")
