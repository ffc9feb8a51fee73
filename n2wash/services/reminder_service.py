"""
SMS reminders for confirmed reservations
Runs from the worker cron every few minutes:
- reminder_1day: the day before, around the instance's configured send time
- reminder_1hour: 55-65 minutes before the start
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..models import Instance, Reservation
from . import sms_gateway
from .sms_gateway import DEFAULT_SEND_AT_TIME, SmsGateway
from .sms_templates import build_reminder_1day_sms, build_reminder_1hour_sms, reservation_edit_url
from ..shared.timeutils import (
    is_in_backoff,
    is_within_window,
    minutes_until_start,
    time_to_minutes,
    to_local,
    utcnow,
)

logger = logging.getLogger(__name__)

REMINDER_BACKOFF_MINUTES = 15
MAX_REMINDER_FAILURES = 3
SEND_WINDOW_MINUTES = 5
ONE_HOUR_MIN_MINUTES = 55
ONE_HOUR_MAX_MINUTES = 65


def get_send_at_time(db: Session, instance_id: int) -> str:
    setting = sms_gateway.get_message_setting(db, instance_id, "reminder_1day")
    return (setting.send_at_time if setting else None) or DEFAULT_SEND_AT_TIME["reminder_1day"]


def due_reminder(reservation: Reservation, instance: Instance, now_utc: datetime, send_at_time: str) -> Optional[str]:
    """Which reminder (if any) is due for the reservation right now"""
    if reservation.status != "confirmed" or reservation.reminder_permanent_failure:
        return None

    if not reservation.reminder_1hour_sent:
        minutes = minutes_until_start(now_utc, reservation.reservation_date, reservation.start_time, instance.timezone)
        if ONE_HOUR_MIN_MINUTES <= minutes <= ONE_HOUR_MAX_MINUTES:
            return "reminder_1hour"

    if not reservation.reminder_1day_sent:
        local_now = to_local(now_utc, instance.timezone)
        if reservation.reservation_date == local_now.date() + timedelta(days=1):
            now_minutes = local_now.hour * 60 + local_now.minute
            if is_within_window(now_minutes, time_to_minutes(send_at_time), SEND_WINDOW_MINUTES):
                return "reminder_1day"

    return None


def _last_attempt_field(reminder_type: str) -> str:
    return f"{reminder_type}_last_attempt_at"


def _build_message(reminder_type: str, reservation: Reservation, instance: Instance) -> str:
    name = sms_gateway.instance_sms_name(instance)
    edit_url = reservation_edit_url(instance.slug, reservation.confirmation_code)
    if reminder_type == "reminder_1day":
        return build_reminder_1day_sms(name, reservation.start_time, edit_url)
    return build_reminder_1hour_sms(name, reservation.start_time, edit_url)


async def send_reminder(
    db: Session,
    reservation: Reservation,
    instance: Instance,
    reminder_type: str,
    now_utc: datetime,
    gateway: Optional[SmsGateway] = None,
) -> bool:
    """
    Claim and send one reminder.

    The attempt timestamp is committed before sending so an overlapping run
    backs off instead of sending twice. Failures are counted and after
    MAX_REMINDER_FAILURES the reservation gets no more reminders.
    """
    field = _last_attempt_field(reminder_type)
    if is_in_backoff(getattr(reservation, field), now_utc, REMINDER_BACKOFF_MINUTES):
        return False

    setattr(reservation, field, now_utc)
    db.commit()

    success, error = await sms_gateway.send_sms(
        db,
        instance.id,
        reservation.customer_phone,
        _build_message(reminder_type, reservation, instance),
        reminder_type,
        reservation_id=reservation.id,
        gateway=gateway,
    )

    if success:
        setattr(reservation, f"{reminder_type}_sent", True)
        db.commit()
        logger.info(f"⏰ {reminder_type} sent for reservation {reservation.id}")
        return True

    reservation.reminder_failure_count = (reservation.reminder_failure_count or 0) + 1
    if reservation.reminder_failure_count >= MAX_REMINDER_FAILURES:
        reservation.reminder_permanent_failure = True
        reservation.reminder_failure_reason = error
        logger.error(f"❌ Reminders disabled for reservation {reservation.id} after repeated failures: {error}")
    else:
        logger.warning(f"⚠️ {reminder_type} failed for reservation {reservation.id}: {error}")
    db.commit()
    return False


async def send_due_reminders(
    db: Session, now: Optional[datetime] = None, gateway: Optional[SmsGateway] = None
) -> dict:
    """
    Send every reminder that is due across all active instances.

    Returns:
        dict: counts of sent and failed reminders per type
    """
    now = now or utcnow()
    summary = {"reminder_1day": 0, "reminder_1hour": 0, "failed": 0, "skipped": 0}

    instances = db.query(Instance).filter(Instance.active.is_(True), Instance.deleted_at.is_(None)).all()
    for instance in instances:
        local_today = to_local(now, instance.timezone).date()
        reservations = (
            db.query(Reservation)
            .filter(
                Reservation.instance_id == instance.id,
                Reservation.status == "confirmed",
                Reservation.reminder_permanent_failure.is_(False),
                Reservation.reservation_date >= local_today,
                Reservation.reservation_date <= local_today + timedelta(days=1),
            )
            .all()
        )
        if not reservations:
            continue

        send_at_time = get_send_at_time(db, instance.id)
        for reservation in reservations:
            reminder_type = due_reminder(reservation, instance, now, send_at_time)
            if reminder_type is None:
                continue
            if not sms_gateway.is_message_enabled(db, instance.id, reminder_type):
                summary["skipped"] += 1
                continue

            if is_in_backoff(getattr(reservation, _last_attempt_field(reminder_type)), now, REMINDER_BACKOFF_MINUTES):
                continue

            if await send_reminder(db, reservation, instance, reminder_type, now, gateway):
                summary[reminder_type] += 1
            else:
                summary["failed"] += 1

    if summary["reminder_1day"] or summary["reminder_1hour"] or summary["failed"]:
        logger.info(f"📊 Reminder run summary: {summary}")
    return summary
