"""Availability service - opening hours, blockers and free slot search"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Break, ClosedDay, Instance, Station
from ...shared.timeutils import (
    WEEKDAY_KEYS,
    interval_of,
    intervals_overlap,
    minutes_to_time,
    time_to_minutes,
    to_local,
    utcnow,
)
from ..reservations.repository import BLOCKING_STATUSES, ReservationRepository
from .schemas import BreakCreate, ClosedDayCreate, WorkingHours

logger = logging.getLogger(__name__)

SLOT_STEP_MINUTES = 15


class AvailabilityService:
    """Service layer for working hours, breaks, closed days and slot search"""

    def __init__(self, db: Session):
        self.db = db

    def _get_instance(self, instance_id: int) -> Instance:
        instance = self.db.query(Instance).filter(Instance.id == instance_id).first()
        if not instance:
            raise HTTPException(status_code=404, detail="Instance not found")
        return instance

    # Working hours

    def get_working_hours(self, instance_id: int) -> dict:
        return self._get_instance(instance_id).working_hours or {}

    def set_working_hours(self, instance_id: int, data: WorkingHours) -> dict:
        instance = self._get_instance(instance_id)
        hours = {}
        for day in WEEKDAY_KEYS:
            value = getattr(data, day)
            hours[day] = value.model_dump() if value else None
        instance.working_hours = hours
        self.db.commit()
        self.db.refresh(instance)
        logger.info(f"🕒 Working hours updated for instance {instance_id}")
        return instance.working_hours

    # Breaks

    def list_breaks(self, instance_id: int, date_from: date, date_to: date) -> list[Break]:
        return (
            self.db.query(Break)
            .filter(Break.instance_id == instance_id, Break.break_date >= date_from, Break.break_date <= date_to)
            .order_by(Break.break_date, Break.start_time)
            .all()
        )

    def create_break(self, instance_id: int, data: BreakCreate) -> Break:
        station = (
            self.db.query(Station)
            .filter(Station.id == data.stationId, Station.instance_id == instance_id)
            .first()
        )
        if not station:
            raise HTTPException(status_code=400, detail="Station does not belong to this instance")

        item = Break(
            instance_id=instance_id,
            station_id=data.stationId,
            break_date=data.breakDate,
            start_time=data.startTime,
            end_time=data.endTime,
            note=data.note,
        )
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        return item

    def delete_break(self, instance_id: int, break_id: int) -> dict:
        item = self.db.query(Break).filter(Break.id == break_id, Break.instance_id == instance_id).first()
        if not item:
            raise HTTPException(status_code=404, detail="Break not found")
        self.db.delete(item)
        self.db.commit()
        return {"message": "Break deleted"}

    # Closed days

    def list_closed_days(self, instance_id: int, date_from: Optional[date] = None) -> list[ClosedDay]:
        query = self.db.query(ClosedDay).filter(ClosedDay.instance_id == instance_id)
        if date_from:
            query = query.filter(ClosedDay.closed_date >= date_from)
        return query.order_by(ClosedDay.closed_date).all()

    def create_closed_day(self, instance_id: int, data: ClosedDayCreate) -> ClosedDay:
        item = ClosedDay(instance_id=instance_id, closed_date=data.closedDate, reason=data.reason)
        self.db.add(item)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(status_code=409, detail="Day is already marked as closed") from e
        self.db.refresh(item)
        return item

    def delete_closed_day(self, instance_id: int, closed_day_id: int) -> dict:
        item = (
            self.db.query(ClosedDay)
            .filter(ClosedDay.id == closed_day_id, ClosedDay.instance_id == instance_id)
            .first()
        )
        if not item:
            raise HTTPException(status_code=404, detail="Closed day not found")
        self.db.delete(item)
        self.db.commit()
        return {"message": "Closed day deleted"}

    # Public calendar

    def get_availability_blocks(self, instance_id: int, date_from: date, date_to: date) -> list[dict]:
        """Occupied spans per station (active reservations and breaks)"""
        if date_to < date_from:
            raise HTTPException(status_code=400, detail="'to' must not be before 'from'")

        blocks = []
        reservations = ReservationRepository.list_range(
            self.db, instance_id, date_from, date_to, statuses=BLOCKING_STATUSES
        )
        for r in reservations:
            if r.station_id is None:
                continue
            blocks.append(
                {
                    "stationId": r.station_id,
                    "day": r.reservation_date,
                    "endDate": r.end_date,
                    "startTime": r.start_time,
                    "endTime": r.end_time,
                    "kind": "reservation",
                }
            )
        for b in self.list_breaks(instance_id, date_from, date_to):
            blocks.append(
                {
                    "stationId": b.station_id,
                    "day": b.break_date,
                    "endDate": None,
                    "startTime": b.start_time,
                    "endTime": b.end_time,
                    "kind": "break",
                }
            )
        return sorted(blocks, key=lambda b: (b["day"], b["startTime"], b["stationId"]))

    def is_closed(self, instance_id: int, day: date) -> bool:
        return (
            self.db.query(ClosedDay)
            .filter(ClosedDay.instance_id == instance_id, ClosedDay.closed_date == day)
            .first()
            is not None
        )

    def get_free_slots(
        self,
        instance_id: int,
        day: date,
        duration_minutes: int,
        station_id: Optional[int] = None,
        station_type: Optional[str] = None,
        now: Optional[datetime] = None,
        exclude_ids: tuple = (),
    ) -> list[dict]:
        """
        Start times on a 15-minute grid inside the day's working hours where
        a job of `duration_minutes` fits without overlapping reservations or
        breaks. Each slot lists the stations free at that time.
        Reservations in `exclude_ids` do not count as busy.
        """
        if duration_minutes <= 0:
            raise HTTPException(status_code=400, detail="Duration must be positive")

        instance = self._get_instance(instance_id)
        hours = (instance.working_hours or {}).get(WEEKDAY_KEYS[day.weekday()])
        if not hours or self.is_closed(instance_id, day):
            return []

        stations_query = self.db.query(Station).filter(Station.instance_id == instance_id, Station.active.is_(True))
        if station_id is not None:
            stations_query = stations_query.filter(Station.id == station_id)
        if station_type:
            stations_query = stations_query.filter(Station.type.in_((station_type, "universal")))
        stations = stations_query.order_by(Station.sort_order, Station.id).all()
        if not stations:
            return []

        busy = {s.id: [] for s in stations}
        for r in ReservationRepository.list_range(
            self.db, instance_id, day - timedelta(days=1), day, statuses=BLOCKING_STATUSES
        ):
            if r.station_id in busy and r.id not in exclude_ids:
                busy[r.station_id].append(interval_of(r.reservation_date, r.start_time, r.end_date, r.end_time))
        for b in self.list_breaks(instance_id, day, day):
            if b.station_id in busy:
                busy[b.station_id].append(interval_of(b.break_date, b.start_time, None, b.end_time))

        open_minutes = time_to_minutes(hours["open"])
        close_minutes = time_to_minutes(hours["close"])

        earliest = None
        local_now = to_local(now or utcnow(), instance.timezone)
        if local_now.date() == day:
            earliest = local_now.hour * 60 + local_now.minute
        elif local_now.date() > day:
            return []

        slots = []
        start = open_minutes
        while start + duration_minutes <= close_minutes:
            if earliest is None or start >= earliest:
                slot_start = datetime.combine(day, datetime.min.time()) + timedelta(minutes=start)
                slot_end = slot_start + timedelta(minutes=duration_minutes)
                free = [
                    sid
                    for sid, spans in busy.items()
                    if not any(intervals_overlap(slot_start, slot_end, s, e) for s, e in spans)
                ]
                if free:
                    slots.append({"time": minutes_to_time(start), "stationIds": free})
            start += SLOT_STEP_MINUTES
        return slots
