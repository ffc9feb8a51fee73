"""Reservation repository - Database operations for reservations"""

from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...models import Reservation, ReservationChange, Service
from ...shared.timeutils import interval_of, intervals_overlap

# Statuses that occupy a station
BLOCKING_STATUSES = ("pending", "confirmed", "in_progress", "completed", "change_requested")


class ReservationRepository:
    """Repository for reservation database operations"""

    @staticmethod
    def get_by_id(db: Session, instance_id: int, reservation_id: int) -> Optional[Reservation]:
        return (
            db.query(Reservation)
            .filter(Reservation.id == reservation_id, Reservation.instance_id == instance_id)
            .first()
        )

    @staticmethod
    def get_by_code(db: Session, instance_id: int, code: str) -> Optional[Reservation]:
        return (
            db.query(Reservation)
            .filter(Reservation.instance_id == instance_id, Reservation.confirmation_code == code)
            .first()
        )

    @staticmethod
    def code_exists(db: Session, code: str) -> bool:
        return db.query(Reservation.id).filter(Reservation.confirmation_code == code).first() is not None

    @staticmethod
    def list_range(
        db: Session,
        instance_id: int,
        date_from: date,
        date_to: date,
        station_id: Optional[int] = None,
        statuses: Optional[tuple] = None,
    ) -> list[Reservation]:
        """Reservations touching [date_from, date_to], multi-day ones included"""
        query = db.query(Reservation).filter(
            Reservation.instance_id == instance_id,
            Reservation.reservation_date <= date_to,
            func.coalesce(Reservation.end_date, Reservation.reservation_date) >= date_from,
        )
        if station_id is not None:
            query = query.filter(Reservation.station_id == station_id)
        if statuses:
            query = query.filter(Reservation.status.in_(statuses))
        return query.order_by(Reservation.reservation_date, Reservation.start_time).all()

    @staticmethod
    def find_conflicts(
        db: Session,
        instance_id: int,
        station_id: int,
        start: datetime,
        end: datetime,
        exclude_ids: tuple = (),
    ) -> list[Reservation]:
        """Blocking reservations on the station whose interval overlaps [start, end)"""
        # A reservation ending past midnight may start the day before the window
        query = db.query(Reservation).filter(
            Reservation.instance_id == instance_id,
            Reservation.station_id == station_id,
            Reservation.status.in_(BLOCKING_STATUSES),
            Reservation.reservation_date <= end.date(),
            func.coalesce(Reservation.end_date, Reservation.reservation_date) >= start.date() - timedelta(days=1),
        )
        if exclude_ids:
            query = query.filter(Reservation.id.notin_([i for i in exclude_ids if i is not None]))

        conflicts = []
        for other in query.all():
            other_start, other_end = interval_of(
                other.reservation_date, other.start_time, other.end_date, other.end_time
            )
            if intervals_overlap(start, end, other_start, other_end):
                conflicts.append(other)
        return conflicts

    @staticmethod
    def pending_change_request(db: Session, original_id: int) -> Optional[Reservation]:
        return (
            db.query(Reservation)
            .filter(
                Reservation.original_reservation_id == original_id,
                Reservation.status == "change_requested",
            )
            .first()
        )

    @staticmethod
    def future_active_on_station(db: Session, station_id: int, today: date) -> int:
        return (
            db.query(Reservation)
            .filter(
                Reservation.station_id == station_id,
                Reservation.status.in_(BLOCKING_STATUSES),
                or_(
                    Reservation.reservation_date >= today,
                    Reservation.end_date >= today,
                ),
            )
            .count()
        )

    @staticmethod
    def get_services(db: Session, instance_id: int, service_ids: list[int]) -> list[Service]:
        if not service_ids:
            return []
        return (
            db.query(Service)
            .filter(Service.instance_id == instance_id, Service.id.in_(service_ids))
            .all()
        )

    @staticmethod
    def get_changes(db: Session, reservation_id: int) -> list[ReservationChange]:
        return (
            db.query(ReservationChange)
            .filter(ReservationChange.reservation_id == reservation_id)
            .order_by(ReservationChange.created_at.desc(), ReservationChange.id.desc())
            .all()
        )
