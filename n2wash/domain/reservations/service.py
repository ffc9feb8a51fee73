"""Reservation service - Business logic for the admin calendar"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Instance, Reservation, SmsLog, Station
from ...realtime.broker import EVENT_DELETE, EVENT_INSERT, EVENT_UPDATE, RealtimeBroker, broker
from ...security import generate_confirmation_code
from ...services import sms_gateway
from ...services.sms_templates import build_confirmation_sms, build_vehicle_ready_sms, reservation_edit_url
from ...shared.timeutils import interval_of, utcnow
from .history import SYSTEM, Actor, created_changes, deleted_changes, group_by_batch, snapshot, updated_changes
from .repository import BLOCKING_STATUSES, ReservationRepository
from .schemas import ReservationCreate, ReservationMove, ReservationUpdate, to_record

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 60

# Allowed status moves; change requests are resolved through approve/reject only
TRANSITIONS = {
    "pending": {"confirmed", "in_progress", "cancelled", "no_show"},
    "confirmed": {"pending", "in_progress", "cancelled", "no_show"},
    "in_progress": {"confirmed", "completed", "cancelled"},
    "completed": {"in_progress", "released"},
    "released": {"completed"},
    "no_show": {"confirmed"},
    "cancelled": {"pending", "confirmed"},
    "change_requested": set(),
}

STATUS_TIMESTAMPS = {
    "confirmed": "confirmed_at",
    "in_progress": "started_at",
    "completed": "completed_at",
    "released": "released_at",
    "cancelled": "cancelled_at",
    "no_show": "no_show_at",
}

# Moves that undo a previous step clear the timestamp of the status being left
REVERTS = {
    ("confirmed", "pending"),
    ("in_progress", "confirmed"),
    ("completed", "in_progress"),
    ("released", "completed"),
    ("no_show", "confirmed"),
    ("cancelled", "pending"),
    ("cancelled", "confirmed"),
}


def span_end(start: datetime, minutes: int) -> tuple[str, Optional[date]]:
    """End time and (when it falls on a later day) end date for a duration"""
    end = start + timedelta(minutes=minutes)
    return end.strftime("%H:%M"), (end.date() if end.date() != start.date() else None)


class ReservationService:
    """Service layer for reservation business logic"""

    def __init__(self, db: Session, realtime: Optional[RealtimeBroker] = None):
        self.db = db
        self.repo = ReservationRepository()
        self.broker = realtime or broker

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_reservations(
        self, instance_id: int, date_from: date, date_to: date, station_id: Optional[int] = None
    ) -> list[Reservation]:
        if date_to < date_from:
            raise HTTPException(status_code=400, detail="'to' must not be before 'from'")
        return self.repo.list_range(self.db, instance_id, date_from, date_to, station_id)

    def get_reservation(self, instance_id: int, reservation_id: int) -> Reservation:
        reservation = self.repo.get_by_id(self.db, instance_id, reservation_id)
        if not reservation:
            raise HTTPException(status_code=404, detail="Reservation not found")
        return reservation

    def get_history(self, instance_id: int, reservation_id: int) -> list[dict]:
        reservation = self.get_reservation(instance_id, reservation_id)
        return group_by_batch(self.repo.get_changes(self.db, reservation.id))

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    def _get_station(self, instance_id: int, station_id: int) -> Station:
        station = (
            self.db.query(Station)
            .filter(Station.id == station_id, Station.instance_id == instance_id)
            .first()
        )
        if not station:
            raise HTTPException(status_code=400, detail="Station does not belong to this instance")
        if not station.active:
            raise HTTPException(status_code=400, detail="Station is inactive")
        return station

    @staticmethod
    def _validate_span(reservation_date: date, start_time: str, end_date: Optional[date], end_time: str):
        if end_date is not None and end_date < reservation_date:
            raise HTTPException(status_code=400, detail="End date must not be before the reservation date")
        if (end_date is None or end_date == reservation_date) and end_time <= start_time:
            raise HTTPException(status_code=400, detail="End time must be after start time")

    def check_conflicts(
        self,
        instance_id: int,
        station_id: Optional[int],
        reservation_date: date,
        start_time: str,
        end_date: Optional[date],
        end_time: str,
        exclude_ids: tuple = (),
    ) -> None:
        """Raise 409 when the slot overlaps a blocking reservation on the station"""
        if station_id is None:
            return
        start, end = interval_of(reservation_date, start_time, end_date, end_time)
        conflicts = self.repo.find_conflicts(self.db, instance_id, station_id, start, end, exclude_ids)
        if conflicts:
            conflict = conflicts[0]
            logger.info(
                f"⛔ Slot {reservation_date} {start_time}-{end_time} on station {station_id} "
                f"conflicts with reservation {conflict.id}"
            )
            raise HTTPException(
                status_code=409,
                detail={"message": "Reservation conflicts with an existing one", "conflict": to_record(conflict)},
            )

    def _check_reservation_slot(self, reservation: Reservation, exclude_ids: tuple = ()):
        if reservation.status not in BLOCKING_STATUSES:
            return
        self.check_conflicts(
            reservation.instance_id,
            reservation.station_id,
            reservation.reservation_date,
            reservation.start_time,
            reservation.end_date,
            reservation.end_time,
            exclude_ids=(reservation.id, *exclude_ids),
        )

    def _new_confirmation_code(self) -> str:
        for _ in range(20):
            code = generate_confirmation_code()
            if not self.repo.code_exists(self.db, code):
                return code
        raise HTTPException(status_code=500, detail="Could not generate a confirmation code")

    def quote_services(self, instance_id: int, service_ids: list[int], car_size: Optional[str]) -> tuple[int, Optional[float]]:
        """Total duration (minutes) and price of the selected services"""
        if not service_ids:
            return DEFAULT_DURATION_MINUTES, None
        services = self.repo.get_services(self.db, instance_id, service_ids)
        if len(services) != len(set(service_ids)):
            raise HTTPException(status_code=400, detail="Unknown service for this instance")

        duration = sum(s.duration_minutes or 0 for s in services) or DEFAULT_DURATION_MINUTES
        price = 0.0
        for s in services:
            sized = getattr(s, f"price_{car_size}", None) if car_size else None
            price += sized if sized is not None else (s.price_from or 0)
        return duration, price

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def _commit(self, changes: list, error_detail: str = "Failed to save reservation"):
        self.db.add_all(changes)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"❌ {error_detail}: {e}")
            raise HTTPException(status_code=409, detail=error_detail) from e

    def _publish(self, event_type: str, reservation: Reservation):
        self.broker.publish(reservation.instance_id, event_type, to_record(reservation))

    def insert_reservation(self, instance_id: int, fields: dict, actor: Actor) -> Reservation:
        """
        Create a reservation from model fields after the span and conflict checks.
        Used by the admin calendar and by public booking.
        """
        if fields.get("station_id") is not None:
            self._get_station(instance_id, fields["station_id"])
        self._validate_span(fields["reservation_date"], fields["start_time"], fields.get("end_date"), fields["end_time"])

        status = fields.get("status", "confirmed")
        if status in BLOCKING_STATUSES:
            self.check_conflicts(
                instance_id,
                fields.get("station_id"),
                fields["reservation_date"],
                fields["start_time"],
                fields.get("end_date"),
                fields["end_time"],
                exclude_ids=tuple(fields.pop("exclude_ids", ())),
            )
        fields.pop("exclude_ids", None)

        reservation = Reservation(
            instance_id=instance_id,
            confirmation_code=self._new_confirmation_code(),
            created_by=actor.user_id,
            created_by_username=actor.username,
            **fields,
        )
        if status == "confirmed":
            reservation.confirmed_at = utcnow()

        self.db.add(reservation)
        self.db.flush()
        self._commit(created_changes(reservation, actor))
        self.db.refresh(reservation)

        logger.info(f"✅ Reservation {reservation.id} created on instance {instance_id} by {actor.username}")
        self._publish(EVENT_INSERT, reservation)
        return reservation

    def save_update(self, reservation: Reservation, before: dict, actor: Actor) -> Reservation:
        """Commit in-memory edits with their history batch and publish an UPDATE"""
        changes = updated_changes(reservation, before, actor)
        self._commit(changes)
        self.db.refresh(reservation)
        if changes:
            self._publish(EVENT_UPDATE, reservation)
        return reservation

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_photo(self, instance_id: int, reservation_id: int, key: str) -> Reservation:
        reservation = self.get_reservation(instance_id, reservation_id)
        reservation.photo_urls = [*(reservation.photo_urls or []), key]
        self.db.commit()
        self.db.refresh(reservation)
        self._publish(EVENT_UPDATE, reservation)
        return reservation

    def create_reservation(self, instance_id: int, data: ReservationCreate, actor: Actor) -> Reservation:
        duration, quoted_price = self.quote_services(instance_id, data.serviceIds, data.carSize)

        if data.endTime:
            end_time, end_date = data.endTime, data.endDate
        else:
            start = datetime.combine(data.reservationDate, datetime.strptime(data.startTime, "%H:%M").time())
            end_time, end_date = span_end(start, duration)

        fields = {
            "station_id": data.stationId,
            "service_ids": data.serviceIds,
            "customer_name": data.customerName,
            "customer_phone": data.customerPhone,
            "customer_email": data.customerEmail,
            "vehicle_plate": data.vehiclePlate,
            "car_size": data.carSize,
            "reservation_date": data.reservationDate,
            "end_date": end_date,
            "start_time": data.startTime,
            "end_time": end_time,
            "price": data.price if data.price is not None else quoted_price,
            "admin_notes": data.adminNotes,
            "customer_notes": data.customerNotes,
            "status": data.status or "confirmed",
            "source": "admin",
        }
        return self.insert_reservation(instance_id, fields, actor)

    def update_reservation(self, instance_id: int, reservation_id: int, data: ReservationUpdate, actor: Actor) -> Reservation:
        """
        Partial edit. A new service selection re-quotes the price and the end
        of the job unless price or endTime are sent with it; an explicit
        null endDate clears a multi-day span.
        """
        reservation = self.get_reservation(instance_id, reservation_id)
        before = snapshot(reservation)
        services_changed = data.serviceIds is not None and data.serviceIds != (reservation.service_ids or [])

        updates = {
            "station_id": data.stationId,
            "service_ids": data.serviceIds,
            "customer_name": data.customerName,
            "customer_phone": data.customerPhone,
            "customer_email": data.customerEmail,
            "vehicle_plate": data.vehiclePlate,
            "car_size": data.carSize,
            "reservation_date": data.reservationDate,
            "end_date": data.endDate,
            "start_time": data.startTime,
            "end_time": data.endTime,
            "price": data.price,
            "admin_notes": data.adminNotes,
            "customer_notes": data.customerNotes,
        }
        for key, value in updates.items():
            if value is not None:
                setattr(reservation, key, value)
        if "endDate" in data.model_fields_set and data.endDate is None:
            reservation.end_date = None

        slot_fields = ("station_id", "reservation_date", "end_date", "start_time", "end_time")
        try:
            if data.stationId is not None:
                self._get_station(instance_id, data.stationId)
            if services_changed:
                duration, quoted_price = self.quote_services(instance_id, reservation.service_ids, reservation.car_size)
                if data.endTime is None:
                    start = datetime.combine(
                        reservation.reservation_date, datetime.strptime(reservation.start_time, "%H:%M").time()
                    )
                    reservation.end_time, reservation.end_date = span_end(start, duration)
                if data.price is None:
                    reservation.price = quoted_price
            self._validate_span(
                reservation.reservation_date, reservation.start_time, reservation.end_date, reservation.end_time
            )
            after = snapshot(reservation)
            if any(before[f] != after[f] for f in slot_fields):
                self._check_reservation_slot(reservation)
        except HTTPException:
            self.db.rollback()
            raise

        return self.save_update(reservation, before, actor)

    def move_reservation(self, instance_id: int, reservation_id: int, data: ReservationMove, actor: Actor) -> Reservation:
        """Drag-to-move: new station/date/start, keeping the duration unless an end is given"""
        reservation = self.get_reservation(instance_id, reservation_id)
        self._get_station(instance_id, data.stationId)
        before = snapshot(reservation)

        old_start, old_end = interval_of(
            reservation.reservation_date, reservation.start_time, reservation.end_date, reservation.end_time
        )
        new_start = datetime.combine(data.reservationDate, datetime.strptime(data.startTime, "%H:%M").time())

        if data.endTime:
            end_time, end_date = data.endTime, data.endDate
        else:
            duration_minutes = int((old_end - old_start).total_seconds() // 60)
            end_time, end_date = span_end(new_start, duration_minutes)

        self._validate_span(data.reservationDate, data.startTime, end_date, end_time)

        reservation.station_id = data.stationId
        reservation.reservation_date = data.reservationDate
        reservation.start_time = data.startTime
        reservation.end_time = end_time
        reservation.end_date = end_date

        try:
            self._check_reservation_slot(reservation)
        except HTTPException:
            self.db.rollback()
            raise

        logger.info(f"↔️ Reservation {reservation.id} moved to station {data.stationId} {data.reservationDate} {data.startTime}")
        return self.save_update(reservation, before, actor)

    def apply_status(self, reservation: Reservation, new_status: str, actor: Actor) -> None:
        """Validate and apply a status transition in memory (caller saves)"""
        old_status = reservation.status
        if new_status == old_status:
            return
        if new_status not in TRANSITIONS.get(old_status, set()):
            raise HTTPException(
                status_code=400,
                detail=f"Cannot change status from {old_status} to {new_status}",
            )

        if new_status in BLOCKING_STATUSES and old_status not in BLOCKING_STATUSES:
            self.check_conflicts(
                reservation.instance_id,
                reservation.station_id,
                reservation.reservation_date,
                reservation.start_time,
                reservation.end_date,
                reservation.end_time,
                exclude_ids=(reservation.id,),
            )

        if (old_status, new_status) in REVERTS and old_status in STATUS_TIMESTAMPS:
            setattr(reservation, STATUS_TIMESTAMPS[old_status], None)
            if old_status == "cancelled":
                reservation.cancelled_by = None

        reservation.status = new_status
        if new_status in STATUS_TIMESTAMPS and (old_status, new_status) not in REVERTS:
            setattr(reservation, STATUS_TIMESTAMPS[new_status], utcnow())
        elif new_status == "confirmed" and reservation.confirmed_at is None:
            reservation.confirmed_at = utcnow()
        if new_status == "cancelled":
            reservation.cancelled_by = actor.username

    def change_status(self, instance_id: int, reservation_id: int, new_status: str, actor: Actor) -> Reservation:
        reservation = self.get_reservation(instance_id, reservation_id)
        if reservation.status == "change_requested":
            raise HTTPException(status_code=400, detail="Change requests are approved or rejected, not edited")
        before = snapshot(reservation)
        self.apply_status(reservation, new_status, actor)
        logger.info(f"🔄 Reservation {reservation.id}: {before['status']} -> {new_status} by {actor.username}")
        return self.save_update(reservation, before, actor)

    def approve_change_request(self, instance_id: int, request_id: int, actor: Actor) -> Reservation:
        """Confirm a change request and cancel the reservation it replaces"""
        request = self.get_reservation(instance_id, request_id)
        if request.status != "change_requested":
            raise HTTPException(status_code=400, detail="Reservation is not a change request")

        original = None
        if request.original_reservation_id:
            original = self.repo.get_by_id(self.db, instance_id, request.original_reservation_id)

        self._check_reservation_slot(request, exclude_ids=(request.original_reservation_id,))

        request_before = snapshot(request)
        request.status = "confirmed"
        request.confirmed_at = utcnow()
        changes = updated_changes(request, request_before, actor)

        if original is not None and original.status not in ("cancelled", "released", "no_show"):
            original_before = snapshot(original)
            original.status = "cancelled"
            original.cancelled_at = utcnow()
            original.cancelled_by = "change_request"
            changes += updated_changes(original, original_before, actor)

        self._commit(changes)
        self.db.refresh(request)
        self._publish(EVENT_UPDATE, request)
        if original is not None:
            self.db.refresh(original)
            self._publish(EVENT_UPDATE, original)

        logger.info(f"✅ Change request {request.id} approved (original {request.original_reservation_id})")
        return request

    def reject_change_request(self, instance_id: int, request_id: int, actor: Actor) -> Reservation:
        """Cancel a change request, leaving the original reservation intact"""
        request = self.get_reservation(instance_id, request_id)
        if request.status != "change_requested":
            raise HTTPException(status_code=400, detail="Reservation is not a change request")

        before = snapshot(request)
        request.status = "cancelled"
        request.cancelled_at = utcnow()
        request.cancelled_by = actor.username
        logger.info(f"🚫 Change request {request.id} rejected")
        return self.save_update(request, before, actor)

    def delete_reservation(self, instance_id: int, reservation_id: int, actor: Actor) -> dict:
        reservation = self.get_reservation(instance_id, reservation_id)
        record = to_record(reservation)
        changes = deleted_changes(reservation, actor)

        # Keep the audit rows, detached from the deleted reservation
        for change in self.repo.get_changes(self.db, reservation.id):
            change.reservation_id = None
        for change in changes:
            change.reservation_id = None
        for request in self.db.query(Reservation).filter(Reservation.original_reservation_id == reservation.id):
            request.original_reservation_id = None
        self.db.query(SmsLog).filter(SmsLog.reservation_id == reservation.id).update(
            {SmsLog.reservation_id: None}, synchronize_session=False
        )

        self.db.delete(reservation)
        self._commit(changes, "Failed to delete reservation")
        self.broker.publish(instance_id, EVENT_DELETE, record)
        logger.info(f"🗑️ Reservation {reservation_id} deleted by {actor.username}")
        return {"message": "Reservation deleted"}

    # ------------------------------------------------------------------
    # SMS
    # ------------------------------------------------------------------

    async def send_confirmation_sms(
        self, instance_id: int, reservation_id: int, actor: Actor = SYSTEM, reservation: Optional[Reservation] = None
    ) -> tuple[bool, Optional[str]]:
        """Send the templated confirmation SMS and stamp confirmation_sms_sent_at"""
        reservation = reservation or self.get_reservation(instance_id, reservation_id)
        instance = self.db.query(Instance).filter(Instance.id == instance_id).first()

        message = build_confirmation_sms(
            sms_gateway.instance_sms_name(instance),
            reservation.reservation_date,
            reservation.start_time,
            auto_confirm=reservation.status != "pending",
            google_maps_url=instance.google_maps_url,
            edit_url=reservation_edit_url(instance.slug, reservation.confirmation_code),
        )
        success, error = await sms_gateway.send_sms(
            self.db,
            instance_id,
            reservation.customer_phone,
            message,
            "reservation_confirmed",
            reservation_id=reservation.id,
            sent_by=actor.user_id,
        )
        if success:
            reservation.confirmation_sms_sent_at = utcnow()
            self.db.commit()
        return success, error

    async def send_pickup_sms(self, instance_id: int, reservation_id: int, actor: Actor) -> tuple[bool, Optional[str]]:
        """Tell the customer the vehicle is ready and stamp pickup_sms_sent_at"""
        reservation = self.get_reservation(instance_id, reservation_id)
        instance = self.db.query(Instance).filter(Instance.id == instance_id).first()
        message = build_vehicle_ready_sms(sms_gateway.instance_sms_name(instance), reservation.vehicle_plate)
        success, error = await sms_gateway.send_sms(
            self.db,
            instance_id,
            reservation.customer_phone,
            message,
            "vehicle_ready",
            reservation_id=reservation.id,
            sent_by=actor.user_id,
        )
        if success:
            reservation.pickup_sms_sent_at = utcnow()
            self.db.commit()
        return success, error
