"""Hall service - kiosk views limited to a set of stations"""

import logging
from datetime import date
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...auth import get_instance_roles, is_super_admin
from ...models import ROLE_HALL, Hall, Service, Station, User, UserRole
from ...realtime.broker import EVENT_DELETE, EVENT_INSERT
from ...shared.validators import slugify
from ..reservations.history import Actor, snapshot
from ..reservations.repository import ReservationRepository
from ..reservations.schemas import ReservationMove, to_record
from ..reservations.service import ReservationService
from .schemas import DEFAULT_ALLOWED_ACTIONS, DEFAULT_VISIBLE_FIELDS, HallAction, HallCreate, HallUpdate

logger = logging.getLogger(__name__)

STATUS_ACTIONS = {"start": "in_progress", "complete": "completed", "release": "released"}

# Always sent to the kiosk, regardless of visible_fields
BOARD_BASE_FIELDS = (
    "id",
    "station_id",
    "reservation_date",
    "end_date",
    "start_time",
    "end_time",
    "status",
    "car_size",
)

HIDDEN_ON_BOARD = ("cancelled", "change_requested")
PROJECTED_FIELDS = ("customer_name", "customer_phone", "vehicle_plate", "admin_notes")


def visible_fields_of(hall: Hall) -> dict:
    return {**DEFAULT_VISIBLE_FIELDS, **(hall.visible_fields or {})}


def project_record(record: dict, visible: dict, service_names: Optional[list[str]] = None) -> dict:
    """Reduce a reservation record to what a hall kiosk may see"""
    item = {field: record.get(field) for field in BOARD_BASE_FIELDS}
    for field in PROJECTED_FIELDS:
        if visible.get(field):
            item[field] = record.get(field)
    if visible.get("services"):
        item["services"] = service_names or []
    return item


class HallFeed:
    """
    Realtime filter for a hall kiosk.

    Records off the hall's stations, or hidden from the board, reach the
    kiosk only as an id-only DELETE so a local copy can be dropped.
    """

    def __init__(self, hall: Hall, service_names: dict[int, str]):
        self.hall_id = hall.id
        self.station_ids = set(hall.station_ids or [])
        self.visible = visible_fields_of(hall)
        self.service_names = service_names

    def on_board(self, record: dict) -> bool:
        return record.get("station_id") in self.station_ids and record.get("status") not in HIDDEN_ON_BOARD

    def filter_message(self, message: dict) -> Optional[dict]:
        record = message.get("record") or {}
        if message.get("type") != EVENT_DELETE and self.on_board(record):
            names = [self.service_names[i] for i in record.get("service_ids") or [] if i in self.service_names]
            return {**message, "record": project_record(record, self.visible, names)}
        if message.get("type") == EVENT_INSERT:
            return None
        return {"type": EVENT_DELETE, "table": message.get("table"), "record": {"id": record.get("id")}}


class HallService:
    def __init__(self, db: Session, reservations: Optional[ReservationService] = None):
        self.db = db
        self.reservations = reservations or ReservationService(db)

    def list_halls(self, instance_id: int) -> list[Hall]:
        return (
            self.db.query(Hall)
            .filter(Hall.instance_id == instance_id)
            .order_by(Hall.sort_order, Hall.name)
            .all()
        )

    def get_hall(self, instance_id: int, hall_id: int) -> Hall:
        hall = self.db.query(Hall).filter(Hall.id == hall_id, Hall.instance_id == instance_id).first()
        if not hall:
            raise HTTPException(status_code=404, detail="Hall not found")
        return hall

    def check_access(self, user: User, hall: Hall) -> None:
        """Hall accounts bound to a hall may only open that hall"""
        if is_super_admin(user):
            return
        roles = get_instance_roles(user, hall.instance_id)
        if "admin" in roles or "employee" in roles:
            return
        bound_halls = {
            r.hall_id for r in user.roles if r.role == ROLE_HALL and r.instance_id == hall.instance_id
        }
        if None in bound_halls or hall.id in bound_halls:
            return
        raise HTTPException(status_code=403, detail="No access to this hall")

    def _validate_stations(self, instance_id: int, station_ids: list[int]) -> list[int]:
        station_ids = list(dict.fromkeys(station_ids))
        if not station_ids:
            return []
        found = (
            self.db.query(Station.id)
            .filter(Station.instance_id == instance_id, Station.id.in_(station_ids))
            .all()
        )
        if len(found) != len(station_ids):
            raise HTTPException(status_code=400, detail="Station does not belong to this instance")
        return station_ids

    def _commit(self, hall: Hall) -> Hall:
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(status_code=400, detail="Hall with this slug already exists") from e
        self.db.refresh(hall)
        return hall

    def create_hall(self, instance_id: int, data: HallCreate) -> Hall:
        slug = data.slug or slugify(data.name)
        if not slug:
            raise HTTPException(status_code=400, detail="Cannot derive a slug from the hall name")

        hall = Hall(
            instance_id=instance_id,
            name=data.name,
            slug=slug,
            station_ids=self._validate_stations(instance_id, data.stationIds),
            visible_fields={**DEFAULT_VISIBLE_FIELDS, **(data.visibleFields or {})},
            allowed_actions={**DEFAULT_ALLOWED_ACTIONS, **(data.allowedActions or {})},
            sort_order=data.sortOrder or 0,
        )
        self.db.add(hall)
        hall = self._commit(hall)
        logger.info(f"✅ Hall {hall.slug} created on instance {instance_id}")
        return hall

    def update_hall(self, instance_id: int, hall_id: int, data: HallUpdate) -> Hall:
        hall = self.get_hall(instance_id, hall_id)
        if data.name is not None:
            hall.name = data.name
        if data.slug is not None:
            hall.slug = data.slug
        if data.stationIds is not None:
            hall.station_ids = self._validate_stations(instance_id, data.stationIds)
        if data.visibleFields is not None:
            hall.visible_fields = {**DEFAULT_VISIBLE_FIELDS, **(hall.visible_fields or {}), **data.visibleFields}
        if data.allowedActions is not None:
            hall.allowed_actions = {**DEFAULT_ALLOWED_ACTIONS, **(hall.allowed_actions or {}), **data.allowedActions}
        if data.active is not None:
            hall.active = data.active
        if data.sortOrder is not None:
            hall.sort_order = data.sortOrder
        return self._commit(hall)

    def delete_hall(self, instance_id: int, hall_id: int) -> dict:
        hall = self.get_hall(instance_id, hall_id)
        self.db.query(UserRole).filter(UserRole.hall_id == hall.id).update(
            {UserRole.hall_id: None}, synchronize_session=False
        )
        self.db.delete(hall)
        self.db.commit()
        return {"message": "Hall deleted"}

    # ------------------------------------------------------------------
    # Kiosk
    # ------------------------------------------------------------------

    def get_board(self, instance_id: int, hall_id: int, day: date) -> dict:
        """Reservations on the hall's stations for a day, reduced to the visible fields"""
        hall = self.get_hall(instance_id, hall_id)
        if not hall.active:
            raise HTTPException(status_code=404, detail="Hall not found")

        visible = visible_fields_of(hall)
        station_ids = hall.station_ids or []
        stations = []
        reservations = []
        if station_ids:
            stations = (
                self.db.query(Station)
                .filter(Station.id.in_(station_ids), Station.active.is_(True))
                .order_by(Station.sort_order, Station.id)
                .all()
            )
            for r in ReservationRepository.list_range(self.db, instance_id, day, day):
                if r.station_id not in station_ids or r.status in HIDDEN_ON_BOARD:
                    continue
                reservations.append(self._board_item(instance_id, r, visible))

        return {
            "hall": {"id": hall.id, "name": hall.name, "slug": hall.slug},
            "date": day.isoformat(),
            "stations": [{"id": s.id, "name": s.name, "type": s.type, "color": s.color} for s in stations],
            "reservations": reservations,
            "visibleFields": visible,
            "allowedActions": {**DEFAULT_ALLOWED_ACTIONS, **(hall.allowed_actions or {})},
        }

    def service_names(self, instance_id: int) -> dict[int, str]:
        services = self.db.query(Service).filter(Service.instance_id == instance_id).all()
        return {s.id: s.short_name or s.name for s in services}

    def _board_item(self, instance_id: int, reservation, visible: dict) -> dict:
        names = None
        if visible.get("services"):
            services = ReservationRepository.get_services(self.db, instance_id, reservation.service_ids or [])
            names = [s.short_name or s.name for s in services]
        return project_record(to_record(reservation), visible, names)

    def perform_action(self, instance_id: int, hall_id: int, reservation_id: int, data: HallAction, user: User) -> dict:
        """Apply a kiosk action and return the reservation as the hall board shows it"""
        hall = self.get_hall(instance_id, hall_id)
        actions = {**DEFAULT_ALLOWED_ACTIONS, **(hall.allowed_actions or {})}
        if not actions.get(data.action):
            raise HTTPException(status_code=403, detail=f"Action '{data.action}' is not allowed in this hall")

        reservation = self.reservations.get_reservation(instance_id, reservation_id)
        station_ids = hall.station_ids or []
        if reservation.station_id not in station_ids:
            raise HTTPException(status_code=404, detail="Reservation not found")

        actor = Actor("hall", user.username, user.id)

        if data.action in STATUS_ACTIONS:
            before = snapshot(reservation)
            self.reservations.apply_status(reservation, STATUS_ACTIONS[data.action], actor)
            logger.info(f"🏁 Hall {hall.slug}: {data.action} on reservation {reservation.id}")
            updated = self.reservations.save_update(reservation, before, actor)
            return self._board_item(instance_id, updated, visible_fields_of(hall))

        if data.action == "change_station":
            if data.stationId is None or data.stationId not in station_ids:
                raise HTTPException(status_code=400, detail="Target station is not part of this hall")
            move = ReservationMove(
                stationId=data.stationId,
                reservationDate=reservation.reservation_date,
                startTime=reservation.start_time,
            )
        else:
            if data.startTime is None:
                raise HTTPException(status_code=400, detail="startTime is required")
            move = ReservationMove(
                stationId=reservation.station_id,
                reservationDate=data.reservationDate or reservation.reservation_date,
                startTime=data.startTime,
            )
        moved = self.reservations.move_reservation(instance_id, reservation.id, move, actor)
        return self._board_item(instance_id, moved, visible_fields_of(hall))
