"""Station service - Business logic for washing bays"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Break, Reservation, Station
from ...plan_limits import can_add_station
from ...shared.timeutils import utcnow
from ..reservations.repository import ReservationRepository
from .repository import StationRepository
from .schemas import StationCreate, StationUpdate

logger = logging.getLogger(__name__)


class StationService:
    """Service layer for station business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = StationRepository()

    def get_stations(self, instance_id: int, active_only: bool = False) -> list[Station]:
        return self.repo.get_stations(self.db, instance_id, active_only)

    def get_station(self, instance_id: int, station_id: int) -> Station:
        station = self.repo.get_station_by_id(self.db, instance_id, station_id)
        if not station:
            raise HTTPException(status_code=404, detail="Station not found")
        return station

    def create_station(self, instance_id: int, data: StationCreate) -> Station:
        """Create a station within the subscription's station limit"""
        can_add, error_message = can_add_station(self.db, instance_id)
        if not can_add:
            logger.warning(f"⚠️ Instance {instance_id} reached station limit: {error_message}")
            raise HTTPException(status_code=403, detail=error_message)

        return self.repo.create_station(
            self.db,
            instance_id,
            name=data.name,
            type=data.type,
            color=data.color,
            active=True,
            sort_order=data.sortOrder if data.sortOrder is not None else self.repo.next_sort_order(self.db, instance_id),
        )

    def update_station(self, instance_id: int, station_id: int, data: StationUpdate) -> Station:
        station = self.get_station(instance_id, station_id)

        if data.active and not station.active:
            can_add, error_message = can_add_station(self.db, instance_id)
            if not can_add:
                logger.warning(f"⚠️ Instance {instance_id} cannot reactivate station {station_id}: {error_message}")
                raise HTTPException(status_code=403, detail=error_message)

        updates = {
            "name": data.name,
            "type": data.type,
            "color": data.color,
            "active": data.active,
            "sort_order": data.sortOrder,
        }
        return self.repo.update_station(self.db, station, **updates)

    def delete_station(self, instance_id: int, station_id: int) -> dict:
        station = self.get_station(instance_id, station_id)

        future = ReservationRepository.future_active_on_station(self.db, station.id, utcnow().date())
        if future:
            raise HTTPException(
                status_code=409,
                detail=f"Station has {future} upcoming reservation(s). Move or cancel them first.",
            )

        self.db.query(Break).filter(Break.station_id == station.id).delete(synchronize_session=False)
        # Past reservations keep their history without the bay
        self.db.query(Reservation).filter(Reservation.station_id == station.id).update(
            {Reservation.station_id: None}, synchronize_session=False
        )
        self.repo.delete_station(self.db, station)
        logger.info(f"🗑️ Station {station_id} deleted from instance {instance_id}")
        return {"message": "Station deleted"}
