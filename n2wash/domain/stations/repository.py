"""Station repository - Database operations for stations"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Station


class StationRepository:
    """Repository for station database operations"""

    @staticmethod
    def get_stations(db: Session, instance_id: int, active_only: bool = False) -> list[Station]:
        query = db.query(Station).filter(Station.instance_id == instance_id)
        if active_only:
            query = query.filter(Station.active.is_(True))
        return query.order_by(Station.sort_order, Station.id).all()

    @staticmethod
    def get_station_by_id(db: Session, instance_id: int, station_id: int) -> Optional[Station]:
        return (
            db.query(Station)
            .filter(Station.id == station_id, Station.instance_id == instance_id)
            .first()
        )

    @staticmethod
    def next_sort_order(db: Session, instance_id: int) -> int:
        current = db.query(func.max(Station.sort_order)).filter(Station.instance_id == instance_id).scalar()
        return (current or 0) + 1

    @staticmethod
    def create_station(db: Session, instance_id: int, **station_data) -> Station:
        station = Station(instance_id=instance_id, **station_data)
        db.add(station)
        db.commit()
        db.refresh(station)
        return station

    @staticmethod
    def update_station(db: Session, station: Station, **updates) -> Station:
        """Update a station with provided fields"""
        for key, value in updates.items():
            if value is not None and hasattr(station, key):
                setattr(station, key, value)
        db.commit()
        db.refresh(station)
        return station

    @staticmethod
    def delete_station(db: Session, station: Station) -> None:
        db.delete(station)
        db.commit()
