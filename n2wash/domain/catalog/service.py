"""Service catalog - what an instance offers, with durations and S/M/L prices"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Service
from .schemas import ServiceCreate, ServiceUpdate

logger = logging.getLogger(__name__)


class CatalogService:
    def __init__(self, db: Session):
        self.db = db

    def list_services(self, instance_id: int, active_only: bool = False) -> list[Service]:
        query = self.db.query(Service).filter(Service.instance_id == instance_id)
        if active_only:
            query = query.filter(Service.active.is_(True))
        return query.order_by(Service.sort_order, Service.name).all()

    def get_service(self, instance_id: int, service_id: int) -> Service:
        service = (
            self.db.query(Service)
            .filter(Service.id == service_id, Service.instance_id == instance_id)
            .first()
        )
        if not service:
            raise HTTPException(status_code=404, detail="Service not found")
        return service

    def create_service(self, instance_id: int, data: ServiceCreate) -> Service:
        service = Service(
            instance_id=instance_id,
            name=data.name,
            short_name=data.shortName,
            description=data.description,
            duration_minutes=data.durationMinutes,
            price_small=data.priceSmall,
            price_medium=data.priceMedium,
            price_large=data.priceLarge,
            price_from=data.priceFrom,
            station_type=data.stationType,
            sort_order=data.sortOrder or 0,
        )
        self.db.add(service)
        self.db.commit()
        self.db.refresh(service)
        return service

    def update_service(self, instance_id: int, service_id: int, data: ServiceUpdate) -> Service:
        service = self.get_service(instance_id, service_id)
        updates = {
            "name": data.name,
            "short_name": data.shortName,
            "description": data.description,
            "duration_minutes": data.durationMinutes,
            "price_small": data.priceSmall,
            "price_medium": data.priceMedium,
            "price_large": data.priceLarge,
            "price_from": data.priceFrom,
            "station_type": data.stationType,
            "active": data.active,
            "sort_order": data.sortOrder,
        }
        for key, value in updates.items():
            if value is not None:
                setattr(service, key, value)
        self.db.commit()
        self.db.refresh(service)
        return service

    def deactivate_service(self, instance_id: int, service_id: int) -> dict:
        """Services stay referenced by past reservations, so they are only deactivated"""
        service = self.get_service(instance_id, service_id)
        service.active = False
        self.db.commit()
        return {"message": "Service deactivated"}
