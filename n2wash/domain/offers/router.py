"""Offer router - admin CRUD and the public offer link"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ...auth import require_instance_role
from ...database import get_db
from ...models import User
from .schemas import OfferCreate, OfferResponse, OfferUpdate, OfferViewRequest
from .service import OfferService

router = APIRouter(tags=["Offers"])

staff = require_instance_role("admin", "employee")


def get_offer_service(db: Session = Depends(get_db)) -> OfferService:
    return OfferService(db)


@router.get("/instances/{instance_id}/offers", response_model=list[OfferResponse])
async def list_offers(
    instance_id: int,
    status: Optional[str] = Query(None),
    current_user: User = Depends(staff),
    service: OfferService = Depends(get_offer_service),
):
    return service.list_offers(instance_id, status)


@router.post("/instances/{instance_id}/offers", response_model=OfferResponse, status_code=201)
async def create_offer(
    instance_id: int,
    data: OfferCreate,
    current_user: User = Depends(staff),
    service: OfferService = Depends(get_offer_service),
):
    return service.create_offer(instance_id, data, current_user)


@router.get("/instances/{instance_id}/offers/{offer_id}", response_model=OfferResponse)
async def get_offer(
    instance_id: int,
    offer_id: int,
    current_user: User = Depends(staff),
    service: OfferService = Depends(get_offer_service),
):
    return service.get_offer(instance_id, offer_id)


@router.put("/instances/{instance_id}/offers/{offer_id}", response_model=OfferResponse)
async def update_offer(
    instance_id: int,
    offer_id: int,
    data: OfferUpdate,
    current_user: User = Depends(staff),
    service: OfferService = Depends(get_offer_service),
):
    return service.update_offer(instance_id, offer_id, data)


@router.post("/instances/{instance_id}/offers/{offer_id}/send", response_model=OfferResponse)
async def mark_offer_sent(
    instance_id: int,
    offer_id: int,
    current_user: User = Depends(staff),
    service: OfferService = Depends(get_offer_service),
):
    """Mark the offer as sent once its public link went out to the customer"""
    return service.mark_sent(instance_id, offer_id)


@router.delete("/instances/{instance_id}/offers/{offer_id}")
async def delete_offer(
    instance_id: int,
    offer_id: int,
    current_user: User = Depends(require_instance_role("admin")),
    service: OfferService = Depends(get_offer_service),
):
    return service.delete_offer(instance_id, offer_id)


@router.get("/instances/{instance_id}/offers/{offer_id}/views")
async def list_offer_views(
    instance_id: int,
    offer_id: int,
    current_user: User = Depends(staff),
    service: OfferService = Depends(get_offer_service),
):
    return [
        {"id": v.id, "userAgent": v.user_agent, "durationSeconds": v.duration_seconds, "createdAt": v.created_at}
        for v in service.get_views(instance_id, offer_id)
    ]


@router.post("/public/offers/{token}/view")
async def view_public_offer(
    token: str,
    request: Request,
    data: Optional[OfferViewRequest] = None,
    service: OfferService = Depends(get_offer_service),
):
    duration = data.durationSeconds if data else None
    return await service.view_public(token, request.headers.get("user-agent"), duration)


@router.post("/public/offers/{token}/accept")
async def accept_public_offer(token: str, service: OfferService = Depends(get_offer_service)):
    return await service.respond_public(token, accept=True)


@router.post("/public/offers/{token}/reject")
async def reject_public_offer(token: str, service: OfferService = Depends(get_offer_service)):
    return await service.respond_public(token, accept=False)
