"""Public booking router - no authentication, instance taken from the subdomain"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...config import SMS_CODE_RATE_LIMIT, SMS_CODE_RATE_WINDOW_SECONDS
from ...database import get_db
from ...models import Instance
from ...rate_limiter import create_rate_limiter
from ...tenancy import get_public_instance
from ..availability.schemas import AvailabilityBlock, FreeSlot
from .schemas import ChangeRequest, SmsCodeRequest, VerifyCodeRequest
from .service import PublicBookingService

router = APIRouter(prefix="/public", tags=["Public Booking"])

sms_code_limit = create_rate_limiter(SMS_CODE_RATE_LIMIT, SMS_CODE_RATE_WINDOW_SECONDS, "sms_code")
verify_code_limit = create_rate_limiter(SMS_CODE_RATE_LIMIT * 4, SMS_CODE_RATE_WINDOW_SECONDS, "verify_code")


def get_public_booking_service(db: Session = Depends(get_db)) -> PublicBookingService:
    return PublicBookingService(db)


@router.get("/instance")
async def get_instance(
    instance: Instance = Depends(get_public_instance),
    service: PublicBookingService = Depends(get_public_booking_service),
):
    """Public profile: contact data, services, stations and working hours"""
    return service.get_instance_profile(instance)


@router.get("/availability", response_model=list[AvailabilityBlock])
async def get_availability(
    date_from: date = Query(..., alias="from"),
    date_to: date = Query(..., alias="to"),
    instance: Instance = Depends(get_public_instance),
    service: PublicBookingService = Depends(get_public_booking_service),
):
    return service.get_availability(instance, date_from, date_to)


@router.get("/free-slots", response_model=list[FreeSlot])
async def get_free_slots(
    day: date = Query(..., alias="date"),
    service_ids: list[int] = Query(..., alias="serviceIds"),
    car_size: Optional[str] = Query(None, alias="carSize"),
    instance: Instance = Depends(get_public_instance),
    service: PublicBookingService = Depends(get_public_booking_service),
):
    return service.get_free_slots(instance, day, service_ids, car_size)


@router.post("/sms-code")
async def send_sms_code(
    data: SmsCodeRequest,
    _: None = Depends(sms_code_limit),
    instance: Instance = Depends(get_public_instance),
    service: PublicBookingService = Depends(get_public_booking_service),
):
    """Text a verification code for the reservation draft"""
    return await service.request_sms_code(instance, data)


@router.post("/verify-code")
async def verify_code(
    data: VerifyCodeRequest,
    _: None = Depends(verify_code_limit),
    instance: Instance = Depends(get_public_instance),
    service: PublicBookingService = Depends(get_public_booking_service),
):
    """Verify the SMS code and create the reservation"""
    return await service.verify_code(instance, data)


@router.get("/reservations/{confirmation_code}")
async def get_my_reservation(
    confirmation_code: str,
    instance: Instance = Depends(get_public_instance),
    service: PublicBookingService = Depends(get_public_booking_service),
):
    return service.get_my_reservation(instance, confirmation_code)


@router.post("/reservations/{confirmation_code}/cancel")
async def cancel_my_reservation(
    confirmation_code: str,
    instance: Instance = Depends(get_public_instance),
    service: PublicBookingService = Depends(get_public_booking_service),
):
    return await service.cancel_reservation(instance, confirmation_code)


@router.post("/reservations/{confirmation_code}/change")
async def request_change(
    confirmation_code: str,
    data: ChangeRequest,
    instance: Instance = Depends(get_public_instance),
    service: PublicBookingService = Depends(get_public_booking_service),
):
    """Ask the business to move the reservation; an admin approves or rejects it"""
    return await service.request_change(instance, confirmation_code, data)
