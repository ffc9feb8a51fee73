"""
Public booking service - the customer-facing side of the calendar.

Flow: the customer picks services and a slot, requests an SMS code, and the
reservation is only created once the code is verified. Afterwards the
confirmation code from the SMS link gives access to "my reservation", where
the booking can be cancelled or a change can be requested until the
instance's edit cutoff.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import SMS_CODE_TTL_HOURS
from ...models import Customer, Instance, Reservation, Service, SmsVerificationCode, Station
from ...plan_limits import check_sms_available
from ...security import generate_verification_code
from ...services import sms_gateway
from ...services.sms_templates import build_verification_sms, reservation_edit_url
from ...shared.timeutils import minutes_until_start, to_datetime, to_local, utcnow
from ...shared.validators import normalize_phone_or_fallback
from ..availability.service import AvailabilityService
from ..notifications.service import notify
from ..reservations.history import Actor, snapshot
from ..reservations.repository import ReservationRepository
from ..reservations.service import ReservationService, span_end
from .schemas import BookingData, ChangeRequest, SmsCodeRequest, VerifyCodeRequest

logger = logging.getLogger(__name__)

CUSTOMER_EDITABLE_STATUSES = ("pending", "confirmed")
MISSING_PLATE = "BRAK"


class PublicBookingService:
    def __init__(self, db: Session, reservations: Optional[ReservationService] = None):
        self.db = db
        self.reservations = reservations or ReservationService(db)
        self.availability = AvailabilityService(db)

    # ------------------------------------------------------------------
    # Instance profile and calendar
    # ------------------------------------------------------------------

    def get_instance_profile(self, instance: Instance) -> dict:
        services = (
            self.db.query(Service)
            .filter(Service.instance_id == instance.id, Service.active.is_(True))
            .order_by(Service.sort_order, Service.name)
            .all()
        )
        stations = (
            self.db.query(Station)
            .filter(Station.instance_id == instance.id, Station.active.is_(True))
            .order_by(Station.sort_order, Station.id)
            .all()
        )
        return {
            "id": instance.id,
            "name": instance.name,
            "slug": instance.slug,
            "phone": instance.reservation_phone or instance.phone,
            "email": instance.email,
            "address": instance.address,
            "googleMapsUrl": instance.google_maps_url,
            "website": instance.website,
            "socialFacebook": instance.social_facebook,
            "socialInstagram": instance.social_instagram,
            "logoKey": instance.logo_url,
            "primaryColor": instance.primary_color,
            "timezone": instance.timezone,
            "workingHours": instance.working_hours or {},
            "bookingDaysAhead": instance.booking_days_ahead,
            "autoConfirmReservations": instance.auto_confirm_reservations,
            "customerEditCutoffHours": instance.customer_edit_cutoff_hours,
            "services": [
                {
                    "id": s.id,
                    "name": s.name,
                    "shortName": s.short_name,
                    "description": s.description,
                    "durationMinutes": s.duration_minutes,
                    "priceSmall": s.price_small,
                    "priceMedium": s.price_medium,
                    "priceLarge": s.price_large,
                    "priceFrom": s.price_from,
                    "stationType": s.station_type,
                }
                for s in services
            ],
            "stations": [{"id": s.id, "name": s.name, "type": s.type} for s in stations],
        }

    def get_availability(self, instance: Instance, date_from: date, date_to: date) -> list[dict]:
        if (date_to - date_from).days > instance.booking_days_ahead:
            raise HTTPException(status_code=400, detail="Date range too large")
        return self.availability.get_availability_blocks(instance.id, date_from, date_to)

    def get_free_slots(self, instance: Instance, day: date, service_ids: list[int], car_size: Optional[str] = None) -> list[dict]:
        self._check_booking_window(instance, day)
        duration, _ = self.reservations.quote_services(instance.id, service_ids, car_size)
        station_type = self._station_type(instance.id, service_ids)
        return self.availability.get_free_slots(instance.id, day, duration, station_type=station_type)

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _check_booking_window(self, instance: Instance, day: date, start_time: Optional[str] = None,
                              now: Optional[datetime] = None):
        local_now = to_local(now or utcnow(), instance.timezone)
        today = local_now.date()
        if day < today or (day == today and start_time and start_time < local_now.strftime("%H:%M")):
            raise HTTPException(status_code=400, detail="Cannot book a date in the past")
        if day > today + timedelta(days=instance.booking_days_ahead):
            raise HTTPException(status_code=400, detail="Date is beyond the booking horizon")

    def _station_type(self, instance_id: int, service_ids: list[int]) -> Optional[str]:
        types = {s.station_type for s in ReservationRepository.get_services(self.db, instance_id, service_ids)}
        types.discard(None)
        return types.pop() if len(types) == 1 else None

    def _plan_slot(self, instance: Instance, day: date, start_time: str, service_ids: list[int],
                   car_size: Optional[str], station_id: Optional[int], exclude_ids: tuple = ()) -> dict:
        """
        Resolve duration, price, end and station for a requested slot.
        The start must be a free slot inside working hours; without an
        explicit station the first station free at that time is used.
        """
        self._check_booking_window(instance, day, start_time)
        duration, price = self.reservations.quote_services(instance.id, service_ids, car_size)
        end_time, end_date = span_end(to_datetime(day, start_time), duration)

        station_type = self._station_type(instance.id, service_ids) if station_id is None else None
        slots = self.availability.get_free_slots(
            instance.id, day, duration, station_id=station_id, station_type=station_type, exclude_ids=exclude_ids
        )
        slot = next((s for s in slots if s["time"] == start_time), None)
        if slot is None or (station_id is not None and station_id not in slot["stationIds"]):
            raise HTTPException(status_code=409, detail="Selected time is no longer available")
        station_id = slot["stationIds"][0]

        return {
            "station_id": station_id,
            "reservation_date": day,
            "end_date": end_date,
            "start_time": start_time,
            "end_time": end_time,
            "price": price,
        }

    def _get_by_code(self, instance: Instance, confirmation_code: str) -> Reservation:
        reservation = ReservationRepository.get_by_code(self.db, instance.id, confirmation_code)
        if not reservation:
            raise HTTPException(status_code=404, detail="Reservation not found")
        return reservation

    def _check_customer_can_edit(self, instance: Instance, reservation: Reservation, now: Optional[datetime] = None):
        if reservation.status not in CUSTOMER_EDITABLE_STATUSES:
            raise HTTPException(status_code=400, detail="Reservation can no longer be changed")
        minutes_left = minutes_until_start(
            now or utcnow(), reservation.reservation_date, reservation.start_time, instance.timezone
        )
        if minutes_left < instance.customer_edit_cutoff_hours * 60:
            raise HTTPException(
                status_code=400,
                detail=f"Changes are possible up to {instance.customer_edit_cutoff_hours}h before the visit",
            )

    # ------------------------------------------------------------------
    # SMS verification and booking
    # ------------------------------------------------------------------

    async def request_sms_code(self, instance: Instance, data: SmsCodeRequest) -> dict:
        """Store a verification code with the reservation draft and text it to the customer"""
        booking = data.reservationData
        self._plan_slot(instance, booking.date, booking.time, booking.serviceIds, booking.carSize, booking.stationId)

        if not check_sms_available(self.db, instance.id):
            raise HTTPException(status_code=429, detail="SMS_LIMIT_EXCEEDED")

        phone = normalize_phone_or_fallback(data.phone)
        code = generate_verification_code()
        self.db.add(
            SmsVerificationCode(
                instance_id=instance.id,
                phone=phone,
                code=code,
                reservation_data=booking.model_dump(mode="json"),
                expires_at=utcnow() + timedelta(hours=SMS_CODE_TTL_HOURS),
            )
        )
        self.db.commit()

        success, error = await sms_gateway.send_sms(
            self.db,
            instance.id,
            phone,
            build_verification_sms(sms_gateway.instance_sms_name(instance), code),
            "verification_code",
        )
        if not success:
            status_code = 429 if error == "SMS_LIMIT_EXCEEDED" else 502
            raise HTTPException(status_code=status_code, detail=error or "Failed to send SMS")

        response = {"success": True}
        if sms_gateway.is_dev_mode():
            response["devCode"] = code
        return response

    async def verify_code(self, instance: Instance, data: VerifyCodeRequest) -> dict:
        """Create the reservation from a verified code"""
        phone = normalize_phone_or_fallback(data.phone)
        verification = (
            self.db.query(SmsVerificationCode)
            .filter(
                SmsVerificationCode.instance_id == instance.id,
                SmsVerificationCode.phone == phone,
                SmsVerificationCode.code == data.code.strip(),
                SmsVerificationCode.verified.is_(False),
                SmsVerificationCode.expires_at >= utcnow(),
            )
            .order_by(SmsVerificationCode.created_at.desc(), SmsVerificationCode.id.desc())
            .first()
        )
        if not verification:
            raise HTTPException(status_code=400, detail="Invalid or expired code")

        booking = BookingData.model_validate(verification.reservation_data)
        fields = self._plan_slot(
            instance, booking.date, booking.time, booking.serviceIds, booking.carSize, booking.stationId
        )
        fields.update(
            {
                "service_ids": booking.serviceIds,
                "customer_name": booking.customerName,
                "customer_phone": phone,
                "customer_email": booking.customerEmail,
                "vehicle_plate": booking.vehiclePlate or MISSING_PLATE,
                "car_size": booking.carSize,
                "customer_notes": booking.notes,
                "status": "confirmed" if instance.auto_confirm_reservations else "pending",
                "source": "customer",
            }
        )

        verification.verified = True
        actor = Actor.customer(booking.customerName)
        reservation = self.reservations.insert_reservation(instance.id, fields, actor)
        self._upsert_customer(instance.id, phone, booking.customerName, booking.customerEmail)

        await self.reservations.send_confirmation_sms(instance.id, reservation.id, reservation=reservation)
        await notify(
            self.db,
            instance.id,
            "new_reservation",
            f"Nowa rezerwacja: {reservation.customer_name}",
            f"{reservation.reservation_date.isoformat()} {reservation.start_time}-{reservation.end_time}",
            entity_type="reservation",
            entity_id=reservation.id,
        )

        return {
            "success": True,
            "reservation": {
                "id": reservation.id,
                "confirmationCode": reservation.confirmation_code,
                "date": reservation.reservation_date.isoformat(),
                "time": reservation.start_time,
                "endTime": reservation.end_time,
                "status": reservation.status,
                "reservationUrl": reservation_edit_url(instance.slug, reservation.confirmation_code),
            },
        }

    def _upsert_customer(self, instance_id: int, phone: str, name: str, email: Optional[str]) -> Customer:
        customer = (
            self.db.query(Customer)
            .filter(Customer.instance_id == instance_id, Customer.phone == phone)
            .first()
        )
        if customer is None:
            customer = Customer(instance_id=instance_id, phone=phone, name=name)
            self.db.add(customer)
        customer.name = name
        if email:
            customer.email = email
        customer.phone_verified = True
        self.db.commit()
        return customer

    # ------------------------------------------------------------------
    # My reservation
    # ------------------------------------------------------------------

    def get_my_reservation(self, instance: Instance, confirmation_code: str, now: Optional[datetime] = None) -> dict:
        reservation = self._get_by_code(instance, confirmation_code)
        services = ReservationRepository.get_services(self.db, instance.id, reservation.service_ids or [])
        pending_change = ReservationRepository.pending_change_request(self.db, reservation.id)

        try:
            self._check_customer_can_edit(instance, reservation, now)
            can_edit = True
        except HTTPException:
            can_edit = False

        return {
            "confirmationCode": reservation.confirmation_code,
            "status": reservation.status,
            "date": reservation.reservation_date.isoformat(),
            "endDate": reservation.end_date.isoformat() if reservation.end_date else None,
            "startTime": reservation.start_time,
            "endTime": reservation.end_time,
            "customerName": reservation.customer_name,
            "vehiclePlate": reservation.vehicle_plate,
            "carSize": reservation.car_size,
            "price": reservation.price,
            "services": [{"id": s.id, "name": s.name} for s in services],
            "stationName": reservation.station.name if reservation.station else None,
            "canCancel": can_edit,
            "canRequestChange": can_edit and pending_change is None,
            "pendingChange": (
                {
                    "date": pending_change.reservation_date.isoformat(),
                    "startTime": pending_change.start_time,
                    "endTime": pending_change.end_time,
                }
                if pending_change
                else None
            ),
            "instance": {
                "name": instance.name,
                "phone": instance.reservation_phone or instance.phone,
                "address": instance.address,
                "googleMapsUrl": instance.google_maps_url,
            },
        }

    async def cancel_reservation(self, instance: Instance, confirmation_code: str, now: Optional[datetime] = None) -> dict:
        reservation = self._get_by_code(instance, confirmation_code)
        self._check_customer_can_edit(instance, reservation, now)

        actor = Actor.customer(reservation.customer_name)
        before = snapshot(reservation)
        self.reservations.apply_status(reservation, "cancelled", actor)
        reservation.cancelled_by = "customer"
        reservation.edited_by_customer_at = utcnow()
        self.reservations.save_update(reservation, before, actor)
        logger.info(f"🚫 Reservation {reservation.id} cancelled by customer")

        await notify(
            self.db,
            instance.id,
            "reservation_cancelled",
            f"Klient anulował rezerwację: {reservation.customer_name}",
            f"{reservation.reservation_date.isoformat()} {reservation.start_time}",
            entity_type="reservation",
            entity_id=reservation.id,
        )
        return {"success": True, "status": reservation.status}

    async def request_change(self, instance: Instance, confirmation_code: str, data: ChangeRequest,
                             now: Optional[datetime] = None) -> dict:
        """Create a change_requested reservation pointing at the original"""
        original = self._get_by_code(instance, confirmation_code)
        self._check_customer_can_edit(instance, original, now)
        if ReservationRepository.pending_change_request(self.db, original.id):
            raise HTTPException(status_code=409, detail="A change request is already pending")

        service_ids = data.serviceIds or original.service_ids or []
        car_size = data.carSize or original.car_size
        station_id = data.stationId or original.station_id
        fields = self._plan_slot(
            instance, data.date, data.time, service_ids, car_size, station_id, exclude_ids=(original.id,)
        )
        fields.update(
            {
                "service_ids": service_ids,
                "customer_name": original.customer_name,
                "customer_phone": original.customer_phone,
                "customer_email": original.customer_email,
                "vehicle_plate": original.vehicle_plate,
                "car_size": car_size,
                "customer_notes": original.customer_notes,
                "status": "change_requested",
                "source": "customer",
                "original_reservation_id": original.id,
                "change_request_note": data.note,
                "edited_by_customer_at": utcnow(),
                "exclude_ids": (original.id,),
            }
        )

        request = self.reservations.insert_reservation(instance.id, fields, Actor.customer(original.customer_name))
        logger.info(f"✏️ Change request {request.id} submitted for reservation {original.id}")

        await notify(
            self.db,
            instance.id,
            "change_requested",
            f"Prośba o zmianę terminu: {original.customer_name}",
            f"{original.reservation_date.isoformat()} {original.start_time} -> "
            f"{request.reservation_date.isoformat()} {request.start_time}",
            entity_type="reservation",
            entity_id=request.id,
        )
        return {
            "success": True,
            "changeRequest": {
                "date": request.reservation_date.isoformat(),
                "startTime": request.start_time,
                "endTime": request.end_time,
                "status": request.status,
            },
        }
