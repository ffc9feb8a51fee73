import asyncio
from datetime import timedelta

import pytest
from conftest import make_instance
from fastapi import HTTPException

from n2wash.domain.public_booking.service import PublicBookingService
from n2wash.models import Break, ClosedDay, Customer, Notification, Reservation, SmsLog, SmsVerificationCode, Station
from n2wash.shared.timeutils import local_to_utc

PUBLIC = {"slug": "studio"}


def _booking(service_id, day, time="10:00", **extra):
    data = {"serviceIds": [service_id], "date": day.isoformat(), "time": time, "customerName": "Anna Nowak"}
    data.update(extra)
    return data


def _book(client, service_id, day, time="10:00", phone="600 123 456", **extra):
    response = client.post(
        "/public/sms-code",
        params=PUBLIC,
        json={"phone": phone, "reservationData": _booking(service_id, day, time, **extra)},
    )
    assert response.status_code == 200, response.text
    code = response.json()["devCode"]

    response = client.post("/public/verify-code", params=PUBLIC, json={"phone": phone, "code": code})
    assert response.status_code == 200, response.text
    return response.json()["reservation"]


class TestBookingFlow:
    def test_profile_lists_services_and_stations(self, client, instance, station, wash_service):
        profile = client.get("/public/instance", params=PUBLIC).json()
        assert [s["name"] for s in profile["services"]] == ["Mycie premium"]
        assert profile["stations"] == [{"id": station.id, "name": "Stanowisko 1", "type": "washing"}]
        assert profile["workingHours"]["monday"] == {"open": "08:00", "close": "18:00"}

    def test_free_slots_use_service_duration(self, client, instance, station, wash_service, booking_day):
        response = client.get(
            "/public/free-slots",
            params={**PUBLIC, "date": booking_day.isoformat(), "serviceIds": wash_service.id},
        )
        assert response.status_code == 200
        assert response.json()[-1]["time"] == "16:30"

    def test_verified_code_creates_reservation(self, client, db, instance, station, wash_service, booking_day):
        reservation = _book(client, wash_service.id, booking_day, carSize="medium")
        assert reservation["status"] == "confirmed"
        assert (reservation["time"], reservation["endTime"]) == ("10:00", "11:30")
        assert f"code={reservation['confirmationCode']}&instance=studio" in reservation["reservationUrl"]

        db.expire_all()
        stored = db.get(Reservation, reservation["id"])
        assert stored.station_id == station.id
        assert stored.vehicle_plate == "BRAK"
        assert stored.source == "customer"
        assert stored.customer_phone == "+48600123456"
        assert stored.price == 150
        assert stored.confirmation_sms_sent_at is not None

        customer = db.query(Customer).one()
        assert customer.phone_verified is True
        assert db.query(Notification).one().type == "new_reservation"
        assert {log.message_type for log in db.query(SmsLog)} == {"verification_code", "reservation_confirmed"}
        assert all(log.status == "simulated" for log in db.query(SmsLog))
        assert db.query(SmsVerificationCode).one().verified is True

    def test_pending_without_auto_confirm(self, client, db, instance, station, wash_service, booking_day):
        instance.auto_confirm_reservations = False
        db.commit()
        assert _book(client, wash_service.id, booking_day)["status"] == "pending"

    def test_code_works_once(self, client, instance, station, wash_service, booking_day):
        response = client.post(
            "/public/sms-code",
            params=PUBLIC,
            json={"phone": "600123456", "reservationData": _booking(wash_service.id, booking_day)},
        )
        code = response.json()["devCode"]
        payload = {"phone": "+48 600 123 456", "code": code}
        assert client.post("/public/verify-code", params=PUBLIC, json=payload).status_code == 200
        assert client.post("/public/verify-code", params=PUBLIC, json=payload).status_code == 400

    def test_wrong_code(self, client, instance, station, wash_service, booking_day):
        client.post(
            "/public/sms-code",
            params=PUBLIC,
            json={"phone": "600123456", "reservationData": _booking(wash_service.id, booking_day)},
        )
        response = client.post("/public/verify-code", params=PUBLIC, json={"phone": "600123456", "code": "99999"})
        assert response.status_code == 400

    def test_past_date_is_rejected(self, client, instance, station, wash_service, booking_day):
        yesterday = booking_day - timedelta(days=30)
        response = client.post(
            "/public/sms-code",
            params=PUBLIC,
            json={"phone": "600123456", "reservationData": _booking(wash_service.id, yesterday)},
        )
        assert response.status_code == 400

    def test_beyond_booking_horizon(self, client, instance, station, wash_service, booking_day):
        far = booking_day + timedelta(days=120)
        response = client.post(
            "/public/sms-code",
            params=PUBLIC,
            json={"phone": "600123456", "reservationData": _booking(wash_service.id, far)},
        )
        assert response.status_code == 400

    def test_taken_slot_is_rejected(self, client, instance, station, wash_service, booking_day):
        _book(client, wash_service.id, booking_day)
        response = client.post(
            "/public/sms-code",
            params=PUBLIC,
            json={"phone": "600999888", "reservationData": _booking(wash_service.id, booking_day, "10:30")},
        )
        assert response.status_code == 409

    def test_second_station_is_picked_when_first_is_busy(
        self, client, db, instance, station, wash_service, booking_day
    ):
        second = Station(instance_id=instance.id, name="Stanowisko 2", sort_order=2)
        db.add(second)
        db.commit()
        _book(client, wash_service.id, booking_day)
        other = _book(client, wash_service.id, booking_day, phone="600999888")

        db.expire_all()
        assert db.get(Reservation, other["id"]).station_id == second.id

    def test_no_services_selected(self, client, instance, station, booking_day):
        response = client.post(
            "/public/sms-code",
            params=PUBLIC,
            json={"phone": "600123456", "reservationData": {
                "serviceIds": [], "date": booking_day.isoformat(), "time": "10:00", "customerName": "Anna",
            }},
        )
        assert response.status_code == 422


class TestChosenStation:
    def _request_code(self, client, service_id, day, time, station_id):
        return client.post(
            "/public/sms-code",
            params=PUBLIC,
            json={"phone": "600 123 456", "reservationData": _booking(service_id, day, time, stationId=station_id)},
        )

    def test_outside_working_hours(self, client, instance, station, wash_service, booking_day):
        assert self._request_code(client, wash_service.id, booking_day, "23:00", station.id).status_code == 409
        assert self._request_code(client, wash_service.id, booking_day, "17:00", station.id).status_code == 409

    def test_during_break(self, client, db, instance, station, wash_service, booking_day):
        db.add(
            Break(
                instance_id=instance.id, station_id=station.id, break_date=booking_day, start_time="10:00", end_time="12:00"
            )
        )
        db.commit()
        assert self._request_code(client, wash_service.id, booking_day, "10:30", station.id).status_code == 409
        assert self._request_code(client, wash_service.id, booking_day, "12:00", station.id).status_code == 200

    def test_closed_day(self, client, db, instance, station, wash_service, booking_day):
        db.add(ClosedDay(instance_id=instance.id, closed_date=booking_day, reason="Inwentaryzacja"))
        db.commit()
        assert self._request_code(client, wash_service.id, booking_day, "10:00", station.id).status_code == 409

    def test_station_of_other_instance(self, client, db, instance, station, wash_service, booking_day):
        other = make_instance(db, slug="other")
        foreign = Station(instance_id=other.id, name="Obce")
        db.add(foreign)
        db.commit()
        assert self._request_code(client, wash_service.id, booking_day, "10:00", foreign.id).status_code == 409

    def test_change_request_outside_working_hours(self, client, instance, station, wash_service, booking_day):
        code = _book(client, wash_service.id, booking_day)["confirmationCode"]
        response = client.post(
            f"/public/reservations/{code}/change",
            params=PUBLIC,
            json={"date": booking_day.isoformat(), "time": "23:00"},
        )
        assert response.status_code == 409


class TestMyReservation:
    def test_view_and_cancel(self, client, db, instance, station, wash_service, booking_day):
        code = _book(client, wash_service.id, booking_day)["confirmationCode"]

        details = client.get(f"/public/reservations/{code}", params=PUBLIC).json()
        assert details["canCancel"] is True
        assert details["canRequestChange"] is True
        assert details["services"] == [{"id": wash_service.id, "name": "Mycie premium"}]
        assert details["pendingChange"] is None

        response = client.post(f"/public/reservations/{code}/cancel", params=PUBLIC)
        assert response.json() == {"success": True, "status": "cancelled"}

        db.expire_all()
        reservation = db.query(Reservation).one()
        assert reservation.cancelled_by == "customer"
        assert reservation.edited_by_customer_at is not None
        assert client.get(f"/public/reservations/{code}", params=PUBLIC).json()["canCancel"] is False

    def test_unknown_code(self, client, instance):
        assert client.get("/public/reservations/0000000", params=PUBLIC).status_code == 404

    def test_code_from_other_instance(self, client, db, instance, station, wash_service, booking_day):
        code = _book(client, wash_service.id, booking_day)["confirmationCode"]
        make_instance(db, slug="other")
        assert client.get(f"/public/reservations/{code}", params={"slug": "other"}).status_code == 404

    def test_cutoff_blocks_late_cancellation(self, client, db, instance, station, wash_service, booking_day):
        code = _book(client, wash_service.id, booking_day)["confirmationCode"]
        start = local_to_utc(booking_day, "10:00", instance.timezone)
        service = PublicBookingService(db)

        details = service.get_my_reservation(instance, code, now=start - timedelta(minutes=30))
        assert details["canCancel"] is False

        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(service.cancel_reservation(instance, code, now=start - timedelta(minutes=30)))
        assert exc_info.value.status_code == 400

        result = asyncio.run(service.cancel_reservation(instance, code, now=start - timedelta(hours=2)))
        assert result["status"] == "cancelled"


class TestChangeRequest:
    def test_request_then_approve(self, client, db, instance, station, wash_service, booking_day, admin_headers):
        code = _book(client, wash_service.id, booking_day)["confirmationCode"]
        new_day = booking_day + timedelta(days=1)

        response = client.post(
            f"/public/reservations/{code}/change",
            params=PUBLIC,
            json={"date": new_day.isoformat(), "time": "13:00", "note": "Wolę popołudnie"},
        )
        assert response.status_code == 200
        change = response.json()["changeRequest"]
        assert change == {"date": new_day.isoformat(), "startTime": "13:00", "endTime": "14:30", "status": "change_requested"}

        details = client.get(f"/public/reservations/{code}", params=PUBLIC).json()
        assert details["pendingChange"]["startTime"] == "13:00"
        assert details["canRequestChange"] is False
        assert db.query(Notification).filter(Notification.type == "change_requested").count() == 1

        db.expire_all()
        request = db.query(Reservation).filter(Reservation.status == "change_requested").one()
        assert request.change_request_note == "Wolę popołudnie"
        response = client.post(
            f"/instances/{instance.id}/reservations/{request.id}/approve-change", headers=admin_headers
        )
        assert response.status_code == 200

        db.expire_all()
        statuses = {r.id: r.status for r in db.query(Reservation)}
        assert statuses[request.id] == "confirmed"
        assert statuses[request.original_reservation_id] == "cancelled"

    def test_only_one_pending_change(self, client, instance, station, wash_service, booking_day):
        code = _book(client, wash_service.id, booking_day)["confirmationCode"]
        url = f"/public/reservations/{code}/change"
        payload = {"date": booking_day.isoformat(), "time": "14:00"}
        assert client.post(url, params=PUBLIC, json=payload).status_code == 200
        assert client.post(url, params=PUBLIC, json=payload).status_code == 409

    def test_change_may_overlap_own_slot(self, client, instance, station, wash_service, booking_day):
        code = _book(client, wash_service.id, booking_day)["confirmationCode"]
        response = client.post(
            f"/public/reservations/{code}/change",
            params=PUBLIC,
            json={"date": booking_day.isoformat(), "time": "10:30"},
        )
        assert response.status_code == 200

    def test_cancelled_reservation_cannot_change(self, client, instance, station, wash_service, booking_day):
        code = _book(client, wash_service.id, booking_day)["confirmationCode"]
        client.post(f"/public/reservations/{code}/cancel", params=PUBLIC)
        response = client.post(
            f"/public/reservations/{code}/change",
            params=PUBLIC,
            json={"date": booking_day.isoformat(), "time": "14:00"},
        )
        assert response.status_code == 400
