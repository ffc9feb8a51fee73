import asyncio
import contextlib
import time
from datetime import date

import pytest
from conftest import make_instance, make_user, reservation_payload
from starlette.websockets import WebSocketDisconnect

from n2wash.domain.halls.service import HallFeed
from n2wash.models import ROLE_HALL, Hall, Station
from n2wash.realtime.broker import RealtimeBroker, broker
from n2wash.realtime.router import stream_events
from n2wash.realtime.sync import FALLBACK_POLL_INTERVAL, ReservationSync, reconnect_delay_ms
from n2wash.security import create_access_token


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def _record(rid, day="2025-07-20", **extra):
    return {"id": rid, "reservation_date": day, "status": "confirmed", **extra}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sync(clock):
    fetched = []

    def fetch(loaded_from):
        fetched.append(loaded_from)
        return [_record(1), _record(2)]

    sync = ReservationSync(fetch, date(2025, 7, 1), clock=clock)
    sync.fetched = fetched
    sync.load()
    return sync


class TestBroker:
    def test_publish_reaches_only_instance_subscribers(self):
        local = RealtimeBroker()

        async def scenario():
            mine = local.subscribe(1)
            other = local.subscribe(2)
            assert local.publish(1, "INSERT", {"id": 7}) == 1
            message = await asyncio.wait_for(mine.get(), timeout=1)
            assert other.queue.empty()
            local.unsubscribe(mine)
            local.unsubscribe(other)
            return message

        assert asyncio.run(scenario()) == {"type": "INSERT", "table": "reservations", "record": {"id": 7}}
        assert local.subscriber_count(1) == 0

    def test_publish_without_subscribers(self):
        assert RealtimeBroker().publish(1, "DELETE", {"id": 1}) == 0

    def test_closed_loop_drops_subscriber(self):
        local = RealtimeBroker()

        async def subscribe():
            return local.subscribe(3)

        asyncio.run(subscribe())
        assert local.subscriber_count(3) == 1
        assert local.publish(3, "UPDATE", {"id": 1}) == 0
        assert local.subscriber_count(3) == 0


class TestReservationSync:
    def test_insert_update_delete(self, sync):
        assert sync.apply_event({"type": "INSERT", "record": _record(3)}) is True
        assert sync.apply_event({"type": "UPDATE", "record": _record(1, status="completed")}) is True
        assert sync.apply_event({"type": "DELETE", "record": {"id": 2}}) is True
        assert sync.apply_event({"type": "DELETE", "record": {"id": 99}}) is False
        assert sorted(sync.reservations) == [1, 3]
        assert sync.reservations[1]["status"] == "completed"

    def test_insert_before_loaded_range_is_ignored(self, sync):
        assert sync.apply_event({"type": "INSERT", "record": _record(5, day="2025-06-30")}) is False
        assert 5 not in sync.reservations

    def test_unknown_or_incomplete_events(self, sync):
        assert sync.apply_event({"type": "TRUNCATE", "record": {"id": 1}}) is False
        assert sync.apply_event({"type": "INSERT", "record": {}}) is False

    def test_local_update_hides_echo_for_grace_period(self, sync, clock):
        result = sync.optimistic_update(1, {"status": "in_progress"}, lambda: "ok")
        assert result == "ok"

        clock.now += 2.9
        assert sync.apply_event({"type": "UPDATE", "record": _record(1, status="confirmed")}) is False
        assert sync.reservations[1]["status"] == "in_progress"

        clock.now += 0.2
        assert sync.apply_event({"type": "UPDATE", "record": _record(1, status="completed")}) is True
        assert sync.reservations[1]["status"] == "completed"

    def test_failed_optimistic_update_rolls_back(self, sync):
        def failing():
            raise RuntimeError("409 Conflict")

        with pytest.raises(RuntimeError):
            sync.optimistic_update(1, {"start_time": "14:00"}, failing)
        assert "start_time" not in sync.reservations[1]
        assert sync.apply_event({"type": "UPDATE", "record": _record(1, status="cancelled")}) is True

    def test_refetch_is_rate_limited(self, sync, clock):
        assert sync.refetch() is False
        clock.now += 10
        assert sync.refetch() is True
        assert sync.refetch(force=True) is True
        assert len(sync.fetched) == 3

    def test_backoff_and_fallback(self, sync):
        assert reconnect_delay_ms(1) == 1500
        assert reconnect_delay_ms(20) == 30000

        delays = [sync.on_disconnected() for _ in range(6)]
        assert delays[:5] == [reconnect_delay_ms(n) / 1000 for n in range(1, 6)]
        assert delays[5] == FALLBACK_POLL_INTERVAL
        assert sync.in_fallback is True

        sync.on_connected()
        assert (sync.connected, sync.retry_count) == (True, 0)

    def test_run_reconnects_and_consumes(self, sync, clock):
        stop = asyncio.Event()
        attempts = []
        sleeps = []

        class Feed:
            def __init__(self, messages):
                self.messages = messages

            def __aiter__(self):
                return self

            async def __anext__(self):
                if not self.messages:
                    raise StopAsyncIteration
                return self.messages.pop(0)

        @contextlib.asynccontextmanager
        async def connect():
            attempts.append(1)
            if len(attempts) == 1:
                raise ConnectionError("refused")
            yield Feed(['{"type": "INSERT", "record": {"id": 9, "reservation_date": "2025-07-21"}}'])

        async def sleep(delay):
            sleeps.append(delay)
            clock.now += 60
            if len(sleeps) == 2:
                stop.set()

        asyncio.run(sync.run(connect, sleep=sleep, stop=stop))
        assert len(attempts) == 2
        assert sleeps == [1.5, 1.5]
        assert len(sync.fetched) == 3


class TestWebSocketFeed:
    def test_missing_token_is_refused(self, client, instance):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/ws/instances/{instance.id}/reservations") as ws:
                ws.receive_json()
        assert exc_info.value.code == 4401

    def test_foreign_instance_is_refused(self, client, db, instance, admin):
        other = make_instance(db, slug="other")
        token = create_access_token(admin.id, admin.instance_id)
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/ws/instances/{other.id}/reservations?token={token}") as ws:
                ws.receive_json()
        assert exc_info.value.code == 4403

    def test_created_reservation_is_streamed(self, client, db, instance, station, booking_day):
        employee = make_user(db, instance, "worker", role="employee")
        token = create_access_token(employee.id, employee.instance_id)
        headers = {"Authorization": f"Bearer {token}"}

        with client.websocket_connect(f"/ws/instances/{instance.id}/reservations?token={token}") as ws:
            deadline = time.monotonic() + 5
            while broker.subscriber_count(instance.id) == 0 and time.monotonic() < deadline:
                time.sleep(0.01)

            response = client.post(
                f"/instances/{instance.id}/reservations",
                json=reservation_payload(station.id, booking_day),
                headers=headers,
            )
            assert response.status_code == 201
            message = ws.receive_json()

        assert message["type"] == "INSERT"
        assert message["table"] == "reservations"
        assert message["record"]["id"] == response.json()["id"]

    def test_hall_account_gets_only_its_stations(self, client, db, instance, station, admin_headers, booking_day):
        other = Station(instance_id=instance.id, name="Stanowisko 2", sort_order=2)
        hall = Hall(instance_id=instance.id, name="Hala", slug="hala", station_ids=[station.id])
        db.add_all([other, hall])
        db.commit()
        kiosk = make_user(db, instance, "kiosk", role=ROLE_HALL, hall_id=hall.id)
        token = create_access_token(kiosk.id, kiosk.instance_id)

        with client.websocket_connect(f"/ws/instances/{instance.id}/reservations?token={token}") as ws:
            deadline = time.monotonic() + 5
            while broker.subscriber_count(instance.id) == 0 and time.monotonic() < deadline:
                time.sleep(0.01)

            for station_id, start, end in ((other.id, "10:00", "11:00"), (station.id, "12:00", "13:00")):
                response = client.post(
                    f"/instances/{instance.id}/reservations",
                    json=reservation_payload(station_id, booking_day, start, end, adminNotes="Klient VIP"),
                    headers=admin_headers,
                )
                assert response.status_code == 201
            message = ws.receive_json()

        assert message["type"] == "INSERT"
        record = message["record"]
        assert record["id"] == response.json()["id"]
        assert record["station_id"] == station.id
        assert record["customer_name"] == "Jan Kowalski"
        assert "customer_phone" not in record
        assert "admin_notes" not in record

    def test_hall_account_without_hall_is_refused(self, client, db, instance):
        kiosk = make_user(db, instance, "kiosk", role=ROLE_HALL)
        token = create_access_token(kiosk.id, kiosk.instance_id)
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/ws/instances/{instance.id}/reservations?token={token}") as ws:
                ws.receive_json()
        assert exc_info.value.code == 4403


class TestHallFeed:
    @pytest.fixture
    def feed(self):
        hall = Hall(id=1, instance_id=1, name="Hala", slug="hala", station_ids=[5], visible_fields={"services": True})
        return HallFeed(hall, {10: "Mycie", 11: "Wosk"})

    def test_projects_records_on_hall_stations(self, feed):
        record = _record(1, station_id=5, service_ids=[10, 99], customer_phone="+48600123456", admin_notes="VIP")
        message = feed.filter_message({"type": "UPDATE", "table": "reservations", "record": record})
        assert message["type"] == "UPDATE"
        assert message["record"]["services"] == ["Mycie"]
        assert "customer_phone" not in message["record"]
        assert "admin_notes" not in message["record"]

    def test_other_stations(self, feed):
        record = _record(2, station_id=6, customer_phone="+48600123456")
        assert feed.filter_message({"type": "INSERT", "table": "reservations", "record": record}) is None
        moved_away = feed.filter_message({"type": "UPDATE", "table": "reservations", "record": record})
        assert moved_away == {"type": "DELETE", "table": "reservations", "record": {"id": 2}}

    def test_hidden_status_and_delete_carry_only_the_id(self, feed):
        cancelled = _record(3, station_id=5, status="cancelled", customer_name="Jan")
        assert feed.filter_message({"type": "UPDATE", "table": "reservations", "record": cancelled})["record"] == {
            "id": 3
        }
        deleted = feed.filter_message({"type": "DELETE", "table": "reservations", "record": _record(4, station_id=5)})
        assert deleted["record"] == {"id": 4}


class SilentSocket:
    """Accepts nothing from the client until the test ends"""

    def __init__(self, send_error=None):
        self.sent = []
        self.send_error = send_error

    async def send_json(self, message):
        if self.send_error:
            raise self.send_error
        self.sent.append(message)

    async def receive_text(self):
        await asyncio.Event().wait()


class DisconnectingSocket(SilentSocket):
    async def receive_text(self):
        await asyncio.sleep(0)
        raise WebSocketDisconnect(code=1000)


class TestStreamEvents:
    def test_send_failure_ends_the_stream(self):
        local = RealtimeBroker()

        async def scenario():
            subscription = local.subscribe(1)
            local.publish(1, "INSERT", {"id": 1})
            await asyncio.wait_for(stream_events(SilentSocket(RuntimeError("socket closed")), subscription), 1)
            local.unsubscribe(subscription)

        asyncio.run(scenario())
        assert local.subscriber_count(1) == 0

    def test_client_disconnect_stops_forwarding(self):
        local = RealtimeBroker()
        socket = DisconnectingSocket()

        async def scenario():
            subscription = local.subscribe(1)
            await asyncio.wait_for(stream_events(socket, subscription), 1)
            local.unsubscribe(subscription)

        asyncio.run(scenario())
        assert socket.sent == []
