from conftest import auth_headers, make_user, reservation_payload

from n2wash.models import ROLE_HALL, Station


def _url(instance, suffix=""):
    return f"/instances/{instance.id}/halls{suffix}"


def _second_station(db, instance):
    station = Station(instance_id=instance.id, name="Stanowisko 2", sort_order=2)
    db.add(station)
    db.commit()
    db.refresh(station)
    return station


def _reserve(client, instance, headers, station_id, day, **kwargs):
    response = client.post(
        f"/instances/{instance.id}/reservations",
        json=reservation_payload(station_id, day, **kwargs),
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


def _create_hall(client, instance, headers, station_ids, **extra):
    response = client.post(
        _url(instance), json={"name": "Hala Główna", "stationIds": station_ids, **extra}, headers=headers
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_create_hall_with_defaults(client, instance, station, admin_headers):
    hall = _create_hall(client, instance, admin_headers, [station.id])
    assert hall["slug"] == "hala-glowna"
    assert hall["station_ids"] == [station.id]
    assert hall["allowed_actions"]["start"] is True
    assert hall["allowed_actions"]["change_time"] is False
    assert hall["visible_fields"]["customer_phone"] is False


def test_duplicate_slug(client, instance, station, admin_headers):
    _create_hall(client, instance, admin_headers, [station.id])
    response = client.post(_url(instance), json={"name": "Hala Główna"}, headers=admin_headers)
    assert response.status_code == 400


def test_unknown_visible_field(client, instance, admin_headers):
    response = client.post(
        _url(instance), json={"name": "Hala", "visibleFields": {"price": True}}, headers=admin_headers
    )
    assert response.status_code == 422


def test_foreign_station_is_rejected(client, instance, admin_headers):
    response = client.post(_url(instance), json={"name": "Hala", "stationIds": [999]}, headers=admin_headers)
    assert response.status_code == 400


def test_board_filters_stations_statuses_and_fields(client, db, instance, station, booking_day, admin_headers):
    other = _second_station(db, instance)
    hall = _create_hall(
        client, instance, admin_headers, [station.id], visibleFields={"vehicle_plate": False, "customer_phone": True}
    )
    kept = _reserve(client, instance, admin_headers, station.id, booking_day)
    cancelled = _reserve(client, instance, admin_headers, station.id, booking_day, start="12:00", end="13:00")
    client.post(
        f"/instances/{instance.id}/reservations/{cancelled['id']}/status",
        json={"status": "cancelled"},
        headers=admin_headers,
    )
    _reserve(client, instance, admin_headers, other.id, booking_day)

    board = client.get(
        _url(instance, f"/{hall['id']}/board"), params={"date": booking_day.isoformat()}, headers=admin_headers
    ).json()
    assert [s["id"] for s in board["stations"]] == [station.id]
    assert [r["id"] for r in board["reservations"]] == [kept["id"]]

    item = board["reservations"][0]
    assert item["customer_phone"] == "+48600123456"
    assert item["customer_name"] == "Jan Kowalski"
    assert "vehicle_plate" not in item
    assert "admin_notes" not in item
    assert board["date"] == booking_day.isoformat()


def test_hall_user_runs_status_actions(client, db, instance, station, booking_day, admin_headers):
    hall = _create_hall(client, instance, admin_headers, [station.id])
    kiosk = make_user(db, instance, "kiosk", role=ROLE_HALL, hall_id=hall["id"])
    reservation = _reserve(client, instance, admin_headers, station.id, booking_day)
    url = _url(instance, f"/{hall['id']}/reservations/{reservation['id']}/action")

    for action, status in (("start", "in_progress"), ("complete", "completed"), ("release", "released")):
        response = client.post(url, json={"action": action}, headers=auth_headers(kiosk))
        assert response.status_code == 200, response.text
        assert response.json()["status"] == status

    history = client.get(
        f"/instances/{instance.id}/reservations/{reservation['id']}/history", headers=admin_headers
    ).json()
    hall_batches = [b for b in history if b["changedByType"] == "hall"]
    assert len(hall_batches) == 3
    assert all(b["changedBy"] == "kiosk" for b in hall_batches)


def test_action_response_uses_visible_fields(client, db, instance, station, booking_day, admin_headers):
    hall = _create_hall(client, instance, admin_headers, [station.id])
    kiosk = make_user(db, instance, "kiosk", role=ROLE_HALL, hall_id=hall["id"])
    reservation = _reserve(client, instance, admin_headers, station.id, booking_day, adminNotes="Klient VIP")

    response = client.post(
        _url(instance, f"/{hall['id']}/reservations/{reservation['id']}/action"),
        json={"action": "start"},
        headers=auth_headers(kiosk),
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["id"] == reservation["id"]
    assert body["status"] == "in_progress"
    assert body["customer_name"] == "Jan Kowalski"
    assert "customer_phone" not in body
    assert "admin_notes" not in body
    assert "confirmation_code" not in body


def test_hall_user_of_other_hall_is_forbidden(client, db, instance, station, booking_day, admin_headers):
    hall = _create_hall(client, instance, admin_headers, [station.id])
    other_hall = _create_hall(client, instance, admin_headers, [], slug="hala-b")
    kiosk = make_user(db, instance, "kiosk", role=ROLE_HALL, hall_id=other_hall["id"])

    response = client.get(
        _url(instance, f"/{hall['id']}/board"), params={"date": booking_day.isoformat()}, headers=auth_headers(kiosk)
    )
    assert response.status_code == 403


def test_hall_user_cannot_manage_halls(client, db, instance, station, admin_headers):
    hall = _create_hall(client, instance, admin_headers, [station.id])
    kiosk = make_user(db, instance, "kiosk", role=ROLE_HALL, hall_id=hall["id"])
    response = client.post(_url(instance), json={"name": "Nowa"}, headers=auth_headers(kiosk))
    assert response.status_code == 403


def test_disallowed_action(client, instance, station, booking_day, admin_headers):
    hall = _create_hall(client, instance, admin_headers, [station.id])
    reservation = _reserve(client, instance, admin_headers, station.id, booking_day)
    response = client.post(
        _url(instance, f"/{hall['id']}/reservations/{reservation['id']}/action"),
        json={"action": "change_time", "startTime": "14:00"},
        headers=admin_headers,
    )
    assert response.status_code == 403


def test_reservation_outside_hall(client, db, instance, station, booking_day, admin_headers):
    other = _second_station(db, instance)
    hall = _create_hall(client, instance, admin_headers, [station.id])
    reservation = _reserve(client, instance, admin_headers, other.id, booking_day)
    response = client.post(
        _url(instance, f"/{hall['id']}/reservations/{reservation['id']}/action"),
        json={"action": "start"},
        headers=admin_headers,
    )
    assert response.status_code == 404


def test_change_time_and_station(client, db, instance, station, booking_day, admin_headers):
    other = _second_station(db, instance)
    hall = _create_hall(
        client, instance, admin_headers, [station.id, other.id],
        allowedActions={"change_time": True, "change_station": True},
    )
    reservation = _reserve(client, instance, admin_headers, station.id, booking_day, end="11:30")
    url = _url(instance, f"/{hall['id']}/reservations/{reservation['id']}/action")

    moved = client.post(url, json={"action": "change_time", "startTime": "13:00"}, headers=admin_headers).json()
    assert (moved["start_time"], moved["end_time"]) == ("13:00", "14:30")

    moved = client.post(url, json={"action": "change_station", "stationId": other.id}, headers=admin_headers).json()
    assert moved["station_id"] == other.id
    assert moved["start_time"] == "13:00"

    response = client.post(url, json={"action": "change_station", "stationId": 999}, headers=admin_headers)
    assert response.status_code == 400


def test_delete_hall_unbinds_users(client, db, instance, station, admin_headers):
    hall = _create_hall(client, instance, admin_headers, [station.id])
    kiosk = make_user(db, instance, "kiosk", role=ROLE_HALL, hall_id=hall["id"])
    assert client.delete(_url(instance, f"/{hall['id']}"), headers=admin_headers).status_code == 200

    db.expire_all()
    assert kiosk.roles[0].hall_id is None
