import pytest
from conftest import auth_headers, make_instance, make_user, reservation_payload

from n2wash.models import ROLE_HALL, Customer


def _url(instance, suffix=""):
    return f"/instances/{instance.id}/customers{suffix}"


@pytest.fixture
def customers(db, instance):
    rows = [
        Customer(instance_id=instance.id, name="Jan Kowalski", phone="+48600123456", phone_verified=True),
        Customer(instance_id=instance.id, name="Anna Nowak", phone="+48501987654", email="anna@example.com"),
        Customer(instance_id=instance.id, name="Piotr Zieliński", phone="+48722000111"),
    ]
    db.add_all(rows)
    db.commit()
    return rows


class TestList:
    def test_sorted_by_name(self, client, instance, customers, admin_headers):
        body = client.get(_url(instance), headers=admin_headers).json()
        assert [c["name"] for c in body] == ["Anna Nowak", "Jan Kowalski", "Piotr Zieliński"]

    @pytest.mark.parametrize(
        "search, expected",
        [
            ("kowal", ["Jan Kowalski"]),
            ("501 987", ["Anna Nowak"]),
            ("ANNA@EXAMPLE", ["Anna Nowak"]),
            ("   ", ["Anna Nowak", "Jan Kowalski", "Piotr Zieliński"]),
            ("nikt", []),
        ],
    )
    def test_search(self, client, instance, customers, admin_headers, search, expected):
        body = client.get(_url(instance), params={"search": search}, headers=admin_headers).json()
        assert [c["name"] for c in body] == expected

    def test_limit(self, client, instance, customers, admin_headers):
        assert len(client.get(_url(instance), params={"limit": 2}, headers=admin_headers).json()) == 2
        assert client.get(_url(instance), params={"limit": 0}, headers=admin_headers).status_code == 422

    def test_other_instance_customers_are_hidden(self, client, db, instance, customers, admin_headers):
        other = make_instance(db, slug="other")
        db.add(Customer(instance_id=other.id, name="Obcy Klient", phone="+48600000000"))
        db.commit()
        names = [c["name"] for c in client.get(_url(instance), headers=admin_headers).json()]
        assert "Obcy Klient" not in names

    def test_hall_account_is_forbidden(self, client, db, instance, customers):
        kiosk = make_user(db, instance, "kiosk", role=ROLE_HALL)
        assert client.get(_url(instance), headers=auth_headers(kiosk)).status_code == 403


class TestDetail:
    def test_visits_are_matched_by_phone(self, client, instance, station, booking_day, customers, admin_headers):
        client.post(
            f"/instances/{instance.id}/reservations",
            json=reservation_payload(station.id, booking_day),
            headers=admin_headers,
        )
        client.post(
            f"/instances/{instance.id}/reservations",
            json=reservation_payload(station.id, booking_day, "12:00", "13:00", customerPhone="722 000 111"),
            headers=admin_headers,
        )

        body = client.get(_url(instance, f"/{customers[0].id}"), headers=admin_headers).json()
        assert body["phone"] == "+48600123456"
        assert body["phone_verified"] is True
        assert [(v["start_time"], v["status"]) for v in body["visits"]] == [("10:00", "confirmed")]

    def test_foreign_customer_is_not_found(self, client, db, instance, admin_headers):
        other = make_instance(db, slug="other")
        foreign = Customer(instance_id=other.id, name="Obcy Klient", phone="+48600000000")
        db.add(foreign)
        db.commit()
        assert client.get(_url(instance, f"/{foreign.id}"), headers=admin_headers).status_code == 404


class TestCreateAndUpdate:
    def test_create_normalizes_phone(self, client, db, instance):
        employee = make_user(db, instance, "worker", role="employee")
        response = client.post(
            _url(instance), json={"name": " Ewa Wiśniewska ", "phone": "600 555 444"}, headers=auth_headers(employee)
        )
        assert response.status_code == 201
        body = response.json()
        assert (body["name"], body["phone"], body["phone_verified"]) == ("Ewa Wiśniewska", "+48600555444", False)

    def test_duplicate_phone(self, client, instance, customers, admin_headers):
        response = client.post(_url(instance), json={"name": "Jan K.", "phone": "600123456"}, headers=admin_headers)
        assert response.status_code == 409

    @pytest.mark.parametrize("payload", [{"name": "  ", "phone": "600555444"}, {"name": "Ewa", "phone": "12"}])
    def test_invalid_payload(self, client, instance, admin_headers, payload):
        assert client.post(_url(instance), json=payload, headers=admin_headers).status_code == 422

    def test_update_name_and_email(self, client, instance, customers, admin_headers):
        url = _url(instance, f"/{customers[1].id}")
        body = client.put(url, json={"name": "Anna Nowak-Kowalska"}, headers=admin_headers).json()
        assert body["name"] == "Anna Nowak-Kowalska"
        assert body["email"] == "anna@example.com"

        body = client.put(url, json={"email": None}, headers=admin_headers).json()
        assert body["email"] is None

    def test_new_phone_drops_verification(self, client, instance, customers, admin_headers):
        body = client.put(
            _url(instance, f"/{customers[0].id}"), json={"phone": "+48 600 999 888"}, headers=admin_headers
        ).json()
        assert (body["phone"], body["phone_verified"]) == ("+48600999888", False)

    def test_phone_taken_by_other_customer(self, client, instance, customers, admin_headers):
        response = client.put(
            _url(instance, f"/{customers[0].id}"), json={"phone": "501 987 654"}, headers=admin_headers
        )
        assert response.status_code == 409
