import asyncio
from urllib.parse import parse_qs

import httpx

from n2wash.models import SmsLog, SmsMessageSetting
from n2wash.services import sms_gateway
from n2wash.services.sms_gateway import SmsGateway, send_sms


def _gateway(handler, token="test-token"):
    return SmsGateway(token, "https://api.smsapi.pl/sms.do", sender="N2Wash", transport=httpx.MockTransport(handler))


class TestGateway:
    def test_posts_form_without_plus(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["authorization"]
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"count": 1, "list": [{"id": "abc", "status": "QUEUE"}]})

        ok, error, result = asyncio.run(_gateway(handler).send("+48600123456", "Czesc"))
        assert ok is True
        assert error is None
        assert result["count"] == 1
        assert seen["auth"] == "Bearer test-token"
        assert seen["form"]["to"] == ["48600123456"]
        assert seen["form"]["from"] == ["N2Wash"]
        assert seen["form"]["format"] == ["json"]

    def test_error_payload(self):
        def handler(request):
            return httpx.Response(200, json={"error": 101, "message": "Authorization failed"})

        ok, error, _ = asyncio.run(_gateway(handler).send("+48600123456", "Czesc"))
        assert ok is False
        assert error == "[101] Authorization failed"

    def test_non_json_error(self):
        def handler(request):
            return httpx.Response(503, text="Service Unavailable")

        ok, error, result = asyncio.run(_gateway(handler).send("+48600123456", "Czesc"))
        assert ok is False
        assert error == "[503] Service Unavailable"

    def test_dev_mode_without_token(self):
        assert SmsGateway(None).dev_mode is True
        assert sms_gateway.is_dev_mode() is True


class TestSendSms:
    def test_success_counts_usage(self, db, instance):
        gateway = _gateway(lambda request: httpx.Response(200, json={"count": 1}))
        ok, error = asyncio.run(
            send_sms(db, instance.id, "600 123 456", "Przypomnienie", "reminder_1day", gateway=gateway)
        )
        assert (ok, error) == (True, None)

        db.refresh(instance)
        assert instance.sms_used == 1
        log = db.query(SmsLog).one()
        assert (log.status, log.phone) == ("sent", "+48600123456")

    def test_failure_is_logged_without_usage(self, db, instance):
        gateway = _gateway(lambda request: httpx.Response(200, json={"error": 13, "message": "Invalid number"}))
        ok, error = asyncio.run(send_sms(db, instance.id, "600123456", "Hej", "manual", gateway=gateway))
        assert ok is False
        assert error == "[13] Invalid number"

        db.refresh(instance)
        assert instance.sms_used == 0
        log = db.query(SmsLog).one()
        assert log.status == "failed"
        assert log.error_message == "[13] Invalid number"

    def test_transport_error(self, db, instance):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        ok, error = asyncio.run(send_sms(db, instance.id, "600123456", "Hej", "manual", gateway=_gateway(handler)))
        assert ok is False
        assert "connection refused" in error
        assert db.query(SmsLog).one().status == "failed"

    def test_dev_mode_does_not_count(self, db, instance):
        ok, _ = asyncio.run(send_sms(db, instance.id, "600123456", "Hej", "reservation_confirmed"))
        assert ok is True
        db.refresh(instance)
        assert instance.sms_used == 0
        assert db.query(SmsLog).one().status == "simulated"

    def test_disabled_message_type(self, db, instance):
        db.add(SmsMessageSetting(instance_id=instance.id, message_type="reminder_1hour", enabled=False))
        db.commit()
        ok, error = asyncio.run(send_sms(db, instance.id, "600123456", "Hej", "reminder_1hour"))
        assert ok is False
        assert error == "Message type reminder_1hour disabled"
        assert db.query(SmsLog).count() == 0

    def test_quota_exceeded(self, db, instance):
        instance.sms_used = instance.sms_limit
        db.commit()
        ok, error = asyncio.run(send_sms(db, instance.id, "600123456", "Hej", "manual"))
        assert (ok, error) == (False, "SMS_LIMIT_EXCEEDED")

    def test_missing_phone(self, db, instance):
        assert asyncio.run(send_sms(db, instance.id, "", "Hej", "manual")) == (False, "No phone number provided")


class TestSmsRoutes:
    def test_settings_defaults_and_update(self, client, instance, admin_headers):
        url = f"/instances/{instance.id}/sms/settings"
        settings = {s["messageType"]: s for s in client.get(url, headers=admin_headers).json()}
        assert settings["reminder_1day"] == {"messageType": "reminder_1day", "enabled": True, "sendAtTime": "19:00"}
        assert settings["vehicle_ready"]["sendAtTime"] is None

        response = client.put(
            url,
            json=[
                {"messageType": "reminder_1day", "enabled": True, "sendAtTime": "18:30"},
                {"messageType": "reminder_1hour", "enabled": False},
            ],
            headers=admin_headers,
        )
        updated = {s["messageType"]: s for s in response.json()}
        assert updated["reminder_1day"]["sendAtTime"] == "18:30"
        assert updated["reminder_1hour"]["enabled"] is False

    def test_unknown_message_type(self, client, instance, admin_headers):
        response = client.put(
            f"/instances/{instance.id}/sms/settings",
            json=[{"messageType": "newsletter", "enabled": True}],
            headers=admin_headers,
        )
        assert response.status_code == 422

    def test_manual_send_and_logs(self, client, instance, admin_headers):
        response = client.post(
            f"/instances/{instance.id}/sms/send",
            json={"phone": "600123456", "message": "Auto gotowe"},
            headers=admin_headers,
        )
        assert response.json() == {"success": True}

        logs = client.get(f"/instances/{instance.id}/sms/logs", headers=admin_headers).json()
        assert [(log["message_type"], log["status"]) for log in logs] == [("manual", "simulated")]
        assert client.get(
            f"/instances/{instance.id}/sms/logs", params={"status": "failed"}, headers=admin_headers
        ).json() == []

    def test_manual_send_for_unknown_reservation(self, client, instance, admin_headers):
        response = client.post(
            f"/instances/{instance.id}/sms/send",
            json={"phone": "600123456", "message": "Hej", "reservationId": 999},
            headers=admin_headers,
        )
        assert response.status_code == 404

    def test_usage(self, client, instance, admin_headers):
        usage = client.get(f"/instances/{instance.id}/sms/usage", headers=admin_headers).json()
        assert usage == {
            "instanceId": instance.id,
            "instanceName": "Studio Detailingu",
            "used": 0,
            "limit": 100,
            "remaining": 100,
            "devMode": True,
        }
