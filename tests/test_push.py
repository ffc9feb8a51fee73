import asyncio
import json
import os

import httpx
import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from jose import jwt

from n2wash import config
from n2wash.models import PushSubscription
from n2wash.services.push_service import (
    b64url_decode,
    b64url_encode,
    build_push_payload,
    encrypt_payload,
    send_push_to_instance,
    vapid_authorization,
)


def _public_b64(key):
    return b64url_encode(
        key.public_key().public_bytes(serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint)
    )


def _private_b64(key):
    return b64url_encode(key.private_numbers().private_value.to_bytes(32, "big"))


def _hkdf(salt, info, length, ikm):
    return HKDF(algorithm=hashes.SHA256(), length=length, salt=salt, info=info).derive(ikm)


@pytest.fixture
def vapid_keys(monkeypatch):
    key = ec.generate_private_key(ec.SECP256R1())
    monkeypatch.setattr(config, "VAPID_PUBLIC_KEY", _public_b64(key))
    monkeypatch.setattr(config, "VAPID_PRIVATE_KEY", _private_b64(key))
    return key


def _subscription(db, instance, endpoint):
    browser_key = ec.generate_private_key(ec.SECP256R1())
    sub = PushSubscription(
        instance_id=instance.id,
        endpoint=endpoint,
        p256dh=_public_b64(browser_key),
        auth=b64url_encode(os.urandom(16)),
    )
    db.add(sub)
    db.commit()
    return sub


def test_b64url_without_padding():
    assert b64url_encode(b"\xfb\xff") == "-_8"
    assert b64url_decode("-_8") == b"\xfb\xff"


def test_payload_defaults():
    payload = json.loads(build_push_payload(None, None, tag="t1"))
    assert payload == {
        "title": "Powiadomienie",
        "body": "Nowa aktywność",
        "icon": "/pwa-192x192.png",
        "url": "/admin",
        "tag": "t1",
    }


def test_browser_can_decrypt_payload():
    browser_key = ec.generate_private_key(ec.SECP256R1())
    browser_public = browser_key.public_key().public_bytes(
        serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
    )
    auth_secret = os.urandom(16)
    salt = os.urandom(16)

    body = encrypt_payload(b'{"title":"Hej"}', b64url_encode(browser_public), b64url_encode(auth_secret), salt=salt)

    assert body[:16] == salt
    assert int.from_bytes(body[16:20], "big") == 4096
    assert body[20] == 65
    server_public = body[21:86]

    server_key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), server_public)
    ecdh_secret = browser_key.exchange(ec.ECDH(), server_key)
    ikm = _hkdf(auth_secret, b"WebPush: info\x00" + browser_public + server_public, 32, ecdh_secret)
    cek = _hkdf(salt, b"Content-Encoding: aes128gcm\x00", 16, ikm)
    nonce = _hkdf(salt, b"Content-Encoding: nonce\x00", 12, ikm)

    plaintext = AESGCM(cek).decrypt(nonce, body[86:], None)
    assert plaintext == b'{"title":"Hej"}\x02'


def test_vapid_header_carries_signed_token():
    key = ec.generate_private_key(ec.SECP256R1())
    public_b64 = _public_b64(key)
    header = vapid_authorization(
        "https://fcm.googleapis.com/fcm/send/abc", _private_b64(key), public_b64, "mailto:ops@example.com",
        now=1_700_000_000,
    )
    assert header.startswith("vapid t=")
    assert header.endswith(f", k={public_b64}")

    token = header[len("vapid t="):header.index(", k=")]
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode()
    claims = jwt.decode(
        token, public_pem, algorithms=["ES256"], audience="https://fcm.googleapis.com",
        options={"verify_exp": False},
    )
    assert claims["sub"] == "mailto:ops@example.com"
    assert claims["exp"] == 1_700_000_000 + 12 * 3600


def test_vapid_rejects_bad_private_key():
    with pytest.raises(ValueError):
        vapid_authorization("https://push.example.com/x", b64url_encode(b"short"), "pub", "mailto:a@b.c")


class TestSendPush:
    def test_dev_mode_skips_delivery(self, db, instance):
        _subscription(db, instance, "https://push.example.com/1")
        summary = asyncio.run(send_push_to_instance(db, instance.id, "Tytuł", "Treść"))
        assert summary == {"sent": 0, "failed": 0, "stale": 0}

    def test_statuses_and_stale_cleanup(self, db, instance, vapid_keys):
        _subscription(db, instance, "https://push.example.com/ok")
        _subscription(db, instance, "https://push.example.com/gone")
        _subscription(db, instance, "https://push.example.com/broken")
        seen = []

        def handler(request):
            seen.append(request)
            status = {"/ok": 201, "/gone": 410, "/broken": 500}[request.url.path]
            return httpx.Response(status)

        summary = asyncio.run(
            send_push_to_instance(db, instance.id, "Nowa rezerwacja", "Jan", transport=httpx.MockTransport(handler))
        )
        assert summary == {"sent": 1, "failed": 1, "stale": 1}
        assert sorted(s.endpoint for s in db.query(PushSubscription)) == [
            "https://push.example.com/broken",
            "https://push.example.com/ok",
        ]

        request = seen[0]
        assert request.headers["content-encoding"] == "aes128gcm"
        assert request.headers["ttl"] == "86400"
        assert request.headers["authorization"].startswith("vapid t=")

    def test_transport_error_counts_as_failed(self, db, instance, vapid_keys):
        _subscription(db, instance, "https://push.example.com/down")

        def handler(request):
            raise httpx.ConnectError("unreachable")

        summary = asyncio.run(
            send_push_to_instance(db, instance.id, "X", "Y", transport=httpx.MockTransport(handler))
        )
        assert summary == {"sent": 0, "failed": 1, "stale": 0}
        assert db.query(PushSubscription).count() == 1

    def test_other_instances_are_not_contacted(self, db, instance, vapid_keys):
        seen = []
        summary = asyncio.run(
            send_push_to_instance(
                db, instance.id, "X", "Y", transport=httpx.MockTransport(lambda r: seen.append(r) or httpx.Response(201))
            )
        )
        assert summary == {"sent": 0, "failed": 0, "stale": 0}
        assert seen == []
