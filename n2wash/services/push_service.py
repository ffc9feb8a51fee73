"""
Web Push Service
Delivers admin notifications to subscribed browsers using VAPID (ES256 JWT)
and aes128gcm payload encryption (RFC 8291 / RFC 8188).
"""

import base64
import json
import logging
import os
import time
from typing import Optional
from urllib.parse import urlparse

import httpx
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from jose import jwt
from sqlalchemy.orm import Session

from .. import config
from ..models import PushSubscription

logger = logging.getLogger(__name__)

RECORD_SIZE = 4096
PUSH_TTL_SECONDS = 86400
VAPID_EXPIRY_SECONDS = 12 * 60 * 60


def b64url_decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def b64url_encode(value: bytes) -> str:
    return base64.urlsafe_b64encode(value).rstrip(b"=").decode()


def _public_bytes(public_key: ec.EllipticCurvePublicKey) -> bytes:
    return public_key.public_bytes(serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint)


def load_vapid_private_key(private_key_b64: str) -> ec.EllipticCurvePrivateKey:
    """Raw 32-byte base64url scalar -> EC private key"""
    scalar = b64url_decode(private_key_b64)
    if len(scalar) != 32:
        raise ValueError(f"Unexpected VAPID private key length: {len(scalar)}")
    return ec.derive_private_key(int.from_bytes(scalar, "big"), ec.SECP256R1())


def vapid_authorization(
    endpoint: str,
    private_key_b64: str,
    public_key_b64: str,
    subject: str,
    now: Optional[int] = None,
) -> str:
    """Authorization header value for a push service endpoint"""
    parsed = urlparse(endpoint)
    audience = f"{parsed.scheme}://{parsed.netloc}"
    now = int(now if now is not None else time.time())

    private_key = load_vapid_private_key(private_key_b64)
    pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()

    token = jwt.encode(
        {"aud": audience, "exp": now + VAPID_EXPIRY_SECONDS, "sub": subject},
        pem,
        algorithm="ES256",
    )
    return f"vapid t={token}, k={public_key_b64}"


def _hkdf(salt: bytes, info: bytes, length: int, ikm: bytes) -> bytes:
    return HKDF(algorithm=hashes.SHA256(), length=length, salt=salt, info=info).derive(ikm)


def encrypt_payload(
    payload: bytes,
    p256dh: str,
    auth: str,
    salt: Optional[bytes] = None,
    server_key: Optional[ec.EllipticCurvePrivateKey] = None,
) -> bytes:
    """
    Encrypt a push message body for one subscription.

    Body layout: salt(16) | record size(4) | key id length(1) | server public key(65) | ciphertext
    """
    ua_public = b64url_decode(p256dh)
    auth_secret = b64url_decode(auth)
    salt = salt or os.urandom(16)
    server_key = server_key or ec.generate_private_key(ec.SECP256R1())
    as_public = _public_bytes(server_key.public_key())

    ua_key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), ua_public)
    ecdh_secret = server_key.exchange(ec.ECDH(), ua_key)

    ikm = _hkdf(auth_secret, b"WebPush: info\x00" + ua_public + as_public, 32, ecdh_secret)
    cek = _hkdf(salt, b"Content-Encoding: aes128gcm\x00", 16, ikm)
    nonce = _hkdf(salt, b"Content-Encoding: nonce\x00", 12, ikm)

    # 0x02 delimits the last (only) record
    ciphertext = AESGCM(cek).encrypt(nonce, payload + b"\x02", None)

    header = salt + RECORD_SIZE.to_bytes(4, "big") + bytes([len(as_public)]) + as_public
    return header + ciphertext


def build_push_payload(title: Optional[str], body: Optional[str], url: Optional[str] = None,
                       tag: Optional[str] = None, icon: Optional[str] = None) -> bytes:
    return json.dumps(
        {
            "title": title or "Powiadomienie",
            "body": body or "Nowa aktywność",
            "icon": icon or "/pwa-192x192.png",
            "url": url or "/admin",
            "tag": tag or f"notification-{int(time.time() * 1000)}",
        },
        ensure_ascii=False,
    ).encode()


async def send_push_to_instance(
    db: Session,
    instance_id: int,
    title: Optional[str],
    body: Optional[str],
    url: Optional[str] = None,
    tag: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    """
    Push a notification to every subscription of an instance.
    Subscriptions answered with 404/410 are deleted.
    """
    summary = {"sent": 0, "failed": 0, "stale": 0}

    if not config.VAPID_PUBLIC_KEY or not config.VAPID_PRIVATE_KEY:
        logger.info(f"[DEV MODE] Push skipped for instance {instance_id} (VAPID not configured): {title}")
        return summary

    subscriptions = db.query(PushSubscription).filter(PushSubscription.instance_id == instance_id).all()
    if not subscriptions:
        return summary

    payload = build_push_payload(title, body, url, tag)

    async with httpx.AsyncClient(transport=transport, timeout=10.0) as client:
        for sub in subscriptions:
            try:
                headers = {
                    "Authorization": vapid_authorization(
                        sub.endpoint, config.VAPID_PRIVATE_KEY, config.VAPID_PUBLIC_KEY, config.VAPID_EMAIL
                    ),
                    "Content-Encoding": "aes128gcm",
                    "Content-Type": "application/octet-stream",
                    "TTL": str(PUSH_TTL_SECONDS),
                    "Urgency": "high",
                }
                response = await client.post(
                    sub.endpoint, headers=headers, content=encrypt_payload(payload, sub.p256dh, sub.auth)
                )
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"❌ Push to subscription {sub.id} failed: {e}")
                summary["failed"] += 1
                continue

            if response.status_code in (200, 201, 202):
                summary["sent"] += 1
            elif response.status_code in (404, 410):
                logger.info(f"🧹 Removing stale push subscription {sub.id}")
                db.delete(sub)
                summary["stale"] += 1
            else:
                logger.error(f"❌ Push failed with status {response.status_code}: {response.text[:200]}")
                summary["failed"] += 1

    db.commit()
    logger.info(f"📨 Push for instance {instance_id}: {summary}")
    return summary
