"""
SMSAPI SMS Service
Sends transactional SMS for reservations and keeps the per-instance SMS log.
Without SMSAPI_TOKEN the service runs in dev mode: messages are logged, not sent.
"""

import logging
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from .. import config
from ..models import Instance, SmsLog, SmsMessageSetting
from ..plan_limits import check_sms_available, increment_sms_usage
from ..shared.validators import normalize_phone_or_fallback

logger = logging.getLogger(__name__)

MESSAGE_TYPES = (
    "verification_code",
    "reservation_confirmed",
    "reminder_1day",
    "reminder_1hour",
    "vehicle_ready",
)
# Sent regardless of per-instance message settings
ALWAYS_SENT_TYPES = ("verification_code", "manual")

DEFAULT_SEND_AT_TIME = {"reminder_1day": "19:00"}


class SmsGateway:
    """Thin SMSAPI client. `transport` lets tests swap in httpx.MockTransport."""

    def __init__(
        self,
        token: Optional[str],
        url: str = config.SMSAPI_URL,
        sender: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.url = url
        self.sender = sender
        self.transport = transport

    @property
    def dev_mode(self) -> bool:
        return not self.token

    async def send(self, phone: str, message: str) -> tuple[bool, Optional[str], Optional[dict]]:
        """
        Returns:
            Tuple of (success, error_message, gateway_response)
        """
        data = {
            "to": phone.lstrip("+"),
            "message": message,
            "format": "json",
            "encoding": "utf-8",
        }
        if self.sender:
            data["from"] = self.sender

        async with httpx.AsyncClient(transport=self.transport, timeout=10.0) as client:
            response = await client.post(
                self.url,
                headers={"Authorization": f"Bearer {self.token}"},
                data=data,
            )

        try:
            result = response.json()
        except ValueError:
            result = {"error": response.status_code, "message": response.text[:500]}

        if response.status_code >= 400 or result.get("error"):
            error_message = result.get("message") or f"HTTP {response.status_code}"
            return False, f"[{result.get('error')}] {error_message}", result
        return True, None, result


def get_gateway() -> SmsGateway:
    return SmsGateway(config.SMSAPI_TOKEN, config.SMSAPI_URL, config.SMS_SENDER_NAME)


def is_dev_mode() -> bool:
    return get_gateway().dev_mode


def get_message_setting(db: Session, instance_id: int, message_type: str) -> Optional[SmsMessageSetting]:
    return (
        db.query(SmsMessageSetting)
        .filter(SmsMessageSetting.instance_id == instance_id, SmsMessageSetting.message_type == message_type)
        .first()
    )


def is_message_enabled(db: Session, instance_id: int, message_type: str) -> bool:
    """Message types are enabled unless the instance switched them off"""
    if message_type in ALWAYS_SENT_TYPES:
        return True
    setting = get_message_setting(db, instance_id, message_type)
    return setting is None or bool(setting.enabled)


def _log(db: Session, instance_id, phone, message, message_type, status, **extra) -> SmsLog:
    sms_log = SmsLog(
        instance_id=instance_id,
        phone=phone,
        message=message,
        message_type=message_type,
        status=status,
        **extra,
    )
    db.add(sms_log)
    return sms_log


async def send_sms(
    db: Session,
    instance_id: int,
    to_phone: str,
    message_body: str,
    message_type: str,
    reservation_id: Optional[int] = None,
    sent_by: Optional[int] = None,
    gateway: Optional[SmsGateway] = None,
) -> tuple[bool, Optional[str]]:
    """
    Send an SMS on behalf of an instance.

    Checks the message type setting and the instance SMS quota, sends through
    the gateway, counts usage on success and writes an SmsLog row either way.

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not to_phone:
        logger.debug(f"No phone number provided for instance {instance_id}")
        return False, "No phone number provided"

    if not is_message_enabled(db, instance_id, message_type):
        logger.debug(f"Message type {message_type} disabled for instance {instance_id}")
        return False, f"Message type {message_type} disabled"

    if not check_sms_available(db, instance_id):
        logger.warning(f"⚠️ SMS limit exceeded for instance {instance_id}")
        return False, "SMS_LIMIT_EXCEEDED"

    phone = normalize_phone_or_fallback(to_phone)
    gateway = gateway or get_gateway()

    if gateway.dev_mode:
        logger.info(f"[DEV MODE] Would send SMS to {phone}: {message_body}")
        _log(db, instance_id, phone, message_body, message_type, "simulated",
             reservation_id=reservation_id, sent_by=sent_by)
        db.commit()
        return True, None

    try:
        logger.info(f"📱 Sending SMS: type={message_type}, to={phone}, instance={instance_id}")
        success, error_message, result = await gateway.send(phone, message_body)
    except httpx.HTTPError as e:
        logger.error(f"SMSAPI error: {str(e)}")
        _log(db, instance_id, phone, message_body, message_type, "failed",
             reservation_id=reservation_id, sent_by=sent_by, error_message=str(e))
        db.commit()
        return False, str(e)

    if success:
        increment_sms_usage(db, instance_id)
        _log(db, instance_id, phone, message_body, message_type, "sent",
             reservation_id=reservation_id, sent_by=sent_by, gateway_response=result)
        db.commit()
        logger.info(f"✅ SMS sent successfully: {message_type} to {phone}")
        return True, None

    _log(db, instance_id, phone, message_body, message_type, "failed",
         reservation_id=reservation_id, sent_by=sent_by, error_message=error_message,
         gateway_response=result)
    db.commit()
    logger.error(f"❌ SMSAPI error: {error_message}")
    return False, error_message


def instance_sms_name(instance: Instance) -> str:
    """Name used as the SMS prefix"""
    return instance.short_name or instance.name
