"""SMS administration - message settings, manual sends, logs and quota"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Instance, Reservation, SmsLog, SmsMessageSetting, User
from ...plan_limits import get_sms_usage
from ...services import sms_gateway
from ...services.sms_gateway import DEFAULT_SEND_AT_TIME, MESSAGE_TYPES
from .schemas import ManualSmsRequest, MessageSettingUpdate

logger = logging.getLogger(__name__)


class SmsService:
    def __init__(self, db: Session):
        self.db = db

    def _get_instance(self, instance_id: int) -> Instance:
        instance = self.db.query(Instance).filter(Instance.id == instance_id).first()
        if not instance:
            raise HTTPException(status_code=404, detail="Instance not found")
        return instance

    def get_settings(self, instance_id: int) -> list[dict]:
        """Every message type with its effective setting (enabled unless switched off)"""
        stored = {
            s.message_type: s
            for s in self.db.query(SmsMessageSetting).filter(SmsMessageSetting.instance_id == instance_id)
        }
        result = []
        for message_type in MESSAGE_TYPES:
            setting = stored.get(message_type)
            result.append(
                {
                    "messageType": message_type,
                    "enabled": setting.enabled if setting else True,
                    "sendAtTime": (setting.send_at_time if setting else None) or DEFAULT_SEND_AT_TIME.get(message_type),
                }
            )
        return result

    def update_settings(self, instance_id: int, updates: list[MessageSettingUpdate]) -> list[dict]:
        for update in updates:
            setting = sms_gateway.get_message_setting(self.db, instance_id, update.messageType)
            if setting is None:
                setting = SmsMessageSetting(instance_id=instance_id, message_type=update.messageType)
                self.db.add(setting)
            setting.enabled = update.enabled
            if update.sendAtTime is not None:
                setting.send_at_time = update.sendAtTime
        self.db.commit()
        logger.info(f"📝 SMS settings updated for instance {instance_id}")
        return self.get_settings(instance_id)

    async def send_manual(self, instance_id: int, data: ManualSmsRequest, user: User) -> dict:
        if data.reservationId is not None:
            reservation = (
                self.db.query(Reservation)
                .filter(Reservation.id == data.reservationId, Reservation.instance_id == instance_id)
                .first()
            )
            if not reservation:
                raise HTTPException(status_code=404, detail="Reservation not found")

        success, error = await sms_gateway.send_sms(
            self.db,
            instance_id,
            data.phone,
            data.message,
            "manual",
            reservation_id=data.reservationId,
            sent_by=user.id,
        )
        if not success:
            status_code = 429 if error == "SMS_LIMIT_EXCEEDED" else 502
            raise HTTPException(status_code=status_code, detail=error or "Failed to send SMS")
        return {"success": True}

    def list_logs(
        self,
        instance_id: int,
        reservation_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[SmsLog]:
        query = self.db.query(SmsLog).filter(SmsLog.instance_id == instance_id)
        if reservation_id is not None:
            query = query.filter(SmsLog.reservation_id == reservation_id)
        if status:
            query = query.filter(SmsLog.status == status)
        return query.order_by(SmsLog.created_at.desc(), SmsLog.id.desc()).offset(offset).limit(limit).all()

    def get_usage(self, instance_id: int) -> dict:
        usage = get_sms_usage(self._get_instance(instance_id))
        usage["devMode"] = sms_gateway.is_dev_mode()
        return usage
