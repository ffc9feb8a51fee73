from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...services.sms_gateway import MESSAGE_TYPES
from ...shared.validators import require_text, validate_phone, validate_time

MAX_MANUAL_SMS_LENGTH = 640  # 4 concatenated GSM segments


class MessageSettingUpdate(BaseModel):
    messageType: str
    enabled: bool
    sendAtTime: Optional[str] = None

    @field_validator("messageType")
    @classmethod
    def validate_type(cls, v):
        if v not in MESSAGE_TYPES:
            raise ValueError(f"messageType must be one of {', '.join(MESSAGE_TYPES)}")
        return v

    @field_validator("sendAtTime")
    @classmethod
    def validate_send_at(cls, v):
        return validate_time(v)


class ManualSmsRequest(BaseModel):
    phone: str
    message: str
    reservationId: Optional[int] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return validate_phone(require_text(v, "phone"))

    @field_validator("message")
    @classmethod
    def validate_message(cls, v):
        v = require_text(v, "message")
        if len(v) > MAX_MANUAL_SMS_LENGTH:
            raise ValueError(f"Message is longer than {MAX_MANUAL_SMS_LENGTH} characters")
        return v


class SmsLogResponse(BaseModel):
    id: int
    phone: str
    message: str
    message_type: str
    status: str
    error_message: Optional[str] = None
    reservation_id: Optional[int] = None
    sent_by: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
