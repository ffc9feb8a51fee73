from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import require_text


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    description: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    read: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PushKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscribeRequest(BaseModel):
    """Browser PushSubscription.toJSON() payload"""

    endpoint: str
    keys: PushKeys

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v):
        v = require_text(v, "endpoint")
        if not v.startswith("https://"):
            raise ValueError("Push endpoint must be an https URL")
        return v


class PushUnsubscribeRequest(BaseModel):
    endpoint: str
