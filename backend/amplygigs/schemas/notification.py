from pydantic import BaseModel, ConfigDict
from typing import Any, Dict, List, Optional


class ChannelFlags(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: Optional[bool] = None
    sms: Optional[bool] = None
    whatsapp: Optional[bool] = None
    push: Optional[bool] = None


class NotificationPreferencesUpdate(BaseModel):
    """Partial update; unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")

    email_enabled: Optional[bool] = None
    sms_enabled: Optional[bool] = None
    whatsapp_enabled: Optional[bool] = None
    push_enabled: Optional[bool] = None
    in_app_enabled: Optional[bool] = None
    email_address: Optional[str] = None
    phone_number: Optional[str] = None
    whatsapp_number: Optional[str] = None
    booking_notifications: Optional[ChannelFlags] = None
    message_notifications: Optional[ChannelFlags] = None
    payment_notifications: Optional[ChannelFlags] = None
    job_notifications: Optional[ChannelFlags] = None
    marketing_notifications: Optional[ChannelFlags] = None
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None

    def to_patch(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class MarkReadRequest(BaseModel):
    ids: Optional[List[int]] = None
