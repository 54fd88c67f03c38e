from sqlalchemy import Boolean, Column, ForeignKey, Integer, JSON, String, Text, Time
from sqlalchemy.orm import relationship

from .base import BaseModel


class Notification(BaseModel):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)

    user = relationship("UserProfile")


class NotificationPreference(BaseModel):
    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, unique=True, index=True)

    email_enabled = Column(Boolean, nullable=False, default=True)
    sms_enabled = Column(Boolean, nullable=False, default=False)
    whatsapp_enabled = Column(Boolean, nullable=False, default=False)
    push_enabled = Column(Boolean, nullable=False, default=True)
    in_app_enabled = Column(Boolean, nullable=False, default=True)

    email_address = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    whatsapp_number = Column(String, nullable=True)

    # Each category maps channel name -> bool
    booking_notifications = Column(JSON, nullable=True)
    message_notifications = Column(JSON, nullable=True)
    payment_notifications = Column(JSON, nullable=True)
    job_notifications = Column(JSON, nullable=True)
    marketing_notifications = Column(JSON, nullable=True)

    quiet_hours_enabled = Column(Boolean, nullable=False, default=False)
    quiet_hours_start = Column(Time, nullable=True)
    quiet_hours_end = Column(Time, nullable=True)
