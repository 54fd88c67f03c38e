from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel, utcnow
from .types import CaseInsensitiveEnum


class ReportStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIONED = "actioned"
    DISMISSED = "dismissed"


class UserReport(BaseModel):
    __tablename__ = "user_reports"

    id = Column(Integer, primary_key=True, index=True)
    reporter_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, index=True)
    reported_user_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, index=True)
    reason = Column(String, nullable=False)
    details = Column(Text, nullable=True)
    status = Column(CaseInsensitiveEnum(ReportStatus), nullable=False, default=ReportStatus.PENDING)
    reviewed_by = Column(String(64), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    reporter = relationship("UserProfile", foreign_keys=[reporter_id])
    reported_user = relationship("UserProfile", foreign_keys=[reported_user_id])


class AdminAction(BaseModel):
    """Append-only audit log of moderation actions."""

    __tablename__ = "admin_actions"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(String(64), ForeignKey("user_profiles.id"), nullable=False, index=True)
    action_type = Column(String, nullable=False, index=True)
    target_type = Column(String, nullable=False)
    target_id = Column(String, nullable=False)
    reason = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)
    at = Column(DateTime, nullable=False, default=utcnow)
