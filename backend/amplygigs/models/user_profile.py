from sqlalchemy import Boolean, Column, String, DateTime, Text
import enum

from .base import BaseModel
from .types import CaseInsensitiveEnum


class UserRole(str, enum.Enum):
    CLIENT = "client"
    MUSICIAN = "musician"


class UserProfile(BaseModel):
    """Marketplace profile keyed by the auth provider's subject id."""

    __tablename__ = "user_profiles"

    id = Column(String(64), primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    role = Column(CaseInsensitiveEnum(UserRole), nullable=False, default=UserRole.CLIENT)
    country_code = Column(String(2), nullable=True)
    kyc_verified = Column(Boolean, nullable=False, default=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    is_support = Column(Boolean, nullable=False, default=False)
    is_suspended = Column(Boolean, nullable=False, default=False)
    suspended_at = Column(DateTime, nullable=True)
    suspended_by = Column(String(64), nullable=True)
    suspension_reason = Column(Text, nullable=True)

    @property
    def display_name(self) -> str:
        name = " ".join(p for p in (self.first_name, self.last_name) if p)
        return name or (self.email or "User")
