from pydantic import BaseModel, Field
from typing import Literal, Optional


class ReportReview(BaseModel):
    action: Literal["dismiss", "action"]
    notes: Optional[str] = None


class SuspendRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)
    report_id: Optional[int] = None


class FlagRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class RefundRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class DeleteEventRequest(BaseModel):
    reason: Optional[str] = None


class EscrowReleaseRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)
