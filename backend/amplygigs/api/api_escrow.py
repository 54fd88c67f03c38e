from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional
import hmac
import logging

from .. import models, schemas
from ..core.config import settings
from ..models import ReleaseType, utcnow
from ..services import escrow as escrow_service
from ..services.exceptions import DomainError
from ..utils.errors import domain_error_response
from .api_booking import booking_payload
from .dependencies import get_current_client, get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["escrow"])

_DOMAIN_ERRORS = (DomainError, PermissionError, LookupError, ValueError)


@router.post("/booking/release-funds")
def release_funds(
    payload: schemas.BookingActionRequest,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_client),
):
    now = utcnow()
    try:
        escrow = escrow_service.release_escrow(
            db,
            payload.booking_id,
            released_by=current_user.id,
            release_type=ReleaseType.MANUAL_CLIENT,
            now=now,
            client_id=current_user.id,
        )
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {
        "success": True,
        "message": "Funds released to musician",
        "escrow": escrow_service.escrow_summary(escrow, escrow.booking),
        "booking": booking_payload(escrow.booking, now),
    }


def _check_cron_secret(authorization: Optional[str]) -> None:
    expected = settings.CRON_SECRET
    if not expected:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Cron trigger not configured")
    provided = (authorization or "").removeprefix("Bearer ").strip()
    if not hmac.compare_digest(provided, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.post("/cron/auto-release-escrow")
def trigger_auto_release(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
):
    """Run one auto-release pass now; used by external schedulers."""
    _check_cron_secret(authorization)
    result = escrow_service.process_auto_release(db, utcnow())
    return {"success": True, **result}
