from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
import logging

from .. import models, schemas
from ..models import utcnow
from ..services import earnings as earnings_service
from ..services.exceptions import DomainError
from ..utils.errors import domain_error_response
from .dependencies import get_current_musician, get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["earnings"])

_DOMAIN_ERRORS = (DomainError, PermissionError, LookupError, ValueError)


@router.get("/earnings")
def get_earnings(
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_musician),
):
    wallet = earnings_service.get_earnings(db, current_user.id)
    return {"success": True, "earnings": earnings_service.earnings_summary(wallet)}


@router.get("/withdrawals")
def list_withdrawals(
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_musician),
):
    rows = earnings_service.list_withdrawals(db, current_user.id, limit)
    return {
        "success": True,
        "withdrawals": [schemas.WithdrawalResponse.model_validate(w).model_dump(mode="json") for w in rows],
    }


@router.post("/withdrawals", status_code=status.HTTP_201_CREATED)
def request_withdrawal(
    payload: schemas.WithdrawalCreate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_musician),
):
    try:
        withdrawal = earnings_service.request_withdrawal(
            db, current_user, payload.amount, payload.bank_name, payload.account_number, utcnow()
        )
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    wallet = earnings_service.get_earnings(db, current_user.id)
    return {
        "success": True,
        "message": "Withdrawal requested",
        "withdrawal": schemas.WithdrawalResponse.model_validate(withdrawal).model_dump(mode="json"),
        "earnings": earnings_service.earnings_summary(wallet),
    }
