from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from dataclasses import asdict
import logging

from .. import models, schemas
from ..models import utcnow
from ..services import booking_lifecycle, escrow as escrow_service, wallet as wallet_service
from ..services.exceptions import DomainError
from ..services.fees import compute_fee_breakdown
from ..services.payment_gateway import PaystackGateway, get_payment_gateway
from ..utils.errors import domain_error_response
from .api_booking import booking_payload
from .dependencies import get_current_client, get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["wallet"])

_DOMAIN_ERRORS = (DomainError, PermissionError, LookupError, ValueError)


@router.get("/wallet")
def get_wallet(
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_client),
):
    wallet = wallet_service.get_wallet(db, current_user.id)
    return {"success": True, "wallet": wallet_service.wallet_summary(wallet)}


@router.get("/wallet/transactions")
def list_wallet_transactions(
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_client),
):
    rows = wallet_service.list_transactions(db, current_user.id, limit)
    return {
        "success": True,
        "transactions": [
            schemas.WalletTransactionResponse.model_validate(r).model_dump(mode="json") for r in rows
        ],
    }


@router.post("/wallet/deposit")
def deposit(
    payload: schemas.DepositRequest,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_client),
    gateway: PaystackGateway = Depends(get_payment_gateway),
):
    try:
        result = wallet_service.start_deposit(db, current_user, payload.amount, payload.country_code, gateway)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, **result}


@router.get("/wallet/verify")
def verify_deposit(
    tx_ref: str = Query(..., min_length=4),
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_client),
    gateway: PaystackGateway = Depends(get_payment_gateway),
):
    try:
        tx = wallet_service.confirm_deposit(db, tx_ref, gateway, client_id=current_user.id)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    wallet = wallet_service.get_wallet(db, current_user.id)
    return {
        "success": True,
        "transaction": schemas.WalletTransactionResponse.model_validate(tx).model_dump(mode="json"),
        "wallet": wallet_service.wallet_summary(wallet),
    }


@router.get("/bookings/{booking_id}/payment-options")
def payment_options(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_client),
):
    try:
        booking = booking_lifecycle.get_booking_for_participant(db, booking_id, current_user.id)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    wallet = wallet_service.get_wallet(db, current_user.id)
    balance = wallet.balance if wallet else 0
    options = wallet_service.payment_options(
        balance, booking.amount, wallet.currency if wallet else None, booking.currency
    )
    return {
        "success": True,
        "fees": compute_fee_breakdown(booking.amount, booking.currency).as_dict(),
        "wallet_balance": float(balance),
        "options": [asdict(o) for o in options],
    }


@router.post("/booking/pay-from-wallet")
def pay_from_wallet(
    payload: schemas.BookingActionRequest,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_client),
):
    now = utcnow()
    try:
        escrow, wallet = wallet_service.pay_from_wallet(db, current_user, payload.booking_id, now)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    booking = escrow.booking
    return {
        "success": True,
        "message": "Payment successful",
        "escrow_id": escrow.id,
        "escrow": escrow_service.escrow_summary(escrow, booking),
        "wallet": wallet_service.wallet_summary(wallet),
        "booking": booking_payload(booking, now),
    }


@router.post("/pay")
def start_direct_payment(
    payload: schemas.BookingActionRequest,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_client),
    gateway: PaystackGateway = Depends(get_payment_gateway),
):
    try:
        result = wallet_service.start_direct_payment(db, current_user, payload.booking_id, gateway)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, **result}


@router.get("/pay/verify")
def verify_direct_payment(
    reference: str = Query(..., min_length=4),
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_client),
    gateway: PaystackGateway = Depends(get_payment_gateway),
):
    now = utcnow()
    try:
        escrow = wallet_service.confirm_direct_payment(db, reference, gateway, now, client_id=current_user.id)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {
        "success": True,
        "escrow": escrow_service.escrow_summary(escrow, escrow.booking),
        "booking": booking_payload(escrow.booking, now),
    }
