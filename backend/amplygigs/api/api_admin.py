from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import asc, desc
from typing import Any, Dict, List, Optional, Tuple
import json
import logging

from .. import models, schemas
from ..models import utcnow
from ..services import moderation
from ..services.exceptions import DomainError
from ..utils.errors import domain_error_response
from .dependencies import get_current_admin, get_current_staff, get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

_DOMAIN_ERRORS = (DomainError, PermissionError, LookupError, ValueError)


# ────────────────────────────────────────────────────────────────────────────────
# List helpers (ra-data-simple-rest: range=[start,end], sort=[field,order])

def _parse_json_param(params, key: str):
    val = params.get(key)
    if not val:
        return None
    try:
        return json.loads(val)
    except ValueError:
        return None


def _get_offset_limit(params) -> Tuple[int, int, int, int]:
    """Return (offset, limit, start, end) from ``range`` or ``_page``/``_perPage``."""
    rng = _parse_json_param(params, "range")
    if isinstance(rng, list) and len(rng) == 2:
        try:
            start = max(int(rng[0]), 0)
            end = max(int(rng[1]), start)
        except (TypeError, ValueError):
            pass
        else:
            return start, end - start + 1, start, end
    try:
        page = max(int(params.get("_page", 1)), 1)
        per_page = max(1, min(int(params.get("_perPage", 25)), 200))
    except ValueError:
        page, per_page = 1, 25
    start = (page - 1) * per_page
    return start, per_page, start, start + per_page - 1


def _apply_sorting(query, model, params, default):
    sort = _parse_json_param(params, "sort")
    if isinstance(sort, list) and len(sort) == 2:
        field, order = sort[0], str(sort[1]).upper()
    else:
        field, order = params.get("_sort"), params.get("_order", "ASC").upper()
    if field and hasattr(model, field):
        col = getattr(model, field)
        return query.order_by(asc(col) if order == "ASC" else desc(col))
    return query.order_by(default)


def _with_total(items: List[Dict[str, Any]], total: int, resource: str, start: int, end: int) -> JSONResponse:
    resp = JSONResponse({"success": True, resource: items, "total": total})
    resp.headers["Access-Control-Expose-Headers"] = "X-Total-Count, Content-Range"
    resp.headers["X-Total-Count"] = str(total)
    resp.headers["Content-Range"] = f"{resource} {start}-{end}/{total}"
    return resp


def action_to_admin(a: models.AdminAction) -> Dict[str, Any]:
    return {
        "id": a.id,
        "admin_id": a.admin_id,
        "action_type": a.action_type,
        "target_type": a.target_type,
        "target_id": a.target_id,
        "reason": a.reason,
        "details": a.details or {},
        "at": a.at.isoformat() if a.at else None,
    }


# ────────────────────────────────────────────────────────────────────────────────
# Reports

@router.get("/reports")
def list_reports(
    request: Request,
    status_filter: Optional[str] = Query(None, alias="status"),
    q: Optional[str] = None,
    db: Session = Depends(get_db),
    _: models.UserProfile = Depends(get_current_staff),
):
    params = request.query_params
    offset, limit, start, end = _get_offset_limit(params)
    try:
        query = moderation.list_reports(db, status_filter, q)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    total = query.count()
    query = _apply_sorting(query, models.UserReport, params, models.UserReport.created_at.desc())
    items = [moderation.report_to_admin(r) for r in query.offset(offset).limit(limit).all()]
    return _with_total(items, total, "reports", start, end)


@router.get("/reports/stats")
def report_stats(
    db: Session = Depends(get_db),
    _: models.UserProfile = Depends(get_current_staff),
):
    return {"success": True, "stats": moderation.report_stats(db)}


@router.get("/reports/export")
def export_reports(
    status_filter: Optional[str] = Query(None, alias="status"),
    q: Optional[str] = None,
    db: Session = Depends(get_db),
    _: models.UserProfile = Depends(get_current_staff),
):
    try:
        query = moderation.list_reports(db, status_filter, q)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    rows = query.order_by(models.UserReport.created_at.desc()).all()
    stamp = utcnow().strftime("%Y%m%d")
    return Response(
        content=moderation.export_reports_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=user_reports_{stamp}.csv"},
    )


@router.get("/reports/{report_id}")
def get_report(
    report_id: int,
    db: Session = Depends(get_db),
    _: models.UserProfile = Depends(get_current_staff),
):
    try:
        report = moderation.get_report(db, report_id)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, "report": moderation.report_to_admin(report)}


@router.post("/reports/{report_id}/review")
def review_report(
    report_id: int,
    payload: schemas.ReportReview,
    db: Session = Depends(get_db),
    admin: models.UserProfile = Depends(get_current_staff),
):
    try:
        report = moderation.review_report(db, admin, report_id, payload.action, utcnow(), payload.notes)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, "report": moderation.report_to_admin(report)}


# ────────────────────────────────────────────────────────────────────────────────
# Sanctions

@router.post("/users/{user_id}/suspend")
def suspend_user(
    user_id: str,
    payload: schemas.SuspendRequest,
    db: Session = Depends(get_db),
    admin: models.UserProfile = Depends(get_current_admin),
):
    try:
        user = moderation.suspend_user(db, admin, user_id, payload.reason, utcnow(), payload.report_id)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {
        "success": True,
        "user": {
            "id": user.id,
            "is_suspended": user.is_suspended,
            "suspended_at": user.suspended_at.isoformat() if user.suspended_at else None,
            "suspension_reason": user.suspension_reason,
        },
    }


@router.post("/users/{user_id}/unsuspend")
def unsuspend_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: models.UserProfile = Depends(get_current_admin),
):
    try:
        user = moderation.unsuspend_user(db, admin, user_id, utcnow())
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, "user": {"id": user.id, "is_suspended": user.is_suspended}}


@router.post("/events/{event_type}/{event_id}/flag")
def flag_event(
    event_type: str,
    event_id: int,
    payload: schemas.FlagRequest,
    db: Session = Depends(get_db),
    admin: models.UserProfile = Depends(get_current_admin),
):
    try:
        event = moderation.flag_event(db, admin, event_type, event_id, payload.reason, utcnow())
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {
        "success": True,
        "event": {
            "id": event.id,
            "type": event_type,
            "is_flagged": event.is_flagged,
            "flag_reason": event.flag_reason,
        },
    }


@router.delete("/events/{event_type}/{event_id}")
def delete_event(
    event_type: str,
    event_id: int,
    payload: Optional[schemas.DeleteEventRequest] = None,
    db: Session = Depends(get_db),
    admin: models.UserProfile = Depends(get_current_admin),
):
    reason = payload.reason if payload else None
    try:
        moderation.delete_event(db, admin, event_type, event_id, utcnow(), reason)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, "message": "Event deleted"}


@router.post("/tickets/{purchase_id}/refund")
def refund_ticket(
    purchase_id: int,
    payload: schemas.RefundRequest,
    db: Session = Depends(get_db),
    admin: models.UserProfile = Depends(get_current_admin),
):
    try:
        purchase = moderation.refund_ticket(db, admin, purchase_id, payload.reason, utcnow())
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {
        "success": True,
        "purchase": {
            "id": purchase.id,
            "payment_status": purchase.payment_status.value,
            "refund_reason": purchase.refund_reason,
        },
    }


@router.post("/bookings/{booking_id}/release-escrow")
def release_escrow(
    booking_id: int,
    payload: schemas.EscrowReleaseRequest,
    db: Session = Depends(get_db),
    admin: models.UserProfile = Depends(get_current_admin),
):
    try:
        escrow = moderation.release_booking_escrow(db, admin, booking_id, payload.reason, utcnow())
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {
        "success": True,
        "escrow": {
            "id": escrow.id,
            "status": escrow.status.value,
            "release_type": escrow.release_type.value,
        },
    }


# ────────────────────────────────────────────────────────────────────────────────
# Audit log

@router.get("/actions")
def list_actions(
    request: Request,
    db: Session = Depends(get_db),
    _: models.UserProfile = Depends(get_current_admin),
):
    offset, limit, start, end = _get_offset_limit(request.query_params)
    query = moderation.list_actions(db)
    total = query.count()
    items = [action_to_admin(a) for a in query.offset(offset).limit(limit).all()]
    return _with_total(items, total, "actions", start, end)
