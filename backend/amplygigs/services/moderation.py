from __future__ import annotations

import csv
import logging
from datetime import datetime
from io import StringIO
from typing import Any, Iterable, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from .. import models
from ..database import transaction
from ..models import ReleaseType, ReportStatus, TicketPaymentStatus
from ..utils.notifications import notify
from ..utils.redis_cache import invalidate_bookings_cache
from . import escrow as escrow_service
from .exceptions import ModerationError

logger = logging.getLogger(__name__)

REPORT_ACTIONS = ("dismiss", "action", "suspend_user")
EVENT_MODELS = {
    "client": models.Event,
    "musician": models.MusicianEvent,
}


def _audit(
    db: Session,
    admin_id: str,
    action_type: str,
    target_type: str,
    target_id: Any,
    reason: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> models.AdminAction:
    """Stage an ``admin_actions`` row in the caller's transaction."""
    row = models.AdminAction(
        admin_id=admin_id,
        action_type=action_type,
        target_type=target_type,
        target_id=str(target_id),
        reason=reason,
        details=details,
    )
    if now is not None:
        row.at = now
    db.add(row)
    return row


def report_actions_available(report: models.UserReport) -> list[str]:
    """Actions the admin UI may offer; none once the report is resolved."""
    if report.status != ReportStatus.PENDING:
        return []
    return list(REPORT_ACTIONS)


def get_report(db: Session, report_id: int) -> models.UserReport:
    report = db.get(models.UserReport, report_id)
    if report is None:
        raise LookupError("Report not found")
    return report


def list_reports(
    db: Session,
    status_filter: Optional[str] = None,
    search: Optional[str] = None,
):
    q = db.query(models.UserReport)
    if status_filter and status_filter != "all":
        q = q.filter(models.UserReport.status == ReportStatus(status_filter))
    if search:
        like = f"%{search}%"
        q = q.filter(or_(models.UserReport.reason.ilike(like), models.UserReport.details.ilike(like)))
    return q


def report_stats(db: Session) -> dict[str, int]:
    counts = dict(
        db.query(models.UserReport.status, func.count(models.UserReport.id))
        .group_by(models.UserReport.status)
        .all()
    )
    stats = {s.value: int(counts.get(s, 0)) for s in ReportStatus}
    stats["total"] = sum(stats.values())
    return stats


def _resolve_report(
    db: Session,
    report: models.UserReport,
    admin: models.UserProfile,
    status: ReportStatus,
    now: datetime,
) -> None:
    if report.status != ReportStatus.PENDING:
        raise ModerationError(f"Report already {report.status.value}", status_code=409)
    report.status = status
    report.reviewed_by = admin.id
    report.reviewed_at = now


def review_report(
    db: Session,
    admin: models.UserProfile,
    report_id: int,
    action: str,
    now: datetime,
    notes: Optional[str] = None,
) -> models.UserReport:
    """Dismiss or action a pending report, with its audit row in one commit."""
    target = {"dismiss": ReportStatus.DISMISSED, "action": ReportStatus.ACTIONED}.get(action)
    if target is None:
        raise ModerationError(f"Unknown report action: {action}")
    report = get_report(db, report_id)
    with transaction(db):
        _resolve_report(db, report, admin, target, now)
        _audit(db, admin.id, f"report_{action}", "user_report", report.id, notes, now=now)
    logger.info("Report %s %s by admin %s", report.id, target.value, admin.id)
    return report


def dismiss_report(db: Session, admin: models.UserProfile, report_id: int, now: datetime) -> models.UserReport:
    return review_report(db, admin, report_id, "dismiss", now)


def action_report(db: Session, admin: models.UserProfile, report_id: int, now: datetime) -> models.UserReport:
    return review_report(db, admin, report_id, "action", now)


def suspend_user(
    db: Session,
    admin: models.UserProfile,
    user_id: str,
    reason: str,
    now: datetime,
    report_id: Optional[int] = None,
) -> models.UserProfile:
    user = db.get(models.UserProfile, user_id)
    if user is None:
        raise LookupError("User not found")
    if user.id == admin.id:
        raise ModerationError("You cannot suspend yourself")
    if user.is_suspended:
        raise ModerationError("User is already suspended", status_code=409)
    report = get_report(db, report_id) if report_id is not None else None
    with transaction(db):
        user.is_suspended = True
        user.suspended_at = now
        user.suspended_by = admin.id
        user.suspension_reason = reason
        if report is not None:
            _resolve_report(db, report, admin, ReportStatus.ACTIONED, now)
        _audit(
            db,
            admin.id,
            "suspend_user",
            "user_profile",
            user.id,
            reason,
            {"report_id": report_id} if report_id is not None else None,
            now=now,
        )
        notify(
            db,
            user.id,
            "account_suspended",
            "Account Suspended",
            f"Your account has been suspended. Reason: {reason}",
            {"reason": reason},
        )
    logger.info("User %s suspended by admin %s", user.id, admin.id)
    return user


def unsuspend_user(db: Session, admin: models.UserProfile, user_id: str, now: datetime) -> models.UserProfile:
    user = db.get(models.UserProfile, user_id)
    if user is None:
        raise LookupError("User not found")
    if not user.is_suspended:
        raise ModerationError("User is not suspended", status_code=409)
    with transaction(db):
        user.is_suspended = False
        user.suspended_at = None
        user.suspended_by = None
        user.suspension_reason = None
        _audit(db, admin.id, "unsuspend_user", "user_profile", user.id, now=now)
    return user


def _event_model(event_type: str):
    model = EVENT_MODELS.get(event_type)
    if model is None:
        raise ModerationError(f"Unknown event type: {event_type}")
    return model


def flag_event(
    db: Session,
    admin: models.UserProfile,
    event_type: str,
    event_id: int,
    reason: str,
    now: datetime,
):
    model = _event_model(event_type)
    event = db.get(model, event_id)
    if event is None:
        raise LookupError("Event not found")
    if event.is_flagged:
        raise ModerationError("Event is already flagged", status_code=409)
    with transaction(db):
        event.is_flagged = True
        event.flag_reason = reason
        event.flagged_at = now
        event.flagged_by = admin.id
        _audit(db, admin.id, "flag_event", model.__tablename__, event.id, reason, now=now)
    logger.info("%s %s flagged by admin %s", model.__name__, event.id, admin.id)
    return event


def delete_event(
    db: Session,
    admin: models.UserProfile,
    event_type: str,
    event_id: int,
    now: datetime,
    reason: Optional[str] = None,
) -> None:
    model = _event_model(event_type)
    event = db.get(model, event_id)
    if event is None:
        raise LookupError("Event not found")
    with transaction(db):
        _audit(
            db,
            admin.id,
            "delete_event",
            model.__tablename__,
            event.id,
            reason or "Admin deleted event",
            {"title": event.title},
            now=now,
        )
        db.delete(event)
    logger.info("%s %s deleted by admin %s", model.__name__, event_id, admin.id)


def refund_ticket(
    db: Session,
    admin: models.UserProfile,
    purchase_id: int,
    reason: str,
    now: datetime,
) -> models.TicketPurchase:
    purchase = db.get(models.TicketPurchase, purchase_id)
    if purchase is None:
        raise LookupError("Ticket purchase not found")
    if purchase.payment_status == TicketPaymentStatus.REFUNDED:
        raise ModerationError("Ticket already refunded", status_code=409)
    if purchase.payment_status != TicketPaymentStatus.COMPLETED:
        raise ModerationError("Only completed purchases can be refunded")
    with transaction(db):
        # Guarded update so a concurrent second refund fails cleanly
        updated = (
            db.query(models.TicketPurchase)
            .filter(
                models.TicketPurchase.id == purchase.id,
                models.TicketPurchase.payment_status == TicketPaymentStatus.COMPLETED,
            )
            .update(
                {
                    models.TicketPurchase.payment_status: TicketPaymentStatus.REFUNDED,
                    models.TicketPurchase.refund_reason: reason,
                    models.TicketPurchase.refunded_at: now,
                    models.TicketPurchase.refunded_by: admin.id,
                },
                synchronize_session="fetch",
            )
        )
        if not updated:
            raise ModerationError("Ticket already refunded", status_code=409)
        _audit(
            db,
            admin.id,
            "refund_ticket",
            "ticket_purchase",
            purchase.id,
            reason,
            {"amount": float(purchase.amount), "currency": purchase.currency},
            now=now,
        )
        notify(
            db,
            purchase.buyer_id,
            "ticket_refunded",
            "Ticket Refunded",
            f"Your ticket purchase #{purchase.id} was refunded. Reason: {reason}",
            {"purchase_id": purchase.id},
            category="payment",
        )
    return purchase


def release_booking_escrow(
    db: Session,
    admin: models.UserProfile,
    booking_id: int,
    reason: str,
    now: datetime,
) -> models.EscrowTransaction:
    """Release a held escrow on the musician's behalf, e.g. after a dispute."""
    booking, escrow = escrow_service.releasable_escrow(db, booking_id, now)
    with transaction(db):
        escrow_service.release_held_escrow(db, booking, escrow, admin.id, ReleaseType.ADMIN, now)
        _audit(
            db,
            admin.id,
            "release_escrow",
            "escrow_transactions",
            escrow.id,
            reason,
            {"booking_id": booking.id, "net_amount": float(escrow.net_amount)},
            now=now,
        )
    invalidate_bookings_cache(booking.participant_ids())
    logger.info("Escrow %s for booking %s released by admin %s", escrow.id, booking.id, admin.id)
    db.refresh(escrow)
    return escrow


def list_actions(db: Session):
    return db.query(models.AdminAction).order_by(models.AdminAction.at.desc(), models.AdminAction.id.desc())


def report_to_admin(report: models.UserReport) -> dict[str, Any]:
    return {
        "id": report.id,
        "reporter_id": report.reporter_id,
        "reported_user_id": report.reported_user_id,
        "reason": report.reason,
        "details": report.details,
        "status": report.status.value,
        "reviewed_by": report.reviewed_by,
        "reviewed_at": report.reviewed_at.isoformat() if report.reviewed_at else None,
        "created_at": report.created_at.isoformat() if report.created_at else None,
        "available_actions": report_actions_available(report),
    }


def export_reports_csv(reports: Iterable[models.UserReport]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow([
        "id",
        "reporter_id",
        "reported_user_id",
        "reason",
        "status",
        "reviewed_by",
        "reviewed_at",
        "created_at",
    ])
    for r in reports:
        writer.writerow([
            r.id,
            r.reporter_id,
            r.reported_user_id,
            r.reason,
            r.status.value,
            r.reviewed_by or "",
            r.reviewed_at.isoformat() if r.reviewed_at else "",
            r.created_at.isoformat() if r.created_at else "",
        ])
    return output.getvalue()
