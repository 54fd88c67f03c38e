from fastapi import APIRouter, Depends, Header, Response, status
from sqlalchemy.orm import Session
from typing import Optional
import hashlib
import logging

from .. import models, schemas
from ..database import transaction
from ..utils.notifications import notification_to_dict
from .dependencies import get_current_user, get_db

router = APIRouter(tags=["notifications"])

logger = logging.getLogger(__name__)


@router.get("/notifications", responses={304: {"description": "Not Modified"}})
def read_my_notifications(
    skip: int = 0,
    limit: int = 20,
    unread_only: bool = False,
    response: Response = None,
    if_none_match: Optional[str] = Header(default=None, alias="If-None-Match"),
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    """Newest-first in-app notifications with a weak ETag for cheap polling."""
    q = db.query(models.Notification).filter(models.Notification.user_id == current_user.id)
    if unread_only:
        q = q.filter(models.Notification.is_read.is_(False))
    notifs = q.order_by(models.Notification.id.desc()).offset(skip).limit(max(1, min(limit, 100))).all()
    unread = (
        db.query(models.Notification)
        .filter(models.Notification.user_id == current_user.id, models.Notification.is_read.is_(False))
        .count()
    )
    latest = notifs[0].id if notifs else 0
    src = f"notif:{current_user.id}:{latest}:{len(notifs)}:{unread}:{skip}:{limit}:{int(unread_only)}"
    etag = f'W/"{hashlib.sha1(src.encode()).hexdigest()}"'
    if if_none_match and if_none_match.strip() == etag:
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers={"ETag": etag})
    if response is not None:
        response.headers["ETag"] = etag
        response.headers["Cache-Control"] = "private, max-age=15, stale-while-revalidate=60"
    return {
        "success": True,
        "notifications": [notification_to_dict(n) for n in notifs],
        "unread_count": unread,
    }


@router.post("/notifications/mark-read")
def mark_notifications_read(
    payload: schemas.MarkReadRequest,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    """Mark the given ids (or every unread notification when omitted) as read."""
    q = db.query(models.Notification).filter(
        models.Notification.user_id == current_user.id,
        models.Notification.is_read.is_(False),
    )
    if payload.ids:
        q = q.filter(models.Notification.id.in_(payload.ids))
    with transaction(db):
        updated = q.update({models.Notification.is_read: True}, synchronize_session=False)
    return {"success": True, "updated": int(updated)}
