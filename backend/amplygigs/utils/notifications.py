from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

from .. import models
from ..realtime.manager import notifications_manager
from ..services import notification_prefs

logger = logging.getLogger(__name__)

_PENDING_KEY = "pending_broadcasts"
_main_loop: asyncio.AbstractEventLoop | None = None


def set_main_loop(loop: asyncio.AbstractEventLoop | None) -> None:
    """Remember the server loop so worker threads can hand broadcasts to it."""
    global _main_loop
    _main_loop = loop


def notification_to_dict(notif: models.Notification) -> dict[str, Any]:
    return {
        "id": notif.id,
        "user_id": notif.user_id,
        "type": notif.type,
        "title": notif.title,
        "message": notif.message,
        "data": notif.data or {},
        "is_read": bool(notif.is_read),
        "created_at": notif.created_at.isoformat() if notif.created_at else None,
    }


def notify(
    db: Session,
    user_id: str,
    ntype: str,
    title: str,
    message: str,
    data: Optional[dict[str, Any]] = None,
    category: Optional[str] = None,
) -> Optional[models.Notification]:
    """Add an in-app notification to the caller's unit of work.

    Nothing is committed here. The row lands with the caller's transaction
    and the WebSocket push is sent only once that transaction commits.
    """
    prefs = notification_prefs.get_preferences(db, user_id)
    if not notification_prefs.should_deliver(prefs, category, "in_app"):
        logger.debug("In-app notifications disabled for user %s; skipping %s", user_id, ntype)
        return None
    notif = models.Notification(
        user_id=user_id,
        type=ntype,
        title=title,
        message=message,
        data=data or {},
        is_read=False,
    )
    db.add(notif)
    db.info.setdefault(_PENDING_KEY, []).append(notif)
    return notif


def _dispatch(user_id: str, payload: dict[str, Any]) -> None:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None
    if loop is not None:
        loop.create_task(notifications_manager.broadcast(user_id, payload))
    elif _main_loop is not None and _main_loop.is_running():
        asyncio.run_coroutine_threadsafe(notifications_manager.broadcast(user_id, payload), _main_loop)
    else:
        # No event loop (e.g. background thread in tests); run synchronously
        asyncio.run(notifications_manager.broadcast(user_id, payload))


@event.listens_for(Session, "after_commit")
def _broadcast_committed(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    for notif in pending:
        # No SQL may be emitted inside after_commit; read loaded state only.
        state = notif.__dict__
        payload = {
            "id": state.get("id"),
            "user_id": state.get("user_id"),
            "type": state.get("type"),
            "title": state.get("title"),
            "message": state.get("message"),
            "data": state.get("data") or {},
            "is_read": False,
        }
        try:
            _dispatch(payload["user_id"], {"type": "notification", "payload": payload})
        except Exception as exc:
            logger.warning("Notification broadcast failed for user %s: %s", payload["user_id"], exc)


@event.listens_for(Session, "after_rollback")
def _drop_rolled_back(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)
