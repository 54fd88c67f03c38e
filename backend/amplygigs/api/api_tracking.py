# Live location tracking: REST endpoints for the device that is moving and a
# WebSocket (/tracking/{booking_id}/ws) for the counterpart watching it.

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from .. import models, schemas
from ..core.config import settings
from ..database import get_db_session
from ..models import utcnow
from ..realtime.manager import manager
from ..services import tracking
from ..services.exceptions import DomainError
from ..utils.errors import domain_error_response
from .dependencies import get_current_user, get_db, user_from_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tracking", tags=["tracking"])

_DOMAIN_ERRORS = (DomainError, PermissionError, LookupError, ValueError)

WS_4401_UNAUTHORIZED = 4401
WS_4403_FORBIDDEN = 4403


def _topic(booking_id: int) -> str:
    return f"tracking:{booking_id}"


def _tracking_state(booking: models.Booking) -> Dict[str, Any]:
    return {
        "booking_id": booking.id,
        "tracking_active": bool(booking.tracking_active),
        "poll_interval_seconds": settings.TRACKING_POLL_INTERVAL_SECONDS,
    }


@router.post("/{booking_id}/start")
def start_tracking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    try:
        booking = tracking.set_tracking(db, booking_id, current_user, True)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, **_tracking_state(booking)}


@router.post("/{booking_id}/stop")
def stop_tracking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    try:
        booking = tracking.set_tracking(db, booking_id, current_user, False)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, **_tracking_state(booking)}


@router.post("/{booking_id}/location")
async def post_location(
    booking_id: int,
    payload: schemas.LocationUpdate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    """Store the caller's latest fix and push it to the other participant."""

    def _save():
        booking, row = tracking.upsert_location(
            db,
            booking_id,
            current_user,
            payload.latitude,
            payload.longitude,
            payload.accuracy,
            utcnow(),
        )
        event = tracking.notify_counterpart_proximity(
            db, booking, current_user, payload.latitude, payload.longitude
        )
        distance = tracking.distance_to_venue(booking, payload.latitude, payload.longitude)
        return tracking.location_to_dict(row), event, distance

    try:
        location, event, distance = await run_in_threadpool(_save)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    await manager.broadcast_topic(_topic(booking_id), {"type": "location", "payload": location})
    return {
        "success": True,
        "location": location,
        "distance_km": round(distance, 3) if distance is not None else None,
        "proximity": event.kind if event else None,
    }


@router.post("/{booking_id}/device-event")
async def post_device_event(
    booking_id: int,
    payload: schemas.DeviceEvent,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    try:
        await run_in_threadpool(tracking.latest_locations, db, booking_id, current_user.id)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    session = tracking.sessions.get(booking_id, current_user.id)
    if payload.kind == "battery":
        if payload.battery_level is None:
            raise domain_error_response(ValueError("battery_level is required for battery events"))
        event = session.set_battery(payload.battery_level, payload.charging)
    else:
        event = session.set_online(payload.kind == "online")
    if event is not None:
        await manager.broadcast_topic(
            _topic(booking_id),
            {"type": "device", "payload": {"user_id": current_user.id, **event}},
        )
    return {"success": True, "event": event}


@router.get("/{booking_id}/locations")
def get_locations(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    try:
        rows = tracking.latest_locations(db, booking_id, current_user.id)
    except _DOMAIN_ERRORS as exc:
        raise domain_error_response(exc)
    return {"success": True, "locations": [tracking.location_to_dict(r) for r in rows]}


class _StreamSink:
    """Adapts a viewer's :class:`LocationStream` to the manager's socket API."""

    def __init__(self, session: tracking.TrackingSession):
        self.session = session

    async def send_json(self, data: Dict[str, Any]) -> None:
        payload = data.get("payload") or {}
        if payload.get("user_id") == self.session.viewer_id:
            return
        self.session.stream.publish(data)


def _load_viewer(booking_id: int, token: Optional[str]):
    with get_db_session() as db:
        user = user_from_token(db, token)
        if user is None or user.is_suspended:
            return None, None, None, WS_4401_UNAUTHORIZED
        booking = db.get(models.Booking, booking_id)
        if booking is None or user.id not in booking.participant_ids():
            return None, None, None, WS_4403_FORBIDDEN
        other_id = booking.musician_id if booking.client_id == user.id else booking.client_id
        other = db.get(models.UserProfile, other_id)
        name = other.display_name if other else "The other party"
        db.expunge_all()
        return user.id, booking, name, None


@router.websocket("/{booking_id}/ws")
async def tracking_ws(
    websocket: WebSocket,
    booking_id: int,
    token: Optional[str] = Query(None),
):
    viewer_id, booking, name, close_code = await run_in_threadpool(_load_viewer, booking_id, token)
    if close_code is not None:
        await websocket.close(code=close_code)
        return
    await websocket.accept()
    session = tracking.sessions.get(booking_id, viewer_id)
    sink = _StreamSink(session)
    topic = _topic(booking_id)
    manager.subscribe(topic, sink)

    async def _pump() -> None:
        async for message in session.stream:
            if message.get("type") == "location":
                event = session.handle_counterpart(booking, message["payload"], name)
                if event is not None:
                    message = {
                        **message,
                        "proximity": {"kind": event.kind, "title": event.title, "message": event.message},
                    }
            await websocket.send_json(message)

    pump = asyncio.create_task(_pump())
    try:
        while True:
            msg = await websocket.receive_json()
            if msg.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
            elif msg.get("type") in ("online", "offline"):
                event = session.set_online(msg["type"] == "online")
                if event is not None:
                    await websocket.send_json({"type": "device", "payload": event})
    except WebSocketDisconnect:
        logger.debug("Tracking socket closed for booking %s viewer %s", booking_id, viewer_id)
    finally:
        manager.unsubscribe(topic, sink)
        pump.cancel()
        tracking.sessions.discard(session)
