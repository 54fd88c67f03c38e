"""Live location tracking for a booking.

While ``booking.tracking_active`` is set each participant posts a location
fix every ``TRACKING_POLL_INTERVAL_SECONDS``. The latest fix per user is
kept in ``live_locations`` and pushed to the counterpart, whose
:class:`ProximityNotifier` turns distance-to-venue into "arrived" and
"distance update" notifications.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Optional

from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..database import transaction
from ..models import BookingStatus
from ..utils.notifications import notify
from ..utils.redis_cache import invalidate_bookings_cache
from .exceptions import TrackingError

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
DEFAULT_POLL_INTERVAL_SECONDS = 10
LOW_BATTERY_LEVEL = 0.15


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return great-circle distance in kilometers between two lat/lng pairs."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dl = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dl / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


@dataclass
class ProximityEvent:
    kind: str  # arrived|distance_update
    distance_km: float
    title: str
    message: str


@dataclass
class ProximityNotifier:
    """Turns successive distances to the venue into user-facing events.

    The first reading only seeds ``last_notified_distance``. After that a
    ``distance_update`` fires each time the counterpart has closed at least
    ``step_km`` since the last notification.
    """

    arrival_km: float = field(default_factory=lambda: settings.TRACKING_ARRIVAL_KM)
    step_km: float = field(default_factory=lambda: settings.TRACKING_NOTIFY_STEP_KM)
    last_notified_distance: Optional[float] = None
    arrived: bool = False

    def reset(self) -> None:
        self.last_notified_distance = None
        self.arrived = False

    def observe(self, distance_km: float, name: str) -> Optional[ProximityEvent]:
        if distance_km < self.arrival_km:
            if self.arrived:
                return None
            self.arrived = True
            return ProximityEvent(
                "arrived",
                distance_km,
                "Arrival Confirmed!",
                f"{name} has arrived at the venue!",
            )
        self.arrived = False
        if self.last_notified_distance is None:
            self.last_notified_distance = distance_km
            return None
        if self.last_notified_distance - distance_km >= self.step_km:
            self.last_notified_distance = distance_km
            return ProximityEvent(
                "distance_update",
                distance_km,
                "Location Update",
                f"{name} is now {distance_km:.1f}km away from the venue",
            )
        return None


class LocationStream:
    """Bounded, cancellable queue of location updates for one subscriber.

    ``publish`` never blocks: when the queue is full the oldest update is
    dropped, since only the latest position matters. ``suspend`` parks the
    stream (publishes are discarded) until ``resume``; ``close`` ends
    iteration.
    """

    _CLOSED = object()

    def __init__(self, maxsize: Optional[int] = None):
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize or settings.TRACKING_STREAM_MAXSIZE)
        self._resumed = asyncio.Event()
        self._resumed.set()
        self.closed = False
        self.dropped = 0

    @property
    def suspended(self) -> bool:
        return not self._resumed.is_set()

    def publish(self, update: dict[str, Any]) -> bool:
        if self.closed or self.suspended:
            return False
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(update)
        return True

    def suspend(self) -> None:
        self._resumed.clear()

    def resume(self) -> None:
        self._resumed.set()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._resumed.set()
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self

    async def __anext__(self) -> dict[str, Any]:
        while True:
            await self._resumed.wait()
            item = await self._queue.get()
            if item is self._CLOSED:
                raise StopAsyncIteration
            if self.suspended:
                continue
            return item


class TrackingSession:
    """Per-booking, per-viewer tracking state.

    Starting a session always resets the proximity notifier so a new
    session never inherits the distance notified in an earlier one.
    Connectivity and battery transitions each yield a single one-shot
    event; going offline suspends the location stream.
    """

    def __init__(self, booking_id: int, viewer_id: str, stream: Optional[LocationStream] = None):
        self.booking_id = booking_id
        self.viewer_id = viewer_id
        self.stream = stream or LocationStream()
        self.notifier = ProximityNotifier()
        self.active = False
        self.online = True
        self.low_battery = False

    def start(self) -> None:
        self.notifier.reset()
        self.active = True
        self.stream.resume()

    def stop(self) -> None:
        self.active = False
        self.stream.close()

    def set_online(self, online: bool) -> Optional[dict[str, str]]:
        if online == self.online:
            return None
        self.online = online
        if online:
            self.stream.resume()
            return {"kind": "online", "title": "Back Online", "message": "Location tracking resumed."}
        self.stream.suspend()
        return {
            "kind": "offline",
            "title": "Connection Lost",
            "message": "Location tracking paused until you are back online.",
        }

    def set_battery(self, level: float, charging: bool = False) -> Optional[dict[str, str]]:
        low = level < LOW_BATTERY_LEVEL and not charging
        if low == self.low_battery:
            return None
        self.low_battery = low
        if not low:
            return None
        return {
            "kind": "low_battery",
            "title": "Low Battery",
            "message": f"Battery at {int(level * 100)}%. Tracking may stop if your device powers off.",
        }

    def handle_counterpart(self, booking: models.Booking, update: dict[str, Any], name: str) -> Optional[ProximityEvent]:
        if not self.active or booking.event_latitude is None or booking.event_longitude is None:
            return None
        distance = haversine_km(
            float(update["latitude"]),
            float(update["longitude"]),
            float(booking.event_latitude),
            float(booking.event_longitude),
        )
        return self.notifier.observe(distance, name)


def _trackable(db: Session, booking_id: int, user_id: str) -> models.Booking:
    booking = db.get(models.Booking, booking_id)
    if booking is None:
        raise LookupError("Booking not found")
    if user_id not in booking.participant_ids():
        raise PermissionError("Not a participant in this booking")
    return booking


def set_tracking(db: Session, booking_id: int, user: models.UserProfile, active: bool) -> models.Booking:
    booking = _trackable(db, booking_id, user.id)
    if active and booking.status != BookingStatus.CONFIRMED:
        raise TrackingError("Tracking is only available for confirmed bookings", status_code=409)
    if booking.tracking_active == active:
        return booking
    with transaction(db):
        booking.tracking_active = active
        if active:
            proximity.reset_booking(booking.id)
            for session in sessions.for_booking(booking.id):
                session.start()
            other = booking.musician_id if booking.client_id == user.id else booking.client_id
            notify(
                db,
                other,
                "tracking_started",
                "Live Tracking Started",
                f"{user.display_name} started sharing live location for booking #{booking.id}.",
                {"booking_id": booking.id},
                category="booking",
            )
    if not active:
        sessions.stop_booking(booking.id)
        proximity.drop_booking(booking.id)
    invalidate_bookings_cache(booking.participant_ids())
    logger.info("Tracking for booking %s set to %s by %s", booking.id, active, user.id)
    return booking


def upsert_location(
    db: Session,
    booking_id: int,
    user: models.UserProfile,
    latitude: float,
    longitude: float,
    accuracy: Optional[float],
    now: datetime,
) -> tuple[models.Booking, models.LiveLocation]:
    booking = _trackable(db, booking_id, user.id)
    if not booking.tracking_active:
        raise TrackingError("Tracking is not active for this booking", status_code=409)
    with transaction(db):
        row = (
            db.query(models.LiveLocation)
            .filter(
                models.LiveLocation.booking_id == booking.id,
                models.LiveLocation.user_id == user.id,
            )
            .first()
        )
        if row is None:
            row = models.LiveLocation(booking_id=booking.id, user_id=user.id)
            db.add(row)
        row.latitude = latitude
        row.longitude = longitude
        row.accuracy = accuracy
        row.recorded_at = now
    db.refresh(row)
    return booking, row


def latest_locations(db: Session, booking_id: int, user_id: str) -> list[models.LiveLocation]:
    _trackable(db, booking_id, user_id)
    return (
        db.query(models.LiveLocation)
        .filter(models.LiveLocation.booking_id == booking_id)
        .order_by(models.LiveLocation.user_id)
        .all()
    )


def location_to_dict(row: models.LiveLocation) -> dict[str, Any]:
    return {
        "booking_id": row.booking_id,
        "user_id": row.user_id,
        "latitude": row.latitude,
        "longitude": row.longitude,
        "accuracy": row.accuracy,
        "updated_at": row.recorded_at.isoformat() if row.recorded_at else None,
    }


def distance_to_venue(booking: models.Booking, latitude: float, longitude: float) -> Optional[float]:
    if booking.event_latitude is None or booking.event_longitude is None:
        return None
    return haversine_km(latitude, longitude, booking.event_latitude, booking.event_longitude)


class ProximityRegistry:
    """Server-side notifiers keyed by (booking, viewer).

    Persisted notifications for proximity are generated here so a viewer
    who is not connected still gets arrival and distance updates.
    """

    def __init__(self) -> None:
        self._notifiers: dict[tuple[int, str], ProximityNotifier] = {}

    def get(self, booking_id: int, viewer_id: str) -> ProximityNotifier:
        key = (booking_id, viewer_id)
        if key not in self._notifiers:
            self._notifiers[key] = ProximityNotifier()
        return self._notifiers[key]

    def reset_booking(self, booking_id: int) -> None:
        for key in [k for k in self._notifiers if k[0] == booking_id]:
            self._notifiers[key].reset()

    def drop_booking(self, booking_id: int) -> None:
        for key in [k for k in self._notifiers if k[0] == booking_id]:
            del self._notifiers[key]

    def __len__(self) -> int:
        return len(self._notifiers)

    def clear(self) -> None:
        self._notifiers.clear()


proximity = ProximityRegistry()


def notify_counterpart_proximity(
    db: Session, booking: models.Booking, mover: models.UserProfile, latitude: float, longitude: float
) -> Optional[ProximityEvent]:
    distance = distance_to_venue(booking, latitude, longitude)
    if distance is None:
        return None
    viewer = booking.musician_id if booking.client_id == mover.id else booking.client_id
    event = proximity.get(booking.id, viewer).observe(distance, mover.display_name)
    if event is None:
        return None
    with transaction(db):
        notify(
            db,
            viewer,
            f"tracking_{event.kind}",
            event.title,
            event.message,
            {"booking_id": booking.id, "distance_km": round(event.distance_km, 3)},
            category="booking",
        )
    return event


class SessionRegistry:
    """Open :class:`TrackingSession` objects keyed by (booking, viewer)."""

    def __init__(self) -> None:
        self._sessions: dict[tuple[int, str], TrackingSession] = {}

    def get(self, booking_id: int, viewer_id: str) -> TrackingSession:
        key = (booking_id, viewer_id)
        session = self._sessions.get(key)
        if session is None or session.stream.closed:
            session = TrackingSession(booking_id, viewer_id)
            session.start()
            self._sessions[key] = session
        return session

    def for_booking(self, booking_id: int) -> list[TrackingSession]:
        return [s for k, s in self._sessions.items() if k[0] == booking_id]

    def stop_booking(self, booking_id: int) -> None:
        for key in [k for k in self._sessions if k[0] == booking_id]:
            self._sessions.pop(key).stop()

    def discard(self, session: TrackingSession) -> None:
        key = (session.booking_id, session.viewer_id)
        if self._sessions.get(key) is session:
            del self._sessions[key]
        session.stop()

    def clear(self) -> None:
        for session in self._sessions.values():
            session.stop()
        self._sessions.clear()


sessions = SessionRegistry()
