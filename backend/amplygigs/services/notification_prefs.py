"""Per-user notification channel preferences.

Preferences are stored one row per user. A user without a row gets the
defaults below, and the first save creates the row. Delivery decisions go
through :func:`should_deliver`, which combines the global channel toggle,
the per-category toggle and quiet hours.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, time
from typing import Any, Mapping

from sqlalchemy.orm import Session

from .. import models
from ..database import transaction

logger = logging.getLogger(__name__)

KNOWN_CHANNELS = ("email", "sms", "whatsapp", "push")
CHANNEL_TOGGLES = {
    "email": "email_enabled",
    "sms": "sms_enabled",
    "whatsapp": "whatsapp_enabled",
    "push": "push_enabled",
    "in_app": "in_app_enabled",
}
KNOWN_CATEGORIES = ("booking", "message", "payment", "job", "marketing")
CONTACT_FIELDS = ("email_address", "phone_number", "whatsapp_number")

DEFAULT_PREFERENCES: dict[str, Any] = {
    "email_enabled": True,
    "sms_enabled": False,
    "whatsapp_enabled": False,
    "push_enabled": True,
    "in_app_enabled": True,
    "email_address": None,
    "phone_number": None,
    "whatsapp_number": None,
    "booking_notifications": {"email": True, "sms": False, "whatsapp": True, "push": True},
    "message_notifications": {"email": False, "sms": False, "whatsapp": True, "push": True},
    "payment_notifications": {"email": True, "sms": True, "whatsapp": True, "push": True},
    "job_notifications": {"email": True, "sms": False, "whatsapp": False, "push": True},
    "marketing_notifications": {"email": True, "sms": False, "whatsapp": False, "push": False},
    "quiet_hours_enabled": False,
    "quiet_hours_start": "22:00:00",
    "quiet_hours_end": "08:00:00",
}


def _category_field(category: str) -> str:
    return f"{category}_notifications"


def _parse_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    if isinstance(value, str):
        try:
            return time.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValueError(f"Invalid time of day: {value!r}")


def validate_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
    """Reject unknown keys and malformed category blobs."""
    clean: dict[str, Any] = {}
    for key, value in patch.items():
        if key not in DEFAULT_PREFERENCES:
            raise ValueError(f"Unknown preference: {key}")
        if key.endswith("_notifications"):
            if not isinstance(value, Mapping):
                raise ValueError(f"{key} must be an object")
            unknown = set(value) - set(KNOWN_CHANNELS)
            if unknown:
                raise ValueError(f"Unknown channel(s) for {key}: {', '.join(sorted(unknown))}")
            if not all(isinstance(v, bool) for v in value.values()):
                raise ValueError(f"{key} values must be booleans")
            clean[key] = dict(value)
        elif key in ("quiet_hours_start", "quiet_hours_end"):
            clean[key] = _parse_time(value).isoformat(timespec="seconds")
        elif key in CONTACT_FIELDS:
            clean[key] = (str(value).strip() or None) if value is not None else None
        else:
            if not isinstance(value, bool):
                raise ValueError(f"{key} must be a boolean")
            clean[key] = value
    return clean


def merge_preferences(existing: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``existing`` with ``patch`` applied; category blobs merge per channel."""
    merged = copy.deepcopy(dict(existing))
    for key, value in validate_patch(patch).items():
        if key.endswith("_notifications"):
            blob = dict(merged.get(key) or DEFAULT_PREFERENCES[key])
            blob.update(value)
            merged[key] = blob
        else:
            merged[key] = value
    return merged


def preferences_dict(row: models.NotificationPreference | None) -> dict[str, Any]:
    prefs = copy.deepcopy(DEFAULT_PREFERENCES)
    if row is None:
        return prefs
    for key in DEFAULT_PREFERENCES:
        value = getattr(row, key)
        if value is None and key not in CONTACT_FIELDS:
            continue
        if isinstance(value, time):
            value = value.isoformat(timespec="seconds")
        if key.endswith("_notifications"):
            value = {**DEFAULT_PREFERENCES[key], **value}
        prefs[key] = value
    return prefs


def get_preferences(db: Session, user_id: str) -> dict[str, Any]:
    row = (
        db.query(models.NotificationPreference)
        .filter(models.NotificationPreference.user_id == user_id)
        .first()
    )
    return preferences_dict(row)


def update_preferences(db: Session, user_id: str, patch: Mapping[str, Any]) -> dict[str, Any]:
    """Validate ``patch`` and upsert the user's preference row."""
    row = (
        db.query(models.NotificationPreference)
        .filter(models.NotificationPreference.user_id == user_id)
        .first()
    )
    merged = merge_preferences(preferences_dict(row), patch)
    with transaction(db):
        if row is None:
            row = models.NotificationPreference(user_id=user_id)
            db.add(row)
        for key, value in merged.items():
            if key in ("quiet_hours_start", "quiet_hours_end"):
                value = _parse_time(value)
            setattr(row, key, value)
    db.refresh(row)
    logger.info("Notification preferences updated for user %s", user_id)
    return preferences_dict(row)


def in_quiet_hours(prefs: Mapping[str, Any], at: datetime | time) -> bool:
    if not prefs.get("quiet_hours_enabled"):
        return False
    start = _parse_time(prefs.get("quiet_hours_start") or DEFAULT_PREFERENCES["quiet_hours_start"])
    end = _parse_time(prefs.get("quiet_hours_end") or DEFAULT_PREFERENCES["quiet_hours_end"])
    now = at.time() if isinstance(at, datetime) else at
    if start == end:
        return False
    if start < end:
        return start <= now < end
    # Window wraps midnight, e.g. 22:00 -> 08:00
    return now >= start or now < end


def should_deliver(
    prefs: Mapping[str, Any],
    category: str | None,
    channel: str,
    at: datetime | time | None = None,
) -> bool:
    """Decide whether a notification of ``category`` goes out on ``channel``.

    In-app delivery only honours its own toggle. Every other channel also
    needs the category flag and is held back during quiet hours.
    """
    toggle = CHANNEL_TOGGLES.get(channel)
    if toggle is None:
        raise ValueError(f"Unknown channel: {channel}")
    if not prefs.get(toggle, DEFAULT_PREFERENCES[toggle]):
        return False
    if channel == "in_app":
        return True
    if category is not None:
        if category not in KNOWN_CATEGORIES:
            raise ValueError(f"Unknown category: {category}")
        blob = prefs.get(_category_field(category)) or DEFAULT_PREFERENCES[_category_field(category)]
        if not blob.get(channel, False):
            return False
    if at is not None and in_quiet_hours(prefs, at):
        return False
    return True
