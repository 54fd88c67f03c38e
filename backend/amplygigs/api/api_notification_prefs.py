from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from .. import models, schemas
from ..services import notification_prefs
from ..utils.errors import domain_error_response
from .dependencies import get_current_user, get_db

router = APIRouter(tags=["notifications"])

logger = logging.getLogger(__name__)


@router.get("/notifications/preferences")
def read_preferences(
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    """Stored preferences, or the defaults for a user who never saved any."""
    prefs = notification_prefs.get_preferences(db, current_user.id)
    return {"success": True, "preferences": prefs}


@router.patch("/notifications/preferences")
def update_preferences(
    payload: schemas.NotificationPreferencesUpdate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(get_current_user),
):
    try:
        prefs = notification_prefs.update_preferences(db, current_user.id, payload.to_patch())
    except ValueError as exc:
        raise domain_error_response(exc)
    return {"success": True, "preferences": prefs}
