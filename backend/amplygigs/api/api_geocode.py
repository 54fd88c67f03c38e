from dataclasses import asdict
from fastapi import APIRouter, Depends, Query, status
from typing import Optional
import logging

from .. import models
from ..services import geocode
from ..utils.errors import error_response
from .dependencies import get_current_user

router = APIRouter(tags=["geocode"])
logger = logging.getLogger(__name__)


@router.get("/geocode")
async def geocode_lookup(
    address: Optional[str] = Query(None, min_length=1),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    _: models.UserProfile = Depends(get_current_user),
):
    """Forward lookup with ``address`` or reverse lookup with ``lat``/``lng``."""
    if address:
        result = await geocode.geocode_address(address)
        if result is None:
            raise error_response("Location not found", {"address": "not_found"}, status.HTTP_404_NOT_FOUND)
        return {"success": True, **asdict(result)}
    if lat is None or lng is None:
        raise error_response("Provide an address or lat and lng", {"address": "required"})
    rev = await geocode.reverse_geocode(lat, lng)
    if rev is None:
        raise error_response("Location not found", {"lat": "not_found"}, status.HTTP_404_NOT_FOUND)
    return {"success": True, **asdict(rev)}
