from pydantic import BaseModel, Field
from typing import Literal, Optional


class LocationUpdate(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0)


class DeviceEvent(BaseModel):
    kind: Literal["online", "offline", "battery"]
    battery_level: Optional[float] = Field(default=None, ge=0, le=1)
    charging: bool = False
