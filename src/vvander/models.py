from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

from .grid import Region


class LocationUpdate(BaseModel):
    """Single location update from the device."""
    timestamp: Optional[datetime] = Field(default=None)
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class BatchLocationRequest(BaseModel):
    """Locations delivered together (e.g. by a deferred background update)."""
    locations: List[LocationUpdate] = Field(..., min_length=1, max_length=1000, description="List of locations (max 1000)")


class ViewportRegion(BaseModel):
    """Visible map region: center plus angular span in degrees."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    latitude_delta: float = Field(..., gt=0, le=180)
    longitude_delta: float = Field(..., gt=0, le=360)

    def to_region(self) -> Region:
        return Region(
            latitude=self.latitude,
            longitude=self.longitude,
            latitude_delta=self.latitude_delta,
            longitude_delta=self.longitude_delta,
        )
