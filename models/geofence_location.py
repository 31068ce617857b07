from datetime import datetime, timezone
from typing import Optional

from pydantic import field_serializer
from sqlmodel import Field, SQLModel

from utils.datetime_helpers import format_utc_datetime

# Defines the Structure of Data for Comparing an Employee Check In/Out to an Office Location


# Office / Site w/ Circular Geofence
class GeofenceLocation(SQLModel, table=True):
    __tablename__ = "geofence_locations"

    id: str = Field(primary_key=True, description="Unique geofence identifier")
    name: str = Field(..., description="Human-friendly location name")
    latitude: float = Field(..., ge=-90, le=90, description="Latitude of fence center")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude of fence center")
    # Stored as configured; admission is capped at 100 m regardless
    radius_meters: float = Field(..., gt=0, description="Configured radius in meters")
    is_active: bool = Field(default=True, index=True)
    # Branch / country partition; None applies to every employee
    region: Optional[str] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("created_at")
    def serialize_created_at(self, dt: datetime) -> str:
        """Ensure timestamp is formatted as UTC with Z suffix"""
        result = format_utc_datetime(dt)
        return result if result is not None else dt.isoformat()
