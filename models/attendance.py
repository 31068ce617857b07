from datetime import date as Date
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_serializer
from sqlmodel import Field, Index, SQLModel, UniqueConstraint

from utils.datetime_helpers import format_utc_datetime


# Defines the Structure of Data for a Check In / Check Out Call
class LocationPayload(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    # GPS accuracy in meters, informational only
    accuracy: float | None = None
    # When the device took the reading; stale readings are refused
    captured_at: datetime | None = None
    # Client-side geolocation failure: permission_denied / position_unavailable / timeout
    error: str | None = None


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    HALF_DAY = "half_day"
    ON_LEAVE = "on_leave"
    HOLIDAY = "holiday"
    WEEKEND = "weekend"


class CheckInMethod(str, Enum):
    GPS_GEOFENCE = "gps_geofence"
    MANUAL = "manual"


# One Row per Employee per Organisation-Local Day
class AttendanceRecord(SQLModel, table=True):
    __tablename__ = "attendance"

    __table_args__ = (
        # Single writer per (employee, day); concurrent check-ins collide here
        UniqueConstraint("employee_id", "date", name="uq_attendance_employee_date"),
        Index("ix_attendance_employee_id_date", "employee_id", "date"),
        Index("ix_attendance_date", "date"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    employee_id: str
    date: Date
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None
    check_in_latitude: Optional[float] = None
    check_in_longitude: Optional[float] = None
    check_in_method: Optional[CheckInMethod] = None
    geofence_verified: bool = Field(default=False)
    work_hours: Optional[float] = None
    status: AttendanceStatus = Field(default=AttendanceStatus.PRESENT)
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @field_serializer("check_in", "check_out", "created_at", "updated_at")
    def serialize_timestamps(self, dt: Optional[datetime]) -> Optional[str]:
        """Ensure timestamps are formatted as UTC with Z suffix"""
        return format_utc_datetime(dt)


class AttendanceEventType(str, Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    MANUAL_MARK = "manual_mark"


# Append-only audit trail next to the free-text notes column
class AttendanceEvent(SQLModel, table=True):
    __tablename__ = "attendance_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    attendance_id: int = Field(foreign_key="attendance.id", index=True)
    employee_id: str = Field(index=True)
    event: AttendanceEventType
    geofence_id: Optional[str] = None
    geofence_name: Optional[str] = None
    distance_meters: Optional[float] = None
    # Who triggered it: the employee themselves, or the HR user marking
    actor_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)

    @field_serializer("created_at")
    def serialize_created_at(self, dt: datetime) -> str:
        """Ensure timestamp is formatted as UTC with Z suffix"""
        result = format_utc_datetime(dt)
        return result if result is not None else dt.isoformat()
