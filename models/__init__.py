from .attendance import (
    AttendanceEvent,
    AttendanceEventType,
    AttendanceRecord,
    AttendanceStatus,
    CheckInMethod,
    LocationPayload,
)
from .geofence_location import GeofenceLocation
