"""
Attendance domain errors.

Every error carries the HTTP status the API reports it with; main.py turns
them into JSON responses with the class name as `error_code`.
"""

from typing import Optional

from fastapi import status


class AttendanceError(Exception):
    """Base class for failures reported back to the employee."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Attendance request failed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        self.error_code = self.__class__.__name__
        super().__init__(self.message)


class LocationUnavailableError(AttendanceError):
    """Device location could not be acquired; raised before any geofence check."""

    status_code = 422

    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"

    MESSAGES = {
        PERMISSION_DENIED: "Location permission denied.",
        POSITION_UNAVAILABLE: "Location unavailable.",
        TIMEOUT: "Location request timed out.",
    }

    def __init__(self, reason: str = POSITION_UNAVAILABLE, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or self.MESSAGES.get(reason, "Unable to read your location."))


class OutsideGeofenceError(AttendanceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Outside allowed 100m geofence radius. Attendance not allowed."


class AlreadyCheckedInError(AttendanceError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Check-in already marked for today."


class AlreadyCheckedOutError(AttendanceError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Check-out already marked."


class NoCheckInError(AttendanceError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Cannot check out before checking in."


class GeofenceNotFoundError(AttendanceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Geofence location not found."
