from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from core.deps import get_current_user
from db.session import get_session
from models.attendance import LocationPayload
from services.attendance_service import RECENT_ATTENDANCE_LIMIT, AttendanceService
from services.geofence_service import GeofenceService
from services.location_provider import RequestLocationProvider, acquire_location
from utils.geofence import effective_radius
from utils.timezone_helpers import org_today


# --- Pydantic Models for Response ---


class GeofenceSummary(BaseModel):
    id: str
    name: str
    latitude: float
    longitude: float
    radius_meters: float
    allowed_radius: float
    region: Optional[str] = None


class NearestFenceResponse(BaseModel):
    geofence_id: str
    name: str
    distance_meters: float
    allowed_radius: float
    inside: bool
    accuracy: Optional[float] = None


# Defines API Endpoints
router = APIRouter()

PERSISTENCE_ERROR = HTTPException(
    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    detail="Could not save attendance.",
)


# Check In Endpoint
@router.post("/check-in")
async def check_in(
    data: LocationPayload,
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    # Location first; nothing else is looked at without a fresh reading
    location = await acquire_location(RequestLocationProvider(data))

    now = datetime.now(timezone.utc)
    fences = GeofenceService.applicable_fences(session, user.get("region"))
    try:
        record = AttendanceService.check_in(
            employee_id=user["uid"],
            day=org_today(now),
            location=location,
            fences=fences,
            session=session,
            now=now,
        )
    except SQLAlchemyError:
        raise PERSISTENCE_ERROR

    return {"status": "success", "data": record, "message": "Attendance check-in marked."}


# Check Out Endpoint
@router.post("/check-out")
async def check_out(
    data: LocationPayload,
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    location = await acquire_location(RequestLocationProvider(data))

    now = datetime.now(timezone.utc)
    fences = GeofenceService.applicable_fences(session, user.get("region"))
    try:
        record = AttendanceService.check_out(
            employee_id=user["uid"],
            day=org_today(now),
            location=location,
            fences=fences,
            session=session,
            now=now,
        )
    except SQLAlchemyError:
        raise PERSISTENCE_ERROR

    return {"status": "success", "data": record, "message": "Attendance check-out marked."}


# Get Today's Record
@router.get("/today")
def get_today(
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    record = AttendanceService.get_record(user["uid"], org_today(), session)
    if not record:
        return {"status": "success", "data": None, "message": "No attendance marked today."}
    return {"status": "success", "data": record}


# Get Recent Records (newest day first)
@router.get("/recent")
def get_recent(
    limit: int = Query(default=RECENT_ATTENDANCE_LIMIT, ge=1, le=90),
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    records = AttendanceService.get_recent(user["uid"], session, limit=limit)
    return {"status": "success", "data": records}


# Fences That Apply To The Caller
@router.get("/geofences", response_model=List[GeofenceSummary])
def get_my_geofences(
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    fences = GeofenceService.applicable_fences(session, user.get("region"))
    return [
        GeofenceSummary(
            id=fence.id,
            name=fence.name,
            latitude=fence.latitude,
            longitude=fence.longitude,
            radius_meters=fence.radius_meters,
            allowed_radius=effective_radius(fence.radius_meters),
            region=fence.region,
        )
        for fence in fences
    ]


# Nearest Fence Preview (no attendance is written)
@router.post("/geofences/nearest")
async def preview_nearest_fence(
    data: LocationPayload,
    session: Session = Depends(get_session),
    user: dict = Depends(get_current_user),
):
    location = await acquire_location(RequestLocationProvider(data))
    fences = GeofenceService.applicable_fences(session, user.get("region"))

    nearest = GeofenceService.nearest(location, fences)
    if nearest is None:
        return {"status": "success", "data": None, "message": "No geofence configured for you."}

    return {
        "status": "success",
        "data": NearestFenceResponse(
            geofence_id=nearest.fence.id,
            name=nearest.name,
            distance_meters=round(nearest.distance_meters, 1),
            allowed_radius=nearest.allowed_radius,
            inside=nearest.inside,
            accuracy=location.accuracy,
        ),
    }
