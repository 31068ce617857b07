import logging
from datetime import datetime
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_serializer
from pydantic import Field as PydanticField
from sqlmodel import Session, select

from core.deps import require_admin_role
from db.session import get_session
from models.geofence_location import GeofenceLocation
from services.geofence_service import GeofenceService
from utils.datetime_helpers import format_utc_datetime
from utils.geofence import MAX_ALLOWED_RADIUS_METERS, effective_radius

logger = logging.getLogger(__name__)

# --- Router Definition ---
router = APIRouter()


# --- Pydantic Data Models ---


# Base model: Common fields required or used by other Geofence models
class GeofenceBase(BaseModel):
    name: str = PydanticField(..., min_length=1)
    latitude: float = PydanticField(ge=-90, le=90)
    longitude: float = PydanticField(ge=-180, le=180)
    # May exceed the hard cap; admission still stops at 100 m
    radius_meters: float = PydanticField(default=MAX_ALLOWED_RADIUS_METERS, gt=0)
    region: Optional[str] = None
    is_active: bool = True


# Create model: Data needed when creating a NEW geofence via POST
class GeofenceCreate(GeofenceBase):
    id: str = PydanticField(
        ..., min_length=1, description="Unique geofence identifier (e.g., DXB-HQ)"
    )


# Read model: How geofences look when sent back in responses
class GeofenceRead(GeofenceBase):
    id: str
    allowed_radius: float
    created_at: Optional[datetime] = None

    @field_serializer("created_at")
    def serialize_created_at(self, dt: Optional[datetime]) -> Optional[str]:
        return format_utc_datetime(dt)


# Update model: All fields optional, only what the client sends is changed
class GeofenceUpdate(BaseModel):
    name: Optional[str] = PydanticField(default=None, min_length=1)
    latitude: Optional[float] = PydanticField(default=None, ge=-90, le=90)
    longitude: Optional[float] = PydanticField(default=None, ge=-180, le=180)
    radius_meters: Optional[float] = PydanticField(default=None, gt=0)
    region: Optional[str] = None


class GeofenceActiveUpdate(BaseModel):
    is_active: bool


def to_read(fence: GeofenceLocation) -> GeofenceRead:
    return GeofenceRead(
        id=fence.id,
        name=fence.name,
        latitude=fence.latitude,
        longitude=fence.longitude,
        radius_meters=fence.radius_meters,
        region=fence.region,
        is_active=fence.is_active,
        allowed_radius=effective_radius(fence.radius_meters),
        created_at=fence.created_at,
    )


# --- API Endpoints ---


# Endpoint: Create a New Geofence
@router.post("/geofences", response_model=GeofenceRead, status_code=status.HTTP_201_CREATED)
async def create_geofence(
    fence_in: GeofenceCreate,
    session: Annotated[Session, Depends(get_session)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    if session.get(GeofenceLocation, fence_in.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Geofence with ID '{fence_in.id}' already exists.",
        )

    try:
        db_fence = GeofenceLocation(**fence_in.model_dump())
        session.add(db_fence)
        session.commit()
        session.refresh(db_fence)
    except Exception as e:
        session.rollback()
        logger.error(f"[GEOFENCE] Error creating geofence {fence_in.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not create geofence.",
        )

    if db_fence.radius_meters > MAX_ALLOWED_RADIUS_METERS:
        logger.warning(
            f"[GEOFENCE] {db_fence.id} configured with {db_fence.radius_meters}m; "
            f"admission is capped at {MAX_ALLOWED_RADIUS_METERS:.0f}m"
        )
    logger.info(f"[GEOFENCE] Admin {admin_user.get('email')} created geofence {db_fence.id}")
    return to_read(db_fence)


# Endpoint: List All Geofences (active and inactive)
@router.get("/geofences", response_model=List[GeofenceRead])
async def list_geofences(
    session: Annotated[Session, Depends(get_session)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    fences = session.exec(select(GeofenceLocation).order_by(GeofenceLocation.id)).all()
    return [to_read(fence) for fence in fences]


# Endpoint: Get a Single Geofence by ID
@router.get("/geofences/{geofence_id}", response_model=GeofenceRead)
async def read_geofence(
    geofence_id: str,
    session: Annotated[Session, Depends(get_session)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    return to_read(GeofenceService.get(session, geofence_id))


# Endpoint: Update an Existing Geofence by ID
@router.patch("/geofences/{geofence_id}", response_model=GeofenceRead)
async def update_geofence(
    geofence_id: str,
    fence_update: GeofenceUpdate,
    session: Annotated[Session, Depends(get_session)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    db_fence = GeofenceService.get(session, geofence_id)

    try:
        # exclude_unset=True: only the fields the client actually sent
        for key, value in fence_update.model_dump(exclude_unset=True).items():
            setattr(db_fence, key, value)
        session.add(db_fence)
        session.commit()
        session.refresh(db_fence)
    except Exception as e:
        session.rollback()
        logger.error(f"[GEOFENCE] Error updating geofence {geofence_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not update geofence.",
        )

    logger.info(f"[GEOFENCE] Admin {admin_user.get('email')} updated geofence {geofence_id}")
    return to_read(db_fence)


# Endpoint: Activate / Deactivate a Geofence
@router.patch("/geofences/{geofence_id}/active", response_model=GeofenceRead)
async def set_geofence_active(
    geofence_id: str,
    body: GeofenceActiveUpdate,
    session: Annotated[Session, Depends(get_session)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    db_fence = GeofenceService.get(session, geofence_id)

    try:
        db_fence.is_active = body.is_active
        session.add(db_fence)
        session.commit()
        session.refresh(db_fence)
    except Exception as e:
        session.rollback()
        logger.error(f"[GEOFENCE] Error updating status of geofence {geofence_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not update geofence status.",
        )

    state = "activated" if body.is_active else "deactivated"
    logger.info(f"[GEOFENCE] Admin {admin_user.get('email')} {state} geofence {geofence_id}")
    return to_read(db_fence)


# Endpoint: Delete a Geofence by ID
@router.delete("/geofences/{geofence_id}", status_code=status.HTTP_200_OK)
async def delete_geofence(
    geofence_id: str,
    session: Annotated[Session, Depends(get_session)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    db_fence = GeofenceService.get(session, geofence_id)

    try:
        session.delete(db_fence)
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"[GEOFENCE] Error deleting geofence {geofence_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not delete geofence.",
        )

    logger.info(f"[GEOFENCE] Admin {admin_user.get('email')} deleted geofence {geofence_id}")
    return {
        "status": "success",
        "message": f"Geofence '{geofence_id}' deleted successfully.",
    }
