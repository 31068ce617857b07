import logging
from typing import List, Optional

from sqlmodel import Session, select

from core.errors import GeofenceNotFoundError
from models.geofence_location import GeofenceLocation
from utils.geofence import RankedFence, filter_fences_for_region, resolve_nearest_fence

logger = logging.getLogger(__name__)


class GeofenceService:

    @staticmethod
    def applicable_fences(session: Session, region: Optional[str]) -> List[GeofenceLocation]:
        """Active fences that apply to an employee of `region`, in id order."""
        fences = session.exec(
            select(GeofenceLocation)
            .where(GeofenceLocation.is_active == True)  # noqa: E712
            .order_by(GeofenceLocation.id)
        ).all()
        return filter_fences_for_region(fences, region)

    @staticmethod
    def nearest(location, fences: List[GeofenceLocation]) -> Optional[RankedFence]:
        nearest = resolve_nearest_fence(location, fences)
        if nearest is None:
            logger.info("[GEOFENCE] No active geofence available for this employee")
        return nearest

    @staticmethod
    def get(session: Session, geofence_id: str) -> GeofenceLocation:
        fence = session.get(GeofenceLocation, geofence_id)
        if not fence:
            raise GeofenceNotFoundError(f"Geofence with ID '{geofence_id}' not found.")
        return fence
