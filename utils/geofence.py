# utils/geofence.py

from dataclasses import dataclass
from math import atan2, cos, radians, sin, sqrt
from typing import Iterable, Optional, Sequence

from models.geofence_location import GeofenceLocation

# Hard cap on the admission radius, independent of what a fence is configured with
MAX_ALLOWED_RADIUS_METERS = 100.0

EARTH_RADIUS_METERS = 6371000


def haversine_dist(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    R = EARTH_RADIUS_METERS
    φ1, φ2 = radians(lat1), radians(lat2)
    Δφ = radians(lat2 - lat1)
    Δλ = radians(lng2 - lng1)

    a = sin(Δφ/2)**2 + cos(φ1) * cos(φ2) * sin(Δλ/2)**2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return R * c


def effective_radius(radius_meters: float) -> float:
    """The configured radius can only tighten the enforced boundary."""
    return min(MAX_ALLOWED_RADIUS_METERS, radius_meters)


@dataclass(frozen=True)
class RankedFence:
    fence: GeofenceLocation
    distance_meters: float
    allowed_radius: float
    inside: bool

    @property
    def name(self) -> str:
        return self.fence.name


def resolve_nearest_fence(current, fences: Sequence[GeofenceLocation]) -> Optional[RankedFence]:
    """
    Rank every candidate fence by great-circle distance from `current` and
    return the nearest one, or None when there is nothing to rank.

    `current` needs `latitude`/`longitude`; each fence needs `latitude`,
    `longitude` and `radius_meters`. Callers are expected to have already
    filtered the fences by activity and region.
    """
    if not fences:
        return None

    ranked = []
    for fence in fences:
        distance = haversine_dist(
            current.latitude, current.longitude, fence.latitude, fence.longitude
        )
        allowed = effective_radius(fence.radius_meters)
        ranked.append(
            RankedFence(
                fence=fence,
                distance_meters=distance,
                allowed_radius=allowed,
                inside=distance <= allowed,
            )
        )

    # sorted() is stable, so equal distances keep the caller's order
    ranked = sorted(ranked, key=lambda r: r.distance_meters)
    return ranked[0]


def filter_fences_for_region(fences: Iterable[GeofenceLocation], region: Optional[str]) -> list:
    """Active fences that apply to an employee in `region` (None = every region)."""
    wanted = region.strip().lower() if region and region.strip() else None

    applicable = []
    for fence in fences:
        if not fence.is_active:
            continue
        if wanted is None or not fence.region:
            applicable.append(fence)
            continue
        if fence.region.strip().lower() == wanted:
            applicable.append(fence)
    return applicable
