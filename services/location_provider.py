import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv

from core.errors import LocationUnavailableError
from models.attendance import LocationPayload
from utils.datetime_helpers import ensure_utc

load_dotenv()

logger = logging.getLogger(__name__)

LOCATION_TIMEOUT_SECONDS = float(os.getenv("LOCATION_TIMEOUT_SECONDS", "15"))
LOCATION_MAX_AGE_SECONDS = float(os.getenv("LOCATION_MAX_AGE_SECONDS", "30"))


@dataclass(frozen=True)
class LocationReading:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class LocationProvider(ABC):
    """Source of a live device position for one check-in / check-out attempt."""

    @abstractmethod
    async def get_current_location(self, timeout_seconds: float) -> LocationReading:
        """Return a fresh reading or raise LocationUnavailableError."""


class RequestLocationProvider(LocationProvider):
    """
    Location the device posted along with the request.

    The browser/app does the actual GPS read; this provider only decides
    whether what it sent is usable: coordinates present, no client-side
    error, and not older than LOCATION_MAX_AGE_SECONDS.
    """

    def __init__(
        self,
        payload: LocationPayload,
        max_age_seconds: float = LOCATION_MAX_AGE_SECONDS,
        now: Optional[datetime] = None,
    ):
        self.payload = payload
        self.max_age_seconds = max_age_seconds
        self.now = now

    async def get_current_location(self, timeout_seconds: float) -> LocationReading:
        payload = self.payload

        if payload.error:
            if payload.error in LocationUnavailableError.MESSAGES:
                raise LocationUnavailableError(payload.error)
            raise LocationUnavailableError(LocationUnavailableError.POSITION_UNAVAILABLE)

        if payload.latitude is None or payload.longitude is None:
            raise LocationUnavailableError(
                LocationUnavailableError.POSITION_UNAVAILABLE,
                "Location (latitude and longitude) is required.",
            )

        now = self.now or datetime.now(timezone.utc)
        captured_at = ensure_utc(payload.captured_at) if payload.captured_at else now

        age = (now - captured_at).total_seconds()
        if age > self.max_age_seconds:
            raise LocationUnavailableError(
                LocationUnavailableError.POSITION_UNAVAILABLE,
                f"Location reading is {int(age)}s old. Refresh your location and try again.",
            )

        return LocationReading(
            latitude=payload.latitude,
            longitude=payload.longitude,
            accuracy=payload.accuracy,
            captured_at=captured_at,
        )


async def acquire_location(
    provider: LocationProvider,
    timeout_seconds: float = LOCATION_TIMEOUT_SECONDS,
) -> LocationReading:
    """Ask the provider for a position, giving up after `timeout_seconds`."""
    try:
        return await asyncio.wait_for(
            provider.get_current_location(timeout_seconds), timeout=timeout_seconds
        )
    except asyncio.TimeoutError:
        logger.warning(f"[LOCATION] Timed out after {timeout_seconds}s waiting for a position")
        raise LocationUnavailableError(LocationUnavailableError.TIMEOUT)
