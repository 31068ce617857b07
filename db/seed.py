# Insert Sample Geofences
import logging

from sqlmodel import Session, SQLModel

import models.attendance  # noqa: F401  (tables created alongside)
from db.session import engine
from models.geofence_location import GeofenceLocation

logger = logging.getLogger(__name__)

SAMPLE_GEOFENCES = [
    GeofenceLocation(
        id="DXB-HQ",
        name="Dubai Head Office",
        latitude=25.2048,
        longitude=55.2708,
        radius_meters=100.0,
        region="dubai",
    ),
    GeofenceLocation(
        id="DXB-SITE",
        name="Dubai Sales Site",
        latitude=25.2100,
        longitude=55.2800,
        radius_meters=50.0,
        region="dubai",
    ),
    GeofenceLocation(
        id="IN-PUNE",
        name="Pune Office",
        latitude=18.5204,
        longitude=73.8567,
        radius_meters=100.0,
        region="india",
    ),
]


def seed_geofences():
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        # Skip ids that already exist to avoid duplicates
        for fence in SAMPLE_GEOFENCES:
            if session.get(GeofenceLocation, fence.id):
                logger.info(f"{fence.id} geofence already exists")
                continue
            session.add(fence)
            logger.info(f"Added {fence.id} geofence")

        session.commit()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed_geofences()
