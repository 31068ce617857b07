import os

# Must be set before db.session is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ORG_TIMEZONE", "Asia/Dubai")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

import models  # noqa: F401  (registers every table)
from core.deps import get_current_user
from db.session import engine as test_engine
from models.geofence_location import GeofenceLocation


@pytest.fixture
def engine():
    SQLModel.metadata.create_all(test_engine)
    yield test_engine
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def user():
    return {
        "uid": "emp-001",
        "name": "Asha Menon",
        "email": "asha@example.com",
        "role": "sales",
        "region": "dubai",
        "department": "Sales",
    }


@pytest.fixture
def client(engine, user):
    from main import app

    # Tests swap user["role"] / user["region"] in place to act as other people
    app.dependency_overrides[get_current_user] = lambda: user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def dubai_fences(session):
    """Fence A (radius 150) and fence B (radius 50) from the Dubai example."""
    fences = [
        GeofenceLocation(
            id="A", name="Dubai HQ", latitude=25.2048, longitude=55.2708,
            radius_meters=150.0, region="dubai",
        ),
        GeofenceLocation(
            id="B", name="Dubai Site", latitude=25.2100, longitude=55.2800,
            radius_meters=50.0, region="dubai",
        ),
    ]
    for fence in fences:
        session.add(fence)
    session.commit()
    for fence in fences:
        session.refresh(fence)
    return fences
