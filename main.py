import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import SQLModel

import models.attendance  # Ensure these models are known by SQLModel for table creation
import models.geofence_location
from api.admin_attendance_routes import router as admin_attendance_router
from api.admin_geofence_routes import router as admin_geofence_router
from api.attendance_routes import router as attendance_router
from core.errors import AttendanceError
from db.session import engine

# This file is the control center of the whole application

# Load environment variables from .env file, if it exists
load_dotenv()

logging.basicConfig(
    level=os.getenv("APP_LOG_LEVEL", "info").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

# Default values can be provided if the env var is not set
DEV_DOMAIN = os.getenv("DEV_DOMAIN", "http://localhost:5173")
PRODUCTION_DOMAIN = os.getenv("PRODUCTION_DOMAIN")

# Construct the list of allowed origins, always including both dev and production
allowed_origins_list = [
    DEV_DOMAIN,
    PRODUCTION_DOMAIN,
    "http://localhost:3000",  # Additional fallback for React dev
    "http://127.0.0.1:5173",  # Additional fallback for Vite dev
]

# Remove any None values and duplicates
allowed_origins_list = sorted(set(origin for origin in allowed_origins_list if origin))

logger.info(f"CORS: Allowing origins: {allowed_origins_list}")


# When We Start, Create the DB Tables if they don't exist
@asynccontextmanager
async def lifespan(app: FastAPI):
    SQLModel.metadata.create_all(engine)
    yield


# Starts Fast API Up; Init
app = FastAPI(title="Geofenced Attendance", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Domain errors become {"detail", "error_code"} with the status the error declares
@app.exception_handler(AttendanceError)
async def attendance_error_handler(request: Request, exc: AttendanceError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.error_code},
    )


@app.get("/health", tags=["Health"])
def health():
    return {"status": "ok"}


# Connects Routes From attendance_routes (check-in / out) to main app
app.include_router(attendance_router, prefix="/attendance", tags=["Attendance", "Geofence"])
app.include_router(admin_geofence_router, prefix="/admin", tags=["Admin", "Geofence Management"])
app.include_router(admin_attendance_router, prefix="/admin", tags=["HR", "Attendance Management"])
