import os

from dotenv import load_dotenv
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

# Load environment variables from .env file
load_dotenv()

# Connects app to PostgreSQL database


def build_database_url() -> str:
    # A full URL wins (e.g. sqlite:// for tests, or a managed Postgres DSN)
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    instance_connection_name = os.getenv("INSTANCE_CONNECTION_NAME")  # For Cloud SQL Proxy
    db_host = os.getenv("DB_HOST")
    db_port = os.getenv("DB_PORT", "5432")  # Default PostgreSQL port
    db_name = os.getenv("DB_NAME")
    db_user = os.getenv("DB_USER")
    db_password = os.getenv("DB_PASSWORD")

    if instance_connection_name:
        required = ["DB_NAME", "DB_USER", "DB_PASSWORD", "INSTANCE_CONNECTION_NAME"]
        missing_vars = [var for var in required if not os.getenv(var)]
        if missing_vars:
            raise ValueError(f"Missing required environment variables for Cloud SQL (socket): {', '.join(missing_vars)}")
        # Cloud SQL (Unix socket)
        return f"postgresql+psycopg2://{db_user}:{db_password}@/{db_name}?host=/cloudsql/{instance_connection_name}"

    required = ["DB_HOST", "DB_NAME", "DB_USER", "DB_PASSWORD"]
    missing_vars = [var for var in required if not os.getenv(var)]
    if missing_vars:
        raise ValueError(f"Missing required environment variables for TCP: {', '.join(missing_vars)}")
    # TCP (e.g., local development)
    return f"postgresql+psycopg2://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"


def build_engine(database_url: str):
    if database_url.startswith("sqlite"):
        # One shared connection so an in-memory database survives across sessions
        return create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    # Note: echo=True will log all SQL statements, keep False in production
    return create_engine(database_url, echo=False, pool_pre_ping=True)


DATABASE_URL = build_database_url()

# The Wire / Link That Lets Us Pass Data from App -> db
engine = build_engine(DATABASE_URL)


# Getter for this Wire, modified for FastAPI dependency injection
def get_session():
    with Session(engine) as session:
        yield session
