# plaza_engine/database.py
"""
Database connection, session management, and table creation.
Uses SQLAlchemy with PostgreSQL (SQLite is accepted for local runs and tests).
All models are auto-imported here so create_tables() creates every table in one call.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from plaza_engine.config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # SQLite pools don't take size/overflow; sessions may hop threads under FastAPI
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,       # Auto-reconnect if DB connection drops
        "pool_size": 10,
        "max_overflow": 20,
    }


engine = create_engine(
    settings.DATABASE_URL,
    echo=False,                      # Set True to log all SQL queries (debug only)
    **_engine_options(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency — yields a DB session and closes it after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind=None):
    """
    Creates all DB tables on startup. Safe to call multiple times.
    Import all models here so SQLAlchemy knows about them.
    """
    from plaza_engine.models.spot import Spot                               # noqa
    from plaza_engine.models.spot_status_change import SpotStatusChange     # noqa
    from plaza_engine.models.occupancy import Occupancy                     # noqa
    from plaza_engine.models.reservation import Reservation                 # noqa
    from plaza_engine.models.movement import Movement                       # noqa

    Base.metadata.create_all(bind=bind or engine)
