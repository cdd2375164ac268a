"""
Database engine and session management.

One SQLAlchemy session per request (see get_db). SQLite is used for local
development and tests; any SQLAlchemy URL works in production.
"""

from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from config import settings

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_db_engine(url: str) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        # Request handlers may run on worker threads; writers wait on the
        # database lock instead of failing immediately.
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(url, connect_args=connect_args, future=True)


engine = create_db_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def configure_database(url: str) -> Engine:
    """Point the session factory at a different database (used by tests and CLI tools)"""
    global engine
    engine = create_db_engine(url)
    SessionLocal.configure(bind=engine)
    return engine


def init_db() -> None:
    """Create all tables on the current engine"""
    # Table modules register themselves on Base when imported
    import models.account  # noqa: F401
    import models.billing  # noqa: F401
    import models.story  # noqa: F401
    import models.progress  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
