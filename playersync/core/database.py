"""
Database configuration and session management.
"""
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from playersync.core.config import settings

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def get_engine() -> Engine:
    """Get or create the database engine."""
    global _engine, _SessionLocal

    if _engine is None:
        kwargs = {
            "pool_pre_ping": True,  # Verify connections before using
            "echo": settings.SQL_ECHO,
        }
        if settings.DATABASE_URL.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
        else:
            kwargs["pool_size"] = 10
            kwargs["max_overflow"] = 20

        _engine = create_engine(settings.DATABASE_URL, **kwargs)
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)

    return _engine


def SessionLocal() -> Session:
    """Create a new session bound to the configured engine."""
    get_engine()
    return _SessionLocal()


def get_db() -> Generator[Session, None, None]:
    """
    Provide a database session and close it afterwards.

    Usage:
        for db in get_db():
            store = SqlCandidateStore(db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables that don't exist yet."""
    from playersync.models import Base
    Base.metadata.create_all(bind=engine or get_engine(), checkfirst=True)
