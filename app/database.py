"""
Database connection and session management for the ChessFam core
"""
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from app.core.config import settings

_engine_kwargs = {"pool_pre_ping": True, "echo": settings.DEBUG and settings.is_development}
if not settings.DATABASE_URL.startswith("sqlite"):
    _engine_kwargs.update(pool_size=10, max_overflow=20)

# Create database engine with connection pooling
engine = create_engine(settings.DATABASE_URL, **_engine_kwargs)

# Session factory for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all models
Base = declarative_base()


def get_db():
    """
    Dependency for getting database session in endpoints

    Usage in FastAPI endpoints:
        def my_endpoint(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Run a block of writes as one unit: commit on success, rollback and
    re-raise on any error.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def insert_for(db: Session, model):
    """
    Dialect-specific INSERT construct so callers can use ON CONFLICT
    (PostgreSQL in production, SQLite in tests).
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"ON CONFLICT inserts are not supported for dialect '{dialect}'")


def init_db():
    """Initialize database tables"""
    from app import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
