"""
Database engine, session factory and FastAPI session dependency
"""
from typing import Generator

from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from assessment.config import settings

# Base class for all models
Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def get_database_url() -> str:
    """Get properly formatted database URL"""
    db_url = settings.DATABASE_URL
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)
    return db_url


def build_engine(db_url: str):
    """
    Create the engine for a database URL.

    - SQLite: single shared connection (StaticPool) for in-memory databases
    - PostgreSQL: QueuePool with pre-ping so dropped connections surface as
      retryable storage errors instead of hanging requests
    """
    if db_url.startswith("sqlite"):
        return create_engine(
            db_url,
            echo=settings.DB_ECHO,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(
        db_url,
        echo=settings.DB_ECHO,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
    )


engine = build_engine(get_database_url())

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for one request"""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """Create tables if they do not exist"""
    # Import models so they are registered on Base.metadata
    import assessment.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
