"""
Database engine, session factory and declarative base
"""
import logging

from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, sessionmaker

from exam_engine.config import settings

logger = logging.getLogger(__name__)

# JSONB on PostgreSQL, plain JSON on other backends (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency yielding a request-scoped session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables that do not exist yet"""
    # Import models so they register on Base.metadata
    import exam_engine.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ensured")
