"""Database engine and session configuration"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.config.settings import settings

# Lambda containers reuse the engine across invocations; stale connections are pinged first
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=5,
    echo=settings.DEBUG,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> list[str]:
    """Create missing tables and indexes; returns the mapped table names"""
    from app.models import Repository  # noqa: F401

    Base.metadata.create_all(bind=engine)
    return sorted(Base.metadata.tables)
