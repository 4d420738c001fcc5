"""
Session store connection setup.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from splitsmart.config import settings
from splitsmart.errors import ConflictError, StoreError
from splitsmart.realtime import attach_change_feed

logger = logging.getLogger(__name__)

# SQLite needs check_same_thread=False
connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args,
    echo=settings.DEBUG,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
attach_change_feed(SessionLocal)

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite drops tzinfo on the way back)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit(db, what: str) -> None:
    """Commit or raise: uniqueness violations are conflicts, the rest store failures."""
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(f"{what}: someone already did this; re-read and retry") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("%s failed: %s", what, exc)
        raise StoreError(f"{what} failed") from exc
