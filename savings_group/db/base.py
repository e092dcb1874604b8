import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from savings_group.core.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(url: str, **kwargs):
    """Create an engine; SQLite connections are shared across threads."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, echo=settings.DATABASE_ECHO, **kwargs)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None) -> None:
    """Create all tables on the given engine (defaults to the configured one)."""
    import savings_group.models  # noqa: F401  registers every model on Base.metadata

    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Run one unit of work: commit on success, roll back on any error.

    Nested use inside an already-open unit of work joins it instead of
    committing early, so an engine can call another engine's helpers.
    """
    if db.info.get("unit_of_work_depth", 0) > 0:
        db.info["unit_of_work_depth"] += 1
        try:
            yield db
        finally:
            db.info["unit_of_work_depth"] -= 1
        return

    db.info["unit_of_work_depth"] = 1
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        logger.debug("Unit of work rolled back", exc_info=True)
        raise
    finally:
        db.info["unit_of_work_depth"] = 0
