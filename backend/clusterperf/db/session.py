"""
Engine and session handling.

The update job opens one session per cycle through session_scope() and commits
per ticker group itself; the API takes a session per request from get_db().
"""

from contextlib import contextmanager
from typing import Callable, Generator, Optional

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IllegalStateChangeError, SQLAlchemyError
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from clusterperf.config import settings
from clusterperf.utils.errors import DatabaseError


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Engine for the given URL.

    SQLite (local runs) is opened usable from the API's worker threads;
    PostgreSQL gets a small pre-pinged pool and server-side timeouts.
    """
    if database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, connect_args={"check_same_thread": False})

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=5,
        pool_recycle=1800,
        connect_args={
            "connect_timeout": 10,
            "options": "-c statement_timeout=60000",
        },
    )


engine = build_engine(settings.database_url, echo=settings.debug)

# expire_on_commit=False: rows read before a per-ticker commit stay usable after it
SessionLocal = scoped_session(
    sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
)


def init_db(bind: Optional[Engine] = None) -> None:
    """Create missing tables."""
    from clusterperf.db.models import Base

    Base.metadata.create_all(bind=bind or engine, checkfirst=True)
    logger.info("Database schema initialized")


def get_db() -> Session:
    """New session from the scoped registry. Close it with close_db_session()."""
    return SessionLocal()


def close_db_session(db: Session) -> None:
    """Close a session and drop it from the scoped registry."""
    try:
        db.close()
    except IllegalStateChangeError as e:
        logger.debug(f"Session already closed: {e}")
    SessionLocal.remove()


@contextmanager
def session_scope(session_factory: Optional[Callable[[], Session]] = None) -> Generator[Session, None, None]:
    """
    Session that is always closed, for callers that commit on their own.

    Anything left uncommitted is rolled back on error; SQLAlchemy failures are
    re-raised as DatabaseError.
    """
    db = (session_factory or SessionLocal)()
    try:
        yield db
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error, transaction rolled back: {e}")
        raise DatabaseError(f"Database operation failed: {e}") from e
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
