"""FastAPI dependencies"""
from typing import Generator

from sqlalchemy.orm import Session

from clusterperf.db.session import close_db_session, get_db as get_db_session


def get_db() -> Generator[Session, None, None]:
    """Get database session"""
    db = get_db_session()
    try:
        yield db
    finally:
        close_db_session(db)
