"""Database connection and session management."""
import logging
import os
from pathlib import Path
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from .models import Base

_logger = logging.getLogger("planner")

DB_PATH = Path(os.getenv("DATABASE_PATH") or Path(__file__).parent.parent / "data" / "study_planner.db")

DB_PATH.parent.mkdir(parents=True, exist_ok=True)

DATABASE_URL = f"sqlite:///{DB_PATH}"

engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create any missing tables."""
    Base.metadata.create_all(bind=engine)
    _logger.info(f"Database initialized at: {DB_PATH}")


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """Session that commits on success and rolls back on any error."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db_path() -> Path:
    """Location of the SQLite file (honours DATABASE_PATH)."""
    return DB_PATH
