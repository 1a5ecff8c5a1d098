"""Engine and session factory wiring."""

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from worktime.core.config import get_settings


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Build a session factory bound to a fresh engine for ``database_url``."""

    engine = create_engine(database_url, pool_pre_ping=True, future=True)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


SessionLocal = create_session_factory(get_settings().database_url)
