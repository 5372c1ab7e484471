"""
Database session management (SQLAlchemy)

PostgreSQL (psycopg driver) in deployment; SQLite URLs are accepted for
local runs and tests.
"""
import logging

import psycopg
from sqlalchemy import create_engine, text
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session

from academy.config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for the collaborator tables"""
    pass


_engine = None
_SessionLocal = None


def get_engine():
    """Engine singleton built from settings.DATABASE_URL"""
    global _engine
    if _engine is None:
        url = get_settings().get_sqlalchemy_url()
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args)
        logger.info("database engine created for %s", _engine.url.render_as_string(hide_password=True))
    return _engine


def get_session_factory():
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine(), autoflush=False, autocommit=False)
    return _SessionLocal


def get_db() -> Session:
    """
    FastAPI dependency - one session per request, always closed

    Usage:
        @router.get("/roster")
        def get_roster(db: Session = Depends(get_db)):
            ...
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def check_db_connection() -> None:
    """
    Readiness check: raw psycopg round-trip for PostgreSQL, engine round-trip otherwise

    Raises:
        psycopg.OperationalError / sqlalchemy.exc.OperationalError: database unreachable
    """
    settings = get_settings()
    if not settings.DATABASE_URL.startswith("postgresql"):
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return
    with psycopg.connect(settings.DATABASE_URL, connect_timeout=3) as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1;")
            cur.fetchone()
