from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
import logging

logger = logging.getLogger(__name__)

# Base class for ORM tables - importable without connecting
Base = declarative_base()

# Engine and session factory are created lazily
_engine = None
_SessionLocal = None


def build_engine(url: str):
    """Engine for ``url``. In-memory SQLite shares one connection across threads."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)


def get_engine():
    """
    Lazy engine creation - only connects when first used.
    This prevents import-time failures if the database is unreachable.
    """
    global _engine
    if _engine is None:
        from .config import settings
        logger.info("Creating database engine for: %s", settings.DATABASE_URL.split("@")[-1][:50])
        _engine = build_engine(settings.DATABASE_URL)
    return _engine


def get_session_local():
    """Get or create the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _SessionLocal


def init_db(engine=None) -> None:
    """Create the tables this service writes to when they do not exist yet."""
    from ..data import report_store  # noqa: F401  (registers tables on Base)
    Base.metadata.create_all(bind=engine or get_engine())
