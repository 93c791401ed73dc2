from functools import lru_cache
from typing import Optional
import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session
from sqlalchemy.pool import StaticPool

from config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """Create an engine for the link store database."""
    url = database_url or get_settings().DATABASE_URL
    if not url:
        raise ValueError("DATABASE_URL environment variable is not set")

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every session sees an empty database
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)

    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to the given engine."""
    return sessionmaker(
        bind=engine,
        class_=Session,
        expire_on_commit=False,
        autoflush=False,
    )


@lru_cache()
def get_engine() -> Engine:
    """Application-wide engine, created on first use."""
    settings = get_settings()
    return build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)


@lru_cache()
def get_session_factory() -> sessionmaker:
    return build_session_factory(get_engine())


def init_db(engine: Optional[Engine] = None) -> bool:
    """Verify the connection and create missing tables."""
    # Register models with Base.metadata
    from database import link_models  # noqa: F401

    engine = engine or get_engine()
    try:
        with engine.begin() as conn:
            conn.execute(text("SELECT 1"))
            logger.info("Link store connection successful")
        Base.metadata.create_all(engine)
        logger.info(f"Available tables: {sorted(Base.metadata.tables)}")
        return True
    except Exception as e:
        logger.error(f"Database initialization error: {e}")
        raise
