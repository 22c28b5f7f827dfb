"""
Cache database engine and sessions. One SQLite file per cache directory, so each
CacheManager instance (and each test) owns an isolated store.
"""
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from feedservice.core.constants import CACHE_DB_FILENAME
from feedservice.db.base import Base


def cache_db_url(cache_dir: str | Path) -> str:
    return f"sqlite:///{Path(cache_dir).resolve() / CACHE_DB_FILENAME}"


def create_cache_engine(cache_dir: str | Path) -> Engine:
    """Create the cache directory and engine, and ensure all cache tables exist."""
    import feedservice.models  # noqa: F401  (register models on Base.metadata)

    Path(cache_dir).mkdir(parents=True, exist_ok=True)
    engine = create_engine(
        cache_db_url(cache_dir),
        # Disk I/O runs in worker threads (asyncio.to_thread)
        connect_args={"check_same_thread": False, "timeout": 30},
        pool_pre_ping=True,
    )
    Base.metadata.create_all(engine)
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
