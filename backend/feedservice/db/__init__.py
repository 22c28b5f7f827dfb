from feedservice.db.base import Base
from feedservice.db.session import cache_db_url, create_cache_engine, make_session_factory

__all__ = ["Base", "cache_db_url", "create_cache_engine", "make_session_factory"]
