"""Database package."""

from study_metrics.db.base import engine, async_session_maker, Base, init_db

__all__ = ["engine", "async_session_maker", "Base", "init_db"]
