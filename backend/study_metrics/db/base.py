"""
Database Base Configuration

Owns the async SQLAlchemy engine for the metrics tables (check history,
chat activity and metric snapshots) and the session factory the archive
job opens its sessions from.

Usage:
    from study_metrics.db.base import async_session_maker

    async with async_session_maker() as db:
        service = MetricsService.from_session(db)
"""

from typing import Any, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from study_metrics.config import settings, yaml_config


# Pool sizing from the "database" section of config/default.yaml
db_config: dict[str, Any] = yaml_config.get("database", {})

engine = create_async_engine(
    settings.POSTGRES_URL,
    pool_size=db_config.get("pool_size", 5),
    max_overflow=db_config.get("max_overflow", 10),
    pool_timeout=db_config.get("pool_timeout", 30),
    echo=settings.DEBUG,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base shared by the activity and snapshot tables."""


# Registers the tables on Base.metadata; must follow the Base definition.
from study_metrics.db import models  # noqa: F401, E402


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """
    Create any missing metrics tables.

    Args:
        bind: Engine to create the tables on; defaults to the configured one.
    """
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
