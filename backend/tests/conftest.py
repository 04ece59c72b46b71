"""
Shared Test Fixtures and Configuration

This module provides pytest fixtures used across the unit tests:
- An in-memory SQLite database (aiosqlite) with all tables created
- A fixed clock
- The three-day Tokyo check-history scenario
"""

import os
import sys
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Add the backend directory to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Predictable settings regardless of any local .env file.
# Must be set before study_metrics.config is first imported.
os.environ.update(
    {
        "POSTGRES_USER": "testuser",
        "POSTGRES_PASSWORD": "testpass",
        "POSTGRES_DB": "testdb",
        "DEFAULT_TIMEZONE": "Asia/Tokyo",
        "FALLBACK_UTC_OFFSET_MINUTES": "540",
    }
)

from study_metrics.db.base import init_db  # noqa: E402
from study_metrics.enums.metrics import CheckAction  # noqa: E402
from study_metrics.services.clock import FixedClock  # noqa: E402
from tests.helpers import TOKYO, InMemoryEventSource, check, local_instant  # noqa: E402


@pytest.fixture
def fixed_clock() -> FixedClock:
    """Clock frozen at 2024-01-15T03:00Z (12:00 in Tokyo)."""
    return FixedClock(datetime(2024, 1, 15, 3, 0, tzinfo=timezone.utc))


@pytest.fixture
def tokyo_scenario() -> InMemoryEventSource:
    """
    Check history spanning three Tokyo days starting 2024-01-15.

    topicA checked day1 10:00, topicB checked day1 11:00,
    topicA unchecked day2 09:00.
    """
    return InMemoryEventSource(
        check_events=[
            check("topicA", CheckAction.CHECKED, local_instant(TOKYO, 2024, 1, 15, 10)),
            check("topicB", CheckAction.CHECKED, local_instant(TOKYO, 2024, 1, 15, 11)),
            check("topicA", CheckAction.UNCHECKED, local_instant(TOKYO, 2024, 1, 16, 9)),
        ]
    )


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a session on a fresh in-memory SQLite database.

    All tables are created up front; the engine is disposed afterwards.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)

    session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_maker() as session:
        yield session

    await engine.dispose()
