"""Test fixtures for the SQL-backed stores."""

from __future__ import annotations

from uuid import uuid4

import pytest

from textback_agent.db.models import BusinessModel
from textback_agent.db.session import create_test_engine, make_session_factory
from textback_agent.services import Stores

WEEKDAY_HOURS = {
    day: {"open": "09:00", "close": "17:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
}


@pytest.fixture
async def db_engine(tmp_path):
    """File-backed SQLite so concurrent sessions share one database."""
    engine = await create_test_engine(f"sqlite+aiosqlite:///{tmp_path / 'textback.db'}")
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
async def db_business(session_factory):
    """A stored business row, returned as the domain object."""
    async with session_factory() as session:
        model = BusinessModel(
            id=uuid4(),
            name="Bright Smile Dental",
            slug="bright-smile",
            phone_number="+15550001000",
            timezone="America/New_York",
            slot_duration_minutes=30,
            buffer_minutes=0,
            business_hours=WEEKDAY_HOURS,
            services=["Cleaning", {"name": "Whitening", "price": 199}],
        )
        session.add(model)
        await session.commit()
        return model.to_domain()


@pytest.fixture
def sql_stores(session_factory, db_business) -> Stores:
    return Stores.sql(session_factory)
