"""Fixtures for tests against a real SQLite database."""

import pytest_asyncio

from memberchain.config.database import create_engine, create_session_maker, init_models


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await init_models(engine)
    yield create_session_maker(engine)
    await engine.dispose()
