"""
Shared pytest fixtures and configuration for daospine tests.

This module provides:
- An in-memory SQLite engine with every table created
- A DaoSession on that engine, optionally seeded with reference rows
- Settings isolated from the process environment
- A BaseDAO[Person] wired to the seeded session

Usage:
    Fixtures are auto-discovered by pytest; request them by name.

    def test_something(dao, session):
        ...
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from sqlalchemy.engine import Engine

from daospine.core.settings import DaoSettings, clear_settings_cache
from daospine.dao import BaseDAO
from daospine.mapping import EntityRegistry
from daospine.orm import DaoBase, DaoSession, create_dao_engine
from tests._support import RecordingAuditor, count_statements
from tests._support.models import Person, seed


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark DAO end-to-end modules as integration, everything else as unit."""
    for item in items:
        if Path(item.fspath).name == "test_dao.py":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings_cache() -> Generator[None, None, None]:
    """No test sees settings cached by another."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings(tmp_path: Path) -> DaoSettings:
    """Settings that ignore ``.env`` and read native queries from *tmp_path*."""
    return DaoSettings(_env_file=None, native_query_dir=tmp_path)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """In-memory SQLite engine with all tables created."""
    eng = create_dao_engine("sqlite:///:memory:")
    DaoBase.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine: Engine) -> Generator[DaoSession, None, None]:
    """DaoSession bound to the in-memory engine."""
    with DaoSession(bind=engine) as sess:
        yield sess


@pytest.fixture
def seeded(session: DaoSession) -> DaoSession:
    """Session over Sales/Research and Ann(30), Bob(40), Cid(30); identity map empty."""
    seed(session)
    session.expunge_all()
    return session


@pytest.fixture
def registry() -> EntityRegistry:
    return EntityRegistry()


@pytest.fixture
def dao(seeded: DaoSession, settings: DaoSettings, registry: EntityRegistry) -> BaseDAO[Person]:
    return BaseDAO(seeded, Person, registry=registry, settings=settings)


@pytest.fixture
def statements(engine: Engine):
    """Statement log for the duration of the test."""
    with count_statements(engine) as log:
        yield log


# =============================================================================
# Audit
# =============================================================================


@pytest.fixture
def recorder() -> RecordingAuditor:
    return RecordingAuditor()
