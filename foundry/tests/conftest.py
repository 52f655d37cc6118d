from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from foundry.config import get_settings
from foundry.db import enable_foreign_keys
from foundry.models import Base
from foundry.store import EntityStore


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point settings (database, logs) at a throwaway directory."""
    monkeypatch.setenv("FOUNDRY_HOME", str(tmp_path))
    monkeypatch.delenv("FOUNDRY_DB_PATH", raising=False)
    monkeypatch.delenv("FOUNDRY_LOG_DIR", raising=False)
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


@pytest.fixture()
def engine():
    """In-memory SQLite shared across connections, with FK enforcement."""
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_foreign_keys(eng)
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def session(session_factory):
    sess = session_factory()
    try:
        yield sess
    finally:
        sess.close()


@pytest.fixture()
def store(session) -> EntityStore:
    return EntityStore(session)
