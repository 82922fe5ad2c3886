"""
Shared fixtures.

Every test gets its own in-memory SQLite database with the full schema. The
API fixtures build the app through `create_app` so the lifespan creates
(and disposes) the database exactly as in production, with the cache off.
"""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from venmito.db import Database
from venmito.db_bootstrap import ensure_schema
from venmito.main import create_app
from venmito.models import Person
from venmito.settings import Settings

DATA_DIR = Path(__file__).resolve().parents[1] / "data"


@pytest.fixture
def db():
    database = Database("sqlite://")
    ensure_schema(database)
    yield database
    database.dispose()


@pytest.fixture
def session(db):
    s = db.session()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def make_person(session):
    """Insert a person directly, bypassing the reconcilers."""

    def _make(email=None, telephone=None, identifier=None, first_name="Test", last_name="Person"):
        person = Person(
            first_name=first_name,
            last_name=last_name,
            email=email,
            telephone=telephone,
            identifier=identifier,
        )
        session.add(person)
        session.commit()
        return person

    return _make


def _settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "sqlite://",
        "CACHE_ENABLED": False,
        "SAMPLE_DATA_DIR": str(DATA_DIR),
        "LOG_LEVEL": "WARNING",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def app_settings():
    return _settings()


@pytest.fixture
def client(app_settings):
    app = create_app(app_settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def small_client():
    """Client whose upload limit is two records."""
    app = create_app(_settings(MAX_UPLOAD_ITEMS=2))
    with TestClient(app) as c:
        yield c
