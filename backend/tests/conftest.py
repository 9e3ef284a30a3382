"""Pytest fixtures: a fresh file-backed SQLite database per test."""
import pytest
from fastapi.testclient import TestClient

from flowbuilder.config import Settings
from flowbuilder.database import Base, build_engine, build_session_factory, init_db
from flowbuilder.main import create_app
from flowbuilder.models.case import Case
from flowbuilder.services.checkpoint_manager import CheckpointManager
from flowbuilder.services.checkpoint_session import CheckpointSession


@pytest.fixture(scope="function")
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'test.db'}"


@pytest.fixture(scope="function")
def db_engine(sqlite_url):
    """Create a fresh SQLite engine (foreign keys on, WAL) for each test."""
    engine = build_engine(sqlite_url)
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def manager(session_factory):
    return CheckpointManager(session_factory, history_limit=50)


@pytest.fixture(scope="function")
def checkpoints(manager):
    return CheckpointSession(manager)


@pytest.fixture(scope="function")
def app_settings(sqlite_url):
    return Settings(DATABASE_URL=sqlite_url, OPENAI_API_KEY="", LOG_LEVEL="DEBUG")


@pytest.fixture(scope="function")
def app(app_settings, db_engine):
    return create_app(app_settings, engine=db_engine)


@pytest.fixture(scope="function")
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="function")
def case(db):
    """A persisted case with no fields."""
    row = Case(name="Onboarding", description="Employee onboarding", model={"stages": []})
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@pytest.fixture(scope="function")
def other_case(db):
    row = Case(name="Expenses", model={})
    db.add(row)
    db.commit()
    db.refresh(row)
    return row
