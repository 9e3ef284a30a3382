"""SQLAlchemy engine, session factory and declarative base.

The engine and session factory are built once by ``create_app`` and kept on
``app.state``; nothing here holds a live pool at import time.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def build_engine(database_url: str) -> Engine:
    """Create an engine for ``database_url``.

    SQLite connections get foreign keys enabled (cascades on ``cases``) and WAL
    journaling so a reader session does not block the checkpoint manager's
    writes.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    engine = create_engine(database_url, connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create all tables known to ``Base.metadata`` (SQLite dev mode)."""
    # Import all models so Base.metadata knows about them
    from flowbuilder.models.case import Case              # noqa: F401
    from flowbuilder.models.field import Field            # noqa: F401
    from flowbuilder.models.view import View              # noqa: F401
    from flowbuilder.models.checkpoint import Checkpoint  # noqa: F401
    from flowbuilder.models.undo_log import UndoLogEntry  # noqa: F401

    Base.metadata.create_all(bind=engine)
