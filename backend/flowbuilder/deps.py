"""FastAPI dependencies backed by the objects built in ``create_app``."""
from typing import Iterator

from fastapi import Request
from sqlalchemy.orm import Session

from flowbuilder.services.checkpoint_manager import CheckpointManager


def get_db(request: Request) -> Iterator[Session]:
    """Yield a request-scoped session from the application's session factory."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_checkpoint_manager(request: Request) -> CheckpointManager:
    return request.app.state.checkpoint_manager
