"""Single-slot checkpoint session for one tool-execution context.

A ``CheckpointSession`` is created per request / agent turn and handed to every
tool through ``ToolContext``.  It holds at most one open checkpoint; nested
checkpoints are not supported.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from sqlalchemy.orm import Session

from flowbuilder.models.checkpoint import CheckpointSource
from flowbuilder.models.undo_log import UndoOperation
from flowbuilder.services.checkpoint_manager import CheckpointManager

logger = logging.getLogger(__name__)


@dataclass
class ActiveCheckpoint:
    id: str
    caseid: int
    description: str
    tools: list[str] = field(default_factory=list)


class CheckpointSession:
    """Wraps ``CheckpointManager`` with a "current checkpoint" slot."""

    def __init__(self, manager: CheckpointManager):
        self.manager = manager
        self.current: Optional[ActiveCheckpoint] = None

    @property
    def is_active(self) -> bool:
        return self.current is not None

    def begin(
        self,
        caseid: int,
        description: str,
        user_command: Optional[str] = None,
        source: CheckpointSource = CheckpointSource.LLM,
    ) -> str:
        if self.current is not None:
            logger.warning(
                "Checkpoint %s still open while beginning a new one; rolling it back",
                self.current.id,
            )
            self.rollback()

        checkpoint_id = self.manager.begin_checkpoint(
            caseid, description=description, user_command=user_command, source=source
        )
        self.current = ActiveCheckpoint(id=checkpoint_id, caseid=caseid, description=description)
        logger.info("Session checkpoint started: %s (%s)", checkpoint_id, description)
        return checkpoint_id

    def commit(self) -> Optional[str]:
        if self.current is None:
            logger.warning("No active checkpoint to commit")
            return None
        checkpoint = self.current
        self.manager.commit_checkpoint(checkpoint.id)
        self.current = None
        logger.info("Session checkpoint committed: %s", checkpoint.id)
        return checkpoint.id

    def rollback(self) -> Optional[str]:
        """Roll back the open checkpoint.

        The slot is cleared even when the rollback itself fails, so a broken
        checkpoint never leaks into the next batch; the error still propagates.
        """
        if self.current is None:
            logger.warning("No active checkpoint to rollback")
            return None
        checkpoint = self.current
        try:
            self.manager.rollback_checkpoint(checkpoint.id)
        finally:
            self.current = None
        logger.info("Session checkpoint rolled back: %s", checkpoint.id)
        return checkpoint.id

    def restore_to(self, checkpoint_id: str) -> list[str]:
        if self.current is not None:
            self.rollback()
        return self.manager.restore_to_checkpoint(checkpoint_id)

    def capture(
        self,
        operation: UndoOperation | str,
        table_name: str,
        primary_key: dict[str, Any],
        previous_data: Optional[dict[str, Any]] = None,
        db: Optional[Session] = None,
    ) -> bool:
        """Log a mutation against the open checkpoint; returns False when none is open."""
        if self.current is None:
            return False
        self.manager.log_operation(
            self.current.id,
            self.current.caseid,
            operation,
            table_name,
            primary_key,
            previous_data,
            db=db,
        )
        logger.debug("Captured %s on %s %s", operation, table_name, primary_key)
        return True

    def record_tool(self, tool_name: str) -> None:
        if self.current is None:
            return
        self.current.tools.append(tool_name)
        self.manager.record_tool_execution(self.current.id, tool_name)

    @contextmanager
    def transaction(
        self,
        caseid: int,
        description: str,
        user_command: Optional[str] = None,
        source: CheckpointSource = CheckpointSource.LLM,
    ) -> Iterator[str]:
        """Begin a checkpoint; commit when the block exits cleanly, roll back otherwise."""
        checkpoint_id = self.begin(caseid, description, user_command=user_command, source=source)
        try:
            yield checkpoint_id
        except BaseException:
            try:
                self.rollback()
            except Exception:
                logger.error("Rollback of checkpoint %s failed", checkpoint_id, exc_info=True)
            raise
        self.commit()


@dataclass
class ToolContext:
    """Everything a tool needs: the request session and the checkpoint slot."""

    db: Session
    checkpoints: CheckpointSession
