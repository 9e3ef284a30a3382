"""Checkpoint manager: application-level logical transactions over an undo log.

Lifecycle of a checkpoint:

    begin_checkpoint ──▶ active ──commit_checkpoint───▶ historical
                           │
                           └──rollback_checkpoint──▶ rolled_back

Mutations executed while a checkpoint is open are recorded with
``log_operation`` together with the row's pre-image.  Committing keeps that
undo trail (for ``restore_to_checkpoint``); rolling back replays it newest
first inside one database transaction and then discards it.

One instance is built per process by ``create_app`` and injected into every
consumer; it owns no connection between calls.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from flowbuilder.exceptions import (
    CheckpointNotFoundError,
    CheckpointStateError,
    MissingPreImageError,
)
from flowbuilder.models.checkpoint import (
    Checkpoint,
    CheckpointSource,
    CheckpointStatus,
    RESTORABLE_STATUSES,
)
from flowbuilder.models.undo_log import UndoLogEntry, UndoOperation
from flowbuilder.services.undo import apply_undo_entry

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "LLM Tool Execution"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckpointManager:
    """Begin / commit / rollback / restore checkpoints and record their undo entries."""

    def __init__(
        self,
        session_factory: sessionmaker,
        history_limit: int = 50,
        statement_timeout_ms: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self.history_limit = history_limit
        self.statement_timeout_ms = statement_timeout_ms

    # ── connection handling ───────────────────────────────────────

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        """Yield a session; commit on success, roll back on error, always close."""
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _apply_statement_timeout(self, db: Session) -> None:
        if self.statement_timeout_ms and db.get_bind().dialect.name == "postgresql":
            db.execute(text(f"SET LOCAL statement_timeout = {int(self.statement_timeout_ms)}"))

    @staticmethod
    def _require(db: Session, checkpoint_id: str) -> Checkpoint:
        checkpoint = db.get(Checkpoint, checkpoint_id)
        if checkpoint is None:
            raise CheckpointNotFoundError(checkpoint_id)
        return checkpoint

    @staticmethod
    def _require_active(db: Session, checkpoint_id: str) -> None:
        state = db.query(Checkpoint.status).filter(Checkpoint.id == checkpoint_id).scalar()
        if state is None:
            raise CheckpointNotFoundError(checkpoint_id)
        if state is not CheckpointStatus.active:
            raise CheckpointStateError(checkpoint_id, state.value, "log an operation on")

    @staticmethod
    def _claim_active(db: Session, checkpoint_id: str, action: str, **values: Any) -> None:
        """Move an active checkpoint to a terminal state, or fail fast.

        The conditional UPDATE is the guard against finishing a checkpoint twice:
        a concurrent caller sees zero affected rows once the first one commits.
        """
        updated = (
            db.query(Checkpoint)
            .filter(Checkpoint.id == checkpoint_id, Checkpoint.status == CheckpointStatus.active)
            .update(values, synchronize_session=False)
        )
        if updated:
            return
        checkpoint = db.get(Checkpoint, checkpoint_id)
        if checkpoint is None:
            raise CheckpointNotFoundError(checkpoint_id)
        raise CheckpointStateError(checkpoint_id, checkpoint.status.value, action)

    @staticmethod
    def _entries_newest_first(db: Session, checkpoint_id: str) -> list[UndoLogEntry]:
        return (
            db.query(UndoLogEntry)
            .filter(UndoLogEntry.checkpoint_id == checkpoint_id)
            .order_by(UndoLogEntry.id.desc())
            .all()
        )

    def _undo_checkpoint(self, db: Session, checkpoint_id: str) -> int:
        entries = self._entries_newest_first(db, checkpoint_id)
        logger.info("Found %d operations to undo for checkpoint %s", len(entries), checkpoint_id)
        for entry in entries:
            apply_undo_entry(db, entry)
        db.query(UndoLogEntry).filter(UndoLogEntry.checkpoint_id == checkpoint_id).delete(
            synchronize_session=False
        )
        return len(entries)

    # ── lifecycle ─────────────────────────────────────────────────

    def begin_checkpoint(
        self,
        caseid: int,
        description: Optional[str] = None,
        user_command: Optional[str] = None,
        source: CheckpointSource | str = CheckpointSource.LLM,
    ) -> str:
        """Create an active checkpoint scoped to ``caseid`` and return its id."""
        description = description or DEFAULT_DESCRIPTION
        logger.info("Creating new checkpoint '%s' for case %s", description, caseid)
        with self._transaction() as db:
            checkpoint = Checkpoint(
                caseid=caseid,
                description=description,
                user_command=user_command,
                source=CheckpointSource(source),
                status=CheckpointStatus.active,
                tools_executed=[],
                changes_count=0,
            )
            db.add(checkpoint)
            db.flush()
            checkpoint_id = checkpoint.id
        logger.info("Checkpoint created: %s", checkpoint_id)
        return checkpoint_id

    def log_operation(
        self,
        checkpoint_id: str,
        caseid: int,
        operation: UndoOperation | str,
        table_name: str,
        primary_key: dict[str, Any],
        previous_data: Optional[dict[str, Any]] = None,
        db: Optional[Session] = None,
    ) -> None:
        """Append one undo entry.

        ``previous_data`` is the row as it was *before* the mutation; it is
        required for update and delete and ignored for insert.  When ``db`` is
        given the entry joins that session's transaction and is committed
        together with the mutation by the caller; otherwise it is written in
        its own short transaction.
        """
        operation = UndoOperation(operation)
        if operation is not UndoOperation.insert and not previous_data:
            raise MissingPreImageError(operation.value, table_name)

        entry = UndoLogEntry(
            checkpoint_id=checkpoint_id,
            caseid=caseid,
            operation=operation,
            table_name=table_name,
            primary_key=dict(primary_key),
            previous_data=None if operation is UndoOperation.insert else dict(previous_data),
        )
        if db is not None:
            self._require_active(db, checkpoint_id)
            db.add(entry)
            return
        with self._transaction() as own_db:
            self._require_active(own_db, checkpoint_id)
            own_db.add(entry)

    def commit_checkpoint(self, checkpoint_id: str) -> int:
        """Accept the checkpoint's changes; its undo trail is kept as history.

        Returns the number of recorded changes.
        """
        logger.info("Committing checkpoint: %s", checkpoint_id)
        with self._transaction() as db:
            changes_count = (
                db.query(UndoLogEntry).filter(UndoLogEntry.checkpoint_id == checkpoint_id).count()
            )
            self._claim_active(
                db,
                checkpoint_id,
                "commit",
                status=CheckpointStatus.historical,
                finished_at=_utcnow(),
                changes_count=changes_count,
            )
        logger.info("Checkpoint %s marked as historical with %d changes", checkpoint_id, changes_count)
        return changes_count

    def rollback_checkpoint(self, checkpoint_id: str) -> int:
        """Undo every logged mutation of an active checkpoint, newest first.

        Replay, the status change and the removal of the undo entries happen in
        one transaction; on any failure nothing is changed and the checkpoint
        stays active.  Returns the number of entries undone.
        """
        logger.info("Rolling back checkpoint: %s", checkpoint_id)
        try:
            with self._transaction() as db:
                self._apply_statement_timeout(db)
                self._claim_active(
                    db,
                    checkpoint_id,
                    "roll back",
                    status=CheckpointStatus.rolled_back,
                    finished_at=_utcnow(),
                )
                undone = self._undo_checkpoint(db, checkpoint_id)
        except Exception:
            logger.error("Rollback of checkpoint %s failed", checkpoint_id, exc_info=True)
            raise
        logger.info("Checkpoint %s rollback completed (%d operations undone)", checkpoint_id, undone)
        return undone

    def restore_to_checkpoint(self, checkpoint_id: str) -> list[str]:
        """Undo ``checkpoint_id`` and every committed checkpoint created after it.

        Checkpoints are unwound newest first in a single transaction, each
        ending ``rolled_back`` with its undo entries removed.  Returns the ids
        that were rolled back, in the order they were undone.
        """
        logger.info("Restoring to checkpoint: %s", checkpoint_id)
        try:
            with self._transaction() as db:
                self._apply_statement_timeout(db)
                target = self._require(db, checkpoint_id)
                # Equal timestamps fall back to the newest undo entry, whose ids are monotonic
                latest_entry = (
                    db.query(UndoLogEntry.checkpoint_id, func.max(UndoLogEntry.id).label("latest"))
                    .group_by(UndoLogEntry.checkpoint_id)
                    .subquery()
                )
                to_undo = (
                    db.query(Checkpoint.id)
                    .outerjoin(latest_entry, latest_entry.c.checkpoint_id == Checkpoint.id)
                    .filter(
                        Checkpoint.created_at >= target.created_at,
                        Checkpoint.status.in_(RESTORABLE_STATUSES),
                    )
                    .order_by(
                        Checkpoint.created_at.desc(),
                        func.coalesce(latest_entry.c.latest, 0).desc(),
                        Checkpoint.id.desc(),
                    )
                    .all()
                )
                restored = []
                for (undo_id,) in to_undo:
                    self._undo_checkpoint(db, undo_id)
                    db.query(Checkpoint).filter(Checkpoint.id == undo_id).update(
                        {"status": CheckpointStatus.rolled_back, "finished_at": _utcnow()},
                        synchronize_session=False,
                    )
                    restored.append(undo_id)
        except Exception:
            logger.error("Restoration to checkpoint %s failed", checkpoint_id, exc_info=True)
            raise
        logger.info(
            "Restored to state before checkpoint %s by undoing %d checkpoints",
            checkpoint_id,
            len(restored),
        )
        return restored

    def record_tool_execution(self, checkpoint_id: str, tool_name: str) -> None:
        """Append ``tool_name`` to the checkpoint's tool list (best effort)."""
        try:
            with self._transaction() as db:
                checkpoint = (
                    db.query(Checkpoint)
                    .filter(Checkpoint.id == checkpoint_id)
                    .with_for_update()
                    .first()
                )
                if checkpoint is None:
                    logger.warning("Cannot record tool %s: checkpoint %s not found", tool_name, checkpoint_id)
                    return
                checkpoint.tools_executed = [*(checkpoint.tools_executed or []), tool_name]
        except SQLAlchemyError as e:
            logger.warning("Failed to record tool execution %s on %s: %s", tool_name, checkpoint_id, e)

    # ── queries ───────────────────────────────────────────────────

    def get_checkpoint(self, checkpoint_id: str) -> Checkpoint:
        with self._session_factory() as db:
            return self._require(db, checkpoint_id)

    def get_undo_entries(self, checkpoint_id: str) -> list[UndoLogEntry]:
        with self._session_factory() as db:
            return self._entries_newest_first(db, checkpoint_id)

    def get_active_checkpoints(self, caseid: Optional[int] = None) -> list[Checkpoint]:
        with self._session_factory() as db:
            query = db.query(Checkpoint).filter(Checkpoint.status == CheckpointStatus.active)
            if caseid is not None:
                query = query.filter(Checkpoint.caseid == caseid)
            return query.order_by(Checkpoint.created_at.desc()).all()

    def get_checkpoint_history(self, caseid: Optional[int] = None) -> list[Checkpoint]:
        """Finished checkpoints, newest first, capped at ``history_limit``."""
        with self._session_factory() as db:
            query = db.query(Checkpoint).filter(
                Checkpoint.status.in_(
                    [
                        CheckpointStatus.historical,
                        CheckpointStatus.committed,
                        CheckpointStatus.rolled_back,
                    ]
                )
            )
            if caseid is not None:
                query = query.filter(Checkpoint.caseid == caseid)
            return query.order_by(Checkpoint.created_at.desc()).limit(self.history_limit).all()

    # ── administration ────────────────────────────────────────────

    def delete_checkpoint(self, checkpoint_id: str) -> None:
        """Discard a checkpoint and its undo trail without reversing anything."""
        logger.info("Deleting checkpoint: %s", checkpoint_id)
        try:
            with self._transaction() as db:
                db.query(UndoLogEntry).filter(UndoLogEntry.checkpoint_id == checkpoint_id).delete(
                    synchronize_session=False
                )
                deleted = (
                    db.query(Checkpoint)
                    .filter(Checkpoint.id == checkpoint_id)
                    .delete(synchronize_session=False)
                )
                if not deleted:
                    raise CheckpointNotFoundError(checkpoint_id)
        except Exception:
            logger.error("Checkpoint deletion failed for %s", checkpoint_id, exc_info=True)
            raise
        logger.info("Deleted checkpoint %s", checkpoint_id)

    def delete_all_checkpoints(self, caseid: Optional[int] = None) -> int:
        """Discard every checkpoint (optionally for one case). Returns how many were removed."""
        if caseid is not None:
            logger.info("Deleting all checkpoints for case %s", caseid)
        else:
            logger.info("Deleting all checkpoints")
        try:
            with self._transaction() as db:
                entries = db.query(UndoLogEntry)
                checkpoints = db.query(Checkpoint)
                if caseid is not None:
                    entries = entries.filter(UndoLogEntry.caseid == caseid)
                    checkpoints = checkpoints.filter(Checkpoint.caseid == caseid)
                entry_count = entries.delete(synchronize_session=False)
                checkpoint_count = checkpoints.delete(synchronize_session=False)
        except Exception:
            logger.error("Checkpoint deletion failed", exc_info=True)
            raise
        logger.info("Deleted %d checkpoints and %d undo log entries", checkpoint_count, entry_count)
        return checkpoint_count
