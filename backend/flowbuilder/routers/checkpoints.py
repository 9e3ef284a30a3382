"""Checkpoint API routes: begin/commit/rollback/restore and history administration."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from flowbuilder.deps import get_checkpoint_manager, get_db
from flowbuilder.exceptions import CheckpointNotFoundError, CheckpointStateError, UndoError
from flowbuilder.models.checkpoint import CheckpointStatus
from flowbuilder.schemas.checkpoint import (
    CheckpointActionResult,
    CheckpointBegin,
    CheckpointHistoryOut,
    CheckpointOut,
    DeleteAllResult,
    UndoEntryOut,
)
from flowbuilder.services.checkpoint_history import describe_changes
from flowbuilder.services.checkpoint_manager import CheckpointManager

logger = logging.getLogger(__name__)
router = APIRouter()


def _run(action: str, fn, *args):
    """Call a manager operation, translating domain errors to HTTP errors."""
    try:
        return fn(*args)
    except CheckpointNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except CheckpointStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except (UndoError, SQLAlchemyError) as e:
        logger.error("Failed to %s: %s", action, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": f"Failed to {action}", "details": str(e)},
        )


@router.post("/", response_model=CheckpointOut, status_code=status.HTTP_201_CREATED)
def begin_checkpoint(
    payload: CheckpointBegin,
    manager: CheckpointManager = Depends(get_checkpoint_manager),
):
    """Open a new active checkpoint for a case."""
    checkpoint_id = _run(
        "begin checkpoint",
        manager.begin_checkpoint,
        payload.caseid,
        payload.description,
        payload.user_command,
        payload.source,
    )
    return manager.get_checkpoint(checkpoint_id)


@router.get("/active", response_model=list[CheckpointOut])
def list_active(
    case_id: Optional[int] = Query(None),
    manager: CheckpointManager = Depends(get_checkpoint_manager),
):
    return manager.get_active_checkpoints(case_id)


@router.get("/history", response_model=list[CheckpointHistoryOut])
def list_history(
    case_id: Optional[int] = Query(None),
    manager: CheckpointManager = Depends(get_checkpoint_manager),
    db: Session = Depends(get_db),
):
    """Finished checkpoints, newest first, each with a summary of its changes."""
    history = []
    for checkpoint in manager.get_checkpoint_history(case_id):
        data = CheckpointOut.model_validate(checkpoint).model_dump()
        changes = describe_changes(db, manager.get_undo_entries(checkpoint.id))
        history.append(CheckpointHistoryOut(**data, changes=changes))
    return history


@router.get("/{checkpoint_id}", response_model=CheckpointOut)
def get_checkpoint(checkpoint_id: str, manager: CheckpointManager = Depends(get_checkpoint_manager)):
    return _run("load checkpoint", manager.get_checkpoint, checkpoint_id)


@router.get("/{checkpoint_id}/entries", response_model=list[UndoEntryOut])
def list_entries(checkpoint_id: str, manager: CheckpointManager = Depends(get_checkpoint_manager)):
    """Undo entries of a checkpoint in replay order (newest first)."""
    _run("load checkpoint", manager.get_checkpoint, checkpoint_id)
    return manager.get_undo_entries(checkpoint_id)


@router.post("/{checkpoint_id}/commit", response_model=CheckpointActionResult)
def commit_checkpoint(checkpoint_id: str, manager: CheckpointManager = Depends(get_checkpoint_manager)):
    changes = _run("commit checkpoint", manager.commit_checkpoint, checkpoint_id)
    return CheckpointActionResult(
        checkpoint_id=checkpoint_id,
        status=CheckpointStatus.historical,
        changes_count=changes,
    )


@router.post("/{checkpoint_id}/rollback", response_model=CheckpointActionResult)
def rollback_checkpoint(checkpoint_id: str, manager: CheckpointManager = Depends(get_checkpoint_manager)):
    undone = _run("rollback checkpoint", manager.rollback_checkpoint, checkpoint_id)
    return CheckpointActionResult(
        checkpoint_id=checkpoint_id,
        status=CheckpointStatus.rolled_back,
        undone=undone,
        rolled_back=[checkpoint_id],
    )


@router.post("/{checkpoint_id}/restore", response_model=CheckpointActionResult)
def restore_to_checkpoint(checkpoint_id: str, manager: CheckpointManager = Depends(get_checkpoint_manager)):
    """Undo this checkpoint and every finished checkpoint created after it."""
    restored = _run("restore checkpoint", manager.restore_to_checkpoint, checkpoint_id)
    return CheckpointActionResult(
        checkpoint_id=checkpoint_id,
        status=CheckpointStatus.rolled_back,
        rolled_back=restored,
    )


@router.delete("/{checkpoint_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_checkpoint(checkpoint_id: str, manager: CheckpointManager = Depends(get_checkpoint_manager)):
    _run("delete checkpoint", manager.delete_checkpoint, checkpoint_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/", response_model=DeleteAllResult)
def delete_all_checkpoints(
    case_id: Optional[int] = Query(None),
    manager: CheckpointManager = Depends(get_checkpoint_manager),
):
    deleted = _run("delete checkpoints", manager.delete_all_checkpoints, case_id)
    return DeleteAllResult(deleted=deleted)
