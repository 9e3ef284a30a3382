"""Pydantic schemas for checkpoints and undo-log entries."""
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel

from flowbuilder.models.checkpoint import CheckpointSource, CheckpointStatus
from flowbuilder.models.undo_log import UndoOperation


class CheckpointBegin(BaseModel):
    caseid: int
    description: Optional[str] = None
    user_command: Optional[str] = None
    source: CheckpointSource = CheckpointSource.API


class CheckpointOut(BaseModel):
    id: str
    caseid: int
    description: Optional[str] = None
    user_command: Optional[str] = None
    status: CheckpointStatus
    source: CheckpointSource
    tools_executed: list[str] = []
    changes_count: int
    created_at: datetime
    finished_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ChangeSummary(BaseModel):
    name: str
    type: str
    operation: str  # Create, Update, Delete


class CheckpointHistoryOut(CheckpointOut):
    changes: list[ChangeSummary] = []


class UndoEntryOut(BaseModel):
    id: int
    checkpoint_id: str
    caseid: int
    operation: UndoOperation
    table_name: str
    primary_key: dict[str, Any]
    previous_data: Optional[dict[str, Any]] = None
    created_at: datetime
    applied_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CheckpointActionResult(BaseModel):
    success: bool = True
    checkpoint_id: str
    status: CheckpointStatus
    changes_count: Optional[int] = None
    undone: Optional[int] = None
    rolled_back: list[str] = []


class DeleteAllResult(BaseModel):
    deleted: int
