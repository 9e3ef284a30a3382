"""Human-readable change summaries for the checkpoint history view."""
from typing import Any, Iterable

from sqlalchemy.orm import Session

from flowbuilder.models.case import Case
from flowbuilder.models.field import Field
from flowbuilder.models.undo_log import UndoLogEntry, UndoOperation
from flowbuilder.models.view import View

MODELS_BY_TABLE = {
    Case.__tablename__: Case,
    Field.__tablename__: Field,
    View.__tablename__: View,
}

TYPE_LABELS = {
    Case.__tablename__: "Case",
    Field.__tablename__: "Field",
    View.__tablename__: "View",
}

OPERATION_LABELS = {
    UndoOperation.insert: "Create",
    UndoOperation.update: "Update",
    UndoOperation.delete: "Delete",
}


def _change_name(db: Session, entry: UndoLogEntry) -> str:
    previous = entry.previous_data or {}
    if entry.operation != UndoOperation.delete:
        model = MODELS_BY_TABLE.get(entry.table_name)
        row_id = (entry.primary_key or {}).get("id")
        if model is not None and row_id is not None:
            row = db.get(model, row_id)
            if row is not None and getattr(row, "name", None):
                return row.name
    if previous.get("name"):
        return previous["name"]
    return ", ".join(f"{k}={v}" for k, v in (entry.primary_key or {}).items())


def describe_changes(db: Session, entries: Iterable[UndoLogEntry]) -> list[dict[str, Any]]:
    """One ``{name, type, operation}`` item per undo entry, in the given order."""
    return [
        {
            "name": _change_name(db, entry),
            "type": TYPE_LABELS.get(entry.table_name, entry.table_name),
            "operation": OPERATION_LABELS.get(entry.operation, str(entry.operation)),
        }
        for entry in entries
    ]
