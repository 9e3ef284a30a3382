"""Compensating actions for undo-log replay.

Each undo-log entry describes one already-executed mutation. ``apply_undo_entry``
issues the inverse statement on the caller's session:

    insert  ->  DELETE ... WHERE <primary key>
    delete  ->  INSERT ... (pre-image minus primary-key columns)
    update  ->  UPDATE ... SET <pre-image minus primary-key columns> WHERE <primary key>

Primary-key columns are never written back, so a re-inserted row gets a fresh
identity from the database and key columns are never mutated.
"""
import enum
import logging
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Mapping

import sqlalchemy as sa
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from flowbuilder.database import Base
from flowbuilder.exceptions import MissingPreImageError, UndoError, UnknownOperationError
from flowbuilder.models.undo_log import UndoLogEntry, UndoOperation

logger = logging.getLogger(__name__)


def _json_safe(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    return value


def row_snapshot(obj) -> dict[str, Any]:
    """Serialize a mapped row to a JSON-safe pre-image keyed by column name."""
    mapper = inspect(obj).mapper
    return {
        attr.columns[0].name: _json_safe(getattr(obj, attr.key))
        for attr in mapper.column_attrs
    }


def _resolve_table(table_name: str, column_names) -> sa.TableClause:
    """Prefer the typed ORM table; fall back to an untyped table clause."""
    known = Base.metadata.tables.get(table_name)
    if known is not None:
        return known
    return sa.table(table_name, *(sa.column(name) for name in column_names))


def _bind_values(table: sa.TableClause, data: Mapping[str, Any]) -> dict:
    """Map column names to column objects, converting ISO strings back for temporal columns."""
    by_name = {column.name: column for column in table.columns}
    bound = {}
    for name, value in data.items():
        column = by_name.get(name)
        if column is None:
            raise UndoError(f"Column {name!r} does not exist on {table.name}")
        if isinstance(value, str):
            if isinstance(column.type, sa.DateTime):
                value = datetime.fromisoformat(value)
            elif isinstance(column.type, sa.Date):
                value = date.fromisoformat(value)
            elif isinstance(column.type, sa.Time):
                value = time.fromisoformat(value)
        bound[column] = value
    return bound


def _where_primary_key(bound_key: dict):
    return sa.and_(*(column == value for column, value in bound_key.items()))


def apply_undo_entry(db: Session, entry: UndoLogEntry) -> None:
    """Apply the compensating action for ``entry`` inside the caller's transaction.

    Raises:
        MissingPreImageError: update/delete entry without ``previous_data``.
        UnknownOperationError: operation outside insert/update/delete.
    """
    operation = entry.operation
    primary_key = dict(entry.primary_key or {})
    previous_data = entry.previous_data

    logger.debug("Undoing %s on %s: %s", operation, entry.table_name, primary_key)

    if operation == UndoOperation.insert:
        table = _resolve_table(entry.table_name, primary_key)
        key = _bind_values(table, primary_key)
        db.execute(sa.delete(table).where(_where_primary_key(key)))

    elif operation == UndoOperation.delete:
        if not previous_data:
            raise MissingPreImageError("delete", entry.table_name)
        data = {k: v for k, v in previous_data.items() if k not in primary_key}
        table = _resolve_table(entry.table_name, data)
        db.execute(sa.insert(table).values(_bind_values(table, data)))

    elif operation == UndoOperation.update:
        if not previous_data:
            raise MissingPreImageError("update", entry.table_name)
        data = {k: v for k, v in previous_data.items() if k not in primary_key}
        if not data:
            return
        table = _resolve_table(entry.table_name, list(data) + list(primary_key))
        key = _bind_values(table, primary_key)
        db.execute(
            sa.update(table).where(_where_primary_key(key)).values(_bind_values(table, data))
        )

    else:
        raise UnknownOperationError(operation)
