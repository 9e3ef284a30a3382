"""Workflow service: cases, fields and views.

Every write takes the row's pre-image before mutating it and, when a checkpoint
is open on the caller's ``CheckpointSession``, logs the undo entry in the same
database transaction as the mutation itself.  Without an open checkpoint the
mutation is simply not reversible.
"""
import logging
from typing import Any, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from flowbuilder.models.case import Case
from flowbuilder.models.field import Field
from flowbuilder.models.undo_log import UndoOperation
from flowbuilder.models.view import View
from flowbuilder.services.checkpoint_session import CheckpointSession
from flowbuilder.services.undo import row_snapshot

logger = logging.getLogger(__name__)

FIELD_COLUMNS = ("name", "type", "label", "required", "sort_order", "options", "description")


def _capture(
    db: Session,
    checkpoints: Optional[CheckpointSession],
    operation: UndoOperation,
    row,
    previous_data: Optional[dict[str, Any]] = None,
) -> None:
    if checkpoints is None:
        return
    checkpoints.capture(
        operation,
        row.__tablename__,
        {"id": row.id},
        previous_data,
        db=db,
    )


def get_case(db: Session, caseid: int) -> Case:
    case = db.get(Case, caseid)
    if not case:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Case {caseid} not found")
    return case


def create_case(
    db: Session,
    name: str,
    description: Optional[str] = None,
    model: Optional[dict] = None,
    checkpoints: Optional[CheckpointSession] = None,
) -> Case:
    case = Case(name=name, description=description, model=model or {})
    db.add(case)
    db.flush()
    _capture(db, checkpoints, UndoOperation.insert, case)
    db.commit()
    db.refresh(case)
    logger.info("Created case %s (%s)", case.id, case.name)
    return case


def update_case(
    db: Session,
    caseid: int,
    updates: dict[str, Any],
    checkpoints: Optional[CheckpointSession] = None,
) -> Case:
    """Apply ``name`` / ``description`` / ``model`` updates to a case."""
    case = get_case(db, caseid)
    before = row_snapshot(case)

    for key in ("name", "description", "model"):
        if key in updates:
            setattr(case, key, updates[key])

    db.flush()
    _capture(db, checkpoints, UndoOperation.update, case, before)
    db.commit()
    db.refresh(case)
    logger.info("Updated case %s", caseid)
    return case


def list_fields(db: Session, caseid: int) -> list[Field]:
    get_case(db, caseid)
    return (
        db.query(Field)
        .filter(Field.caseid == caseid)
        .order_by(Field.sort_order, Field.id)
        .all()
    )


def save_fields(
    db: Session,
    caseid: int,
    fields: list[dict[str, Any]],
    checkpoints: Optional[CheckpointSession] = None,
) -> list[Field]:
    """Create or update a batch of fields on a case.

    Items with an ``id`` update that field, items without one (or whose id is
    not found by name) are inserted.  An existing field with the same name is
    updated rather than duplicated.
    """
    get_case(db, caseid)
    saved = []
    for item in fields:
        existing = None
        if item.get("id") is not None:
            existing = db.query(Field).filter(Field.id == item["id"], Field.caseid == caseid).first()
            if not existing:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail=f"Field {item['id']} not found on case {caseid}",
                )
        elif item.get("name"):
            existing = db.query(Field).filter(Field.name == item["name"], Field.caseid == caseid).first()

        if existing:
            before = row_snapshot(existing)
            for key in FIELD_COLUMNS:
                if key in item:
                    setattr(existing, key, item[key])
            db.flush()
            _capture(db, checkpoints, UndoOperation.update, existing, before)
            saved.append(existing)
        else:
            field = Field(
                caseid=caseid,
                name=item["name"],
                label=item.get("label") or item["name"],
                **{k: item[k] for k in FIELD_COLUMNS if k in item and k not in ("name", "label")},
            )
            db.add(field)
            db.flush()
            _capture(db, checkpoints, UndoOperation.insert, field)
            saved.append(field)

    db.commit()
    for field in saved:
        db.refresh(field)
    logger.info("Saved %d fields on case %s", len(saved), caseid)
    return saved


def delete_field(
    db: Session,
    caseid: int,
    field_id: int,
    checkpoints: Optional[CheckpointSession] = None,
) -> Field:
    field = db.query(Field).filter(Field.id == field_id, Field.caseid == caseid).first()
    if not field:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Field {field_id} not found on case {caseid}",
        )

    before = row_snapshot(field)
    db.delete(field)
    db.flush()
    _capture(db, checkpoints, UndoOperation.delete, field, before)
    db.commit()
    logger.info("Deleted field %s from case %s", field_id, before["caseid"])
    return field


def save_view(
    db: Session,
    caseid: int,
    name: str,
    model: Optional[dict] = None,
    view_id: Optional[int] = None,
    checkpoints: Optional[CheckpointSession] = None,
) -> View:
    """Create a view, or update it when ``view_id`` is given."""
    get_case(db, caseid)

    if view_id is not None:
        view = db.query(View).filter(View.id == view_id, View.caseid == caseid).first()
        if not view:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"View {view_id} not found")
        before = row_snapshot(view)
        view.name = name
        if model is not None:
            view.model = model
        db.flush()
        _capture(db, checkpoints, UndoOperation.update, view, before)
    else:
        view = View(caseid=caseid, name=name, model=model or {})
        db.add(view)
        db.flush()
        _capture(db, checkpoints, UndoOperation.insert, view)

    db.commit()
    db.refresh(view)
    logger.info("Saved view %s on case %s", view.id, caseid)
    return view


def delete_view(
    db: Session,
    caseid: int,
    view_id: int,
    checkpoints: Optional[CheckpointSession] = None,
) -> View:
    view = db.query(View).filter(View.id == view_id, View.caseid == caseid).first()
    if not view:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"View {view_id} not found on case {caseid}",
        )

    before = row_snapshot(view)
    db.delete(view)
    db.flush()
    _capture(db, checkpoints, UndoOperation.delete, view, before)
    db.commit()
    logger.info("Deleted view %s from case %s", view_id, before["caseid"])
    return view
