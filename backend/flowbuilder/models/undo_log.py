"""UndoLogEntry ORM model: one reversible mutation recorded under a checkpoint.

``id`` is a monotonically increasing identity and doubles as the replay
sequence: rollback walks entries by ``id`` descending, so two entries written
within the same clock tick still replay in insertion order.
"""
import enum
from datetime import datetime, timezone
from sqlalchemy import BigInteger, Column, String, Integer, DateTime, JSON, ForeignKey, Index, Enum as SAEnum
from flowbuilder.database import Base


class UndoOperation(str, enum.Enum):
    insert = "insert"
    update = "update"
    delete = "delete"


class UndoLogEntry(Base):
    __tablename__ = "undo_log"
    __table_args__ = (
        Index("undo_log_checkpoint_idx", "checkpoint_id", "id"),
        Index("undo_log_caseid_idx", "caseid"),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    checkpoint_id = Column(
        String(36), ForeignKey("checkpoints.id", ondelete="CASCADE"), nullable=False
    )
    caseid = Column(Integer, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    operation = Column(
        SAEnum(UndoOperation, native_enum=False, create_constraint=True, name="undo_operation"),
        nullable=False,
    )
    table_name = Column(String(255), nullable=False)
    primary_key = Column(JSON, nullable=False)
    previous_data = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    applied_at = Column(DateTime(timezone=True), nullable=True)
