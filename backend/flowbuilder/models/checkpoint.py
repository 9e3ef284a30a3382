"""Checkpoint ORM model: one logical, multi-statement transaction."""
import uuid
import enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, Integer, DateTime, JSON, ForeignKey, Index, Enum as SAEnum
from flowbuilder.database import Base


class CheckpointStatus(str, enum.Enum):
    active = "active"
    committed = "committed"
    rolled_back = "rolled_back"
    historical = "historical"


class CheckpointSource(str, enum.Enum):
    LLM = "LLM"
    MCP = "MCP"
    API = "API"


# Statuses whose undo trail is still replayable by restore_to_checkpoint
RESTORABLE_STATUSES = (CheckpointStatus.historical, CheckpointStatus.committed)


class Checkpoint(Base):
    __tablename__ = "checkpoints"
    __table_args__ = (
        Index("checkpoints_caseid_idx", "caseid", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    caseid = Column(Integer, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    description = Column(Text, nullable=True)
    user_command = Column(Text, nullable=True)
    status = Column(
        SAEnum(CheckpointStatus, native_enum=False, create_constraint=True, name="checkpoint_status"),
        nullable=False,
        default=CheckpointStatus.active,
    )
    source = Column(
        SAEnum(CheckpointSource, native_enum=False, create_constraint=True, name="checkpoint_source"),
        nullable=False,
        default=CheckpointSource.LLM,
    )
    tools_executed = Column(JSON, nullable=False, default=list)
    changes_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    finished_at = Column(DateTime(timezone=True), nullable=True)
