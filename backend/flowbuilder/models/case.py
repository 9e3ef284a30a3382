"""Case ORM model: a workflow or data object owned by an application."""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, Integer, DateTime, JSON
from sqlalchemy.orm import relationship
from flowbuilder.database import Base


class Case(Base):
    __tablename__ = "cases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    model = Column(JSON, nullable=False, default=dict)  # stages / processes / steps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    fields = relationship("Field", back_populates="case", passive_deletes=True)
    views = relationship("View", back_populates="case", passive_deletes=True)
